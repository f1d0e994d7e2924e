"""
Exception hierarchy and the FastAPI handlers that render it as JSON.

Source feed failures (NetworkError, ParseError) are normally carried inside a
FetchResult and shown per source; they only reach the handlers below when
raised directly.

Usage:
    from backend.app.core.errors import (
        AlertDashboardError,
        NotFoundError,
        NetworkError,
        ParseError,
        register_error_handlers,
    )

    raise NotFoundError("Alert", alert_id="primary-3f9a0c1d2e4b")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class AlertDashboardError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(AlertDashboardError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ValidationError(AlertDashboardError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class FetchError(AlertDashboardError):
    """An alert source could not be read (502)."""

    kind = "fetch_error"

    def __init__(
        self,
        source: str,
        message: str = "",
        *,
        error_code: str = "FETCH_ERROR",
        **details: Any,
    ):
        super().__init__(
            message=message or f"Failed to fetch alerts from '{source}'",
            status_code=502,
            error_code=error_code,
            details={"source": source, **details},
        )
        self.source = source


class NetworkError(FetchError):
    """Transport failure or non-success HTTP status. Transient; retryable."""

    kind = "network_error"

    def __init__(self, source: str, message: str = "", **details: Any):
        super().__init__(source, message, error_code="NETWORK_ERROR", **details)


class ParseError(FetchError):
    """Response body is not a JSON list. Persistent contract mismatch."""

    kind = "parse_error"

    def __init__(self, source: str, message: str = "", **details: Any):
        super().__init__(source, message, error_code="PARSE_ERROR", **details)


class RecordShapeError(AlertDashboardError):
    """A single record is missing or mistypes a field. Recovered locally."""

    def __init__(self, field: str, message: str = ""):
        super().__init__(
            message=message or f"Unexpected shape for field '{field}'",
            status_code=422,
            error_code="RECORD_SHAPE_ERROR",
            details={"field": field},
        )
        self.field = field


# ═══════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════

def _app_settings(request: Request):
    return getattr(request.app.state, "settings", None)


def error_body(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> Dict[str, Any]:
    """``{"error": {code, message, status[, details][, path, method]}}``"""
    error: Dict[str, Any] = {"code": error_code, "message": message, "status": status_code}
    if details:
        error["details"] = details

    settings = _app_settings(request) if request else None
    if request and not (settings and settings.is_production):
        error["path"] = request.url.path
        error["method"] = request.method
    return {"error": error}


def _respond(status_code: int, error_code: str, message: str, details=None, request=None):
    return JSONResponse(
        status_code=status_code,
        content=error_body(status_code, error_code, message, details, request),
    )


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Attach the JSON error handlers to ``app``."""

    @app.exception_handler(AlertDashboardError)
    async def handle_dashboard_error(request: Request, exc: AlertDashboardError):
        level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            level, "%s on %s %s: %s",
            exc.error_code, request.method, request.url.path, exc.message,
            extra={"status_code": exc.status_code, "endpoint": request.url.path},
        )
        return _respond(exc.status_code, exc.error_code, exc.message, exc.details, request)

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        return _respond(422, "VALIDATION_ERROR", str(exc), request=request)

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled %s on %s %s", type(exc).__name__, request.method, request.url.path,
            exc_info=exc,
        )
        settings = _app_settings(request)
        if settings and settings.DEBUG:
            trace = traceback.format_exception(type(exc), exc, exc.__traceback__)
            return _respond(
                500, "INTERNAL_ERROR", f"{type(exc).__name__}: {exc}",
                {"traceback": "".join(trace).splitlines()}, request,
            )
        return _respond(500, "INTERNAL_ERROR", "Internal server error", request=request)
