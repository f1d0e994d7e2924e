"""
Request middleware.

Every dashboard interaction (row click, table switch, video toggle) arrives
as a request, so the access log doubles as an interaction trail.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probe and docs traffic is not logged
QUIET_PATH_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id to the log context, time the request and log the
    outcome. A front-end supplied X-Request-ID is reused and echoed back.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        path = request.url.path
        set_request_context(request_id=request_id, endpoint=path, method=request.method)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s failed after %.1fms", request.method, path, _elapsed_ms(start),
                extra={"status_code": 500, "endpoint": path},
            )
            set_request_context()
            raise

        duration_ms = _elapsed_ms(start)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"

        if not path.startswith(QUIET_PATH_PREFIXES):
            logger.log(
                logging.WARNING if response.status_code >= 400 else logging.INFO,
                "%s %s -> %d (%.1fms)",
                request.method, path, response.status_code, duration_ms,
                extra={
                    "duration_ms": round(duration_ms, 1),
                    "status_code": response.status_code,
                    "endpoint": path,
                },
            )
        set_request_context()
        return response
