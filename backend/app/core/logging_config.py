"""
Structured logging configuration.

Two output shapes share one set of record fields:

    production   one JSON object per line, feed fields as top-level keys
    otherwise    coloured console line, ``[primary]`` / ``[secondary]`` tag
                 when the record concerns one feed

Feed code attaches its fields through ``extra=``:

    logger.info("Fetched alerts", extra={"source": "primary", "record_count": 4})

Request-scoped values (request id, endpoint) are held in a ContextVar set
by RequestLoggingMiddleware and merged into every record emitted while the
request is handled.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from backend.app.core.config import Settings

_request_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar(
    "request_context", default=None
)

# Attributes passed via ``extra=`` that are copied into JSON output
FEED_FIELDS = (
    "source", "alert_id", "record_count", "attempt",
    "duration_ms", "status_code", "endpoint",
)

# Libraries that log every HTTP exchange; feed clients log their own summary
_CHATTY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def set_request_context(**kwargs: Any) -> None:
    """Bind request-scoped fields; call with no arguments to clear."""
    _request_context.set(kwargs or None)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get() or {}


def _feed_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in FEED_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_feed_fields(record))

        ctx = get_request_context()
        if ctx:
            entry["request"] = ctx

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {"type": type(exc).__name__, "message": str(exc)}

        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    """Console output for local runs."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        parts = [f"{color}{self.formatTime(record, '%H:%M:%S')} {record.levelname:8s}{self.RESET}"]

        request_id = get_request_context().get("request_id")
        if request_id:
            parts.append(f"<{request_id[:8]}>")
        source = getattr(record, "source", None)
        if source:
            parts.append(f"[{source}]")
        parts.append(f"{record.name}: {record.getMessage()}")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            line += f"\n  {type(exc).__name__}: {exc}"
        return line


def setup_logging(settings: Settings) -> None:
    """Install a single stdout handler on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
