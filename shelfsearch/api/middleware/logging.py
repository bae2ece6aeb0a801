"""
Request logging middleware.

One log line per API call, carrying what the search routes did rather than
raw request/response dumps:
- correlation ID (echoed in the X-Request-ID header)
- resolved result limit, search mode and hit count for search calls
- synced/failed counts for index maintenance calls
- whether the service was running in degraded mode
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Set

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Per-request fields filled in by route handlers. The middleware owns the
# dict; handlers mutate it in place so the values survive the call_next task.
request_context_var: ContextVar[Optional[dict]] = ContextVar("request_context", default=None)

logger = logging.getLogger("shelfsearch.api")


@dataclass
class LoggingConfig:
    """Configuration for request logging."""

    enabled: bool = True

    excluded_paths: Set[str] = field(default_factory=lambda: {
        "/health",
        "/favicon.ico",
    })

    # Seconds; searches slower than this are logged at WARNING
    slow_request_threshold: float = 2.0

    request_id_header: str = "X-Request-ID"


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_var.get()


def annotate_request(**fields: Any) -> None:
    """Attach fields to the current request's log line. No-op outside a request."""
    context = request_context_var.get()
    if context is not None:
        context.update(fields)


class StructuredLogFormatter(logging.Formatter):
    """JSON formatter; request lines are flattened into top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        for key in ("method", "path", "status_code", "duration_ms", "search_available"):
            if hasattr(record, key):
                log_data[key] = getattr(record, key)
        log_data.update(getattr(record, "context", None) or {})

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _summary(context: dict) -> str:
    return " ".join(f"{key}={value}" for key, value in sorted(context.items()))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each API call with its search or sync context."""

    def __init__(self, app: FastAPI, config: Optional[LoggingConfig] = None):
        super().__init__(app)
        self.config = config or LoggingConfig()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.config.request_id_header) or uuid.uuid4().hex[:8]
        request_id_var.set(request_id)

        path = request.url.path
        if not self.config.enabled or path in self.config.excluded_paths:
            response = await call_next(request)
            response.headers[self.config.request_id_header] = request_id
            return response

        context: dict = {}
        request_context_var.set(context)
        start_time = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        duration_ms = round(duration * 1000, 2)
        response.headers[self.config.request_id_header] = request_id

        slow = duration > self.config.slow_request_threshold
        if response.status_code >= 500:
            log_level = logging.ERROR
        elif response.status_code >= 400 or slow:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        message = f"{request.method} {path} -> {response.status_code} ({duration_ms}ms)"
        if context:
            message = f"{message} {_summary(context)}"
        if slow:
            message = f"[SLOW] {message}"

        logger.log(log_level, message, extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "search_available": getattr(request.app.state, "search_available", True),
            "context": dict(context),
        })

        return response


def setup_logging(
    app: FastAPI,
    config: Optional[LoggingConfig] = None,
    structured: bool = True,
) -> None:
    """
    Install the request logging middleware.

    Args:
        app: FastAPI application instance.
        config: Logging configuration.
        structured: Emit JSON lines for the ``shelfsearch`` logger.
    """
    if structured:
        api_logger = logging.getLogger("shelfsearch")
        # create_app may run more than once per process (tests)
        if not any(isinstance(h.formatter, StructuredLogFormatter) for h in api_logger.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredLogFormatter())
            api_logger.addHandler(handler)
        api_logger.setLevel(logging.INFO)

    app.add_middleware(RequestLoggingMiddleware, config=config or LoggingConfig())
