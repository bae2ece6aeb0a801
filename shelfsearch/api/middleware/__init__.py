"""
API middleware components.

Provides cross-cutting concerns for the API:
- Error handling
- Request/response logging
"""

from .error_handler import (
    ShelfSearchException,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    ForbiddenError,
    ExternalServiceError,
    SearchUnavailableError,
    setup_exception_handlers,
    create_error_response,
    translate_core_error,
)

from .logging import (
    LoggingConfig,
    StructuredLogFormatter,
    RequestLoggingMiddleware,
    setup_logging,
    get_request_id,
    annotate_request,
)


__all__ = [
    # Error handling
    "ShelfSearchException",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "ForbiddenError",
    "ExternalServiceError",
    "SearchUnavailableError",
    "setup_exception_handlers",
    "create_error_response",
    "translate_core_error",
    # Logging
    "LoggingConfig",
    "StructuredLogFormatter",
    "RequestLoggingMiddleware",
    "setup_logging",
    "get_request_id",
    "annotate_request",
]
