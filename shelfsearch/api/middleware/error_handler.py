"""
Error Handling Middleware for ShelfSearch

Centralized error handling:
- Structured error responses
- Logging of errors
- Exception translation (search core errors -> HTTP status)
"""

import traceback
from datetime import datetime

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from shelfsearch.exceptions import (
    DocumentMappingError,
    EmbeddingError,
    IndexUnavailableError,
    IndexWriteError,
)


class ShelfSearchException(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        detail: str = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class NotFoundError(ShelfSearchException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found",
            code="NOT_FOUND",
            status_code=404,
            detail=f"No {resource} with identifier '{identifier}' exists",
        )


class ValidationError(ShelfSearchException):
    """Input validation failed."""

    def __init__(self, message: str, detail: str = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            detail=detail,
        )


class AuthenticationError(ShelfSearchException):
    """Caller did not identify itself."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            code="UNAUTHORIZED",
            status_code=401,
        )


class ForbiddenError(ShelfSearchException):
    """Caller is not allowed to perform the operation."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            message=message,
            code="FORBIDDEN",
            status_code=403,
        )


class ExternalServiceError(ShelfSearchException):
    """External service failure."""

    def __init__(self, service: str, detail: str = None):
        super().__init__(
            message=f"{service} service unavailable",
            code="EXTERNAL_SERVICE_ERROR",
            status_code=503,
            detail=detail,
        )


class SearchUnavailableError(ShelfSearchException):
    """Search index cannot serve queries (degraded mode)."""

    def __init__(self, detail: str = None):
        super().__init__(
            message="Search is temporarily unavailable",
            code="SEARCH_UNAVAILABLE",
            status_code=503,
            detail=detail,
        )


def create_error_response(
    error: str,
    code: str,
    status_code: int,
    detail: str = None,
) -> JSONResponse:
    """Create standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "code": code,
            "detail": detail,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


def translate_core_error(exc: Exception) -> ShelfSearchException:
    """Map a search core exception to its API counterpart."""
    if isinstance(exc, IndexUnavailableError):
        return SearchUnavailableError(detail=str(exc))
    if isinstance(exc, IndexWriteError):
        return ExternalServiceError("Search index", detail=str(exc))
    if isinstance(exc, EmbeddingError):
        return ExternalServiceError("Embedding", detail=str(exc))
    if isinstance(exc, DocumentMappingError):
        return ValidationError("Record cannot be indexed", detail=str(exc))
    return ShelfSearchException(message="Internal Server Error")


def setup_exception_handlers(app):
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(ShelfSearchException)
    async def shelfsearch_exception_handler(request: Request, exc: ShelfSearchException):
        logger.warning(f"ShelfSearch error: {exc.code} - {exc.message}")
        return create_error_response(
            error=exc.message,
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.detail,
        )

    @app.exception_handler(IndexUnavailableError)
    @app.exception_handler(IndexWriteError)
    @app.exception_handler(EmbeddingError)
    @app.exception_handler(DocumentMappingError)
    async def core_exception_handler(request: Request, exc: Exception):
        api_error = translate_core_error(exc)
        logger.error(f"Search core error on {request.url.path}: {type(exc).__name__}: {exc}")
        return create_error_response(
            error=api_error.message,
            code=api_error.code,
            status_code=api_error.status_code,
            detail=api_error.detail,
        )

    @app.exception_handler(RequestValidationError)
    @app.exception_handler(PydanticValidationError)
    async def validation_exception_handler(request: Request, exc: Exception):
        logger.warning(f"Validation error: {str(exc)}")
        return create_error_response(
            error="Validation Error",
            code="VALIDATION_ERROR",
            status_code=400,
            detail=str(exc),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {str(exc)}\n{traceback.format_exc()}"
        )
        return create_error_response(
            error="Internal Server Error",
            code="INTERNAL_ERROR",
            status_code=500,
            detail="An unexpected error occurred",
        )
