"""
ShelfSearch - FastAPI Backend.

HTTP surface for hybrid library search and index maintenance.
"""

from .main import app, create_app, main
from .dependencies import (
    Settings,
    get_settings,
    get_service_container,
    ServiceContainer,
)
from .schemas import (
    SearchHit,
    SimilarSearchRequest,
    SyncResponse,
    IndexResponse,
    BookIndexResponse,
    HealthResponse,
    ErrorResponse,
)

__all__ = [
    # Application
    "app",
    "create_app",
    "main",
    # Dependencies
    "Settings",
    "get_settings",
    "get_service_container",
    "ServiceContainer",
    # Schemas
    "SearchHit",
    "SimilarSearchRequest",
    "SyncResponse",
    "IndexResponse",
    "BookIndexResponse",
    "HealthResponse",
    "ErrorResponse",
]
