"""
API Schemas for ShelfSearch

Pydantic models for request validation and response serialization:
- Search hits and similar-search requests
- Index maintenance responses
- Health and errors

Design Decisions:
1. Search hits carry the stored document fields plus the score breakdown
2. Unknown document fields pass through (extra="allow") so new index
   fields reach clients without a schema change
3. Examples: OpenAPI documentation with realistic examples
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


# =============================================================================
# Search Schemas
# =============================================================================

class SearchHit(BaseModel):
    """Single ranked search result."""

    id: str
    title: Optional[str] = None
    authors: list[str] = Field(default_factory=list)
    isbn: Optional[str] = None
    description: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    language: Optional[str] = None
    page_count: Optional[int] = None
    cover_url: Optional[str] = None
    cover_small_url: Optional[str] = None
    cover_large_url: Optional[str] = None
    subjects: list[str] = Field(default_factory=list)

    score: float
    keyword_score: float = 0.0
    vector_score: float = 0.0
    retrieved_via: str = "keyword"

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "id": "b-dune",
                "title": "Dune",
                "authors": ["Frank Herbert"],
                "isbn": "9780441172719",
                "score": 1.0,
                "keyword_score": 1.0,
                "vector_score": 1.0,
                "retrieved_via": "hybrid",
            }
        },
    )


class SimilarSearchRequest(BaseModel):
    """Search restricted to the caller's own library."""

    text: str = Field(..., min_length=1, max_length=2000)
    limit: Optional[int] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "text": "desert planet politics",
                "limit": 10,
            }
        }
    )


# =============================================================================
# Index Maintenance Schemas
# =============================================================================

class SyncResponse(BaseModel):
    """Full resync outcome."""

    synced: int
    total: int
    failed: int = 0
    failed_ids: list[str] = Field(default_factory=list)
    without_vector: int = 0
    index_recreated: bool = False
    duration_ms: float = 0.0


class IndexResponse(BaseModel):
    """Index ensure outcome."""

    index: str
    created: bool


class BookIndexResponse(BaseModel):
    """Single-record index or removal outcome."""

    id: str
    indexed: bool = False
    has_vector: bool = False
    removed: bool = False


# =============================================================================
# Common Schemas
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Optional[str] = None
    code: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Search is temporarily unavailable",
                "detail": "Cannot check index 'books': connection refused",
                "code": "SEARCH_UNAVAILABLE",
                "timestamp": "2024-01-15T10:30:00Z",
            }
        }
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    search_available: bool = True
    components: dict[str, str] = Field(default_factory=dict)
