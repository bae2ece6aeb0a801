"""
Search document and result types.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class SearchDocument:
    """
    Denormalized projection of a catalog record, as stored in the index.

    The document id is the catalog record id. ``vector`` is None when no
    embedding could be generated; it is then left out of the stored source
    so the document never enters the vector retriever's candidate pool.
    """

    id: str
    title: Optional[str] = None
    authors: list[str] = field(default_factory=list)
    isbn: Optional[str] = None
    description: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    language: Optional[str] = None
    page_count: Optional[int] = None
    cover_url: Optional[str] = None
    cover_small_url: Optional[str] = None
    cover_large_url: Optional[str] = None
    subjects: list[str] = field(default_factory=list)

    vector: Optional[list[float]] = None

    @property
    def has_vector(self) -> bool:
        return self.vector is not None

    def to_source(self, vector_field: str = "book_vector") -> dict[str, Any]:
        """Convert to the index source body, dropping empty fields."""
        source: dict[str, Any] = {"id": self.id}

        scalar_fields = {
            "title": self.title,
            "isbn": self.isbn,
            "description": self.description,
            "publisher": self.publisher,
            "published_date": self.published_date,
            "language": self.language,
            "page_count": self.page_count,
            "cover_url": self.cover_url,
            "cover_small_url": self.cover_small_url,
            "cover_large_url": self.cover_large_url,
        }
        for name, value in scalar_fields.items():
            if value not in (None, ""):
                source[name] = value

        # Authors are always written, even when empty
        source["authors"] = list(self.authors)
        if self.categories:
            source["categories"] = list(self.categories)
        if self.subjects:
            source["subjects"] = list(self.subjects)

        if self.vector is not None:
            source[vector_field] = list(self.vector)

        return source


@dataclass
class Candidate:
    """Single hit from one retriever, with its raw engine score."""

    document: dict[str, Any]
    score: float

    @property
    def id(self) -> str:
        return str(self.document["id"])


@dataclass
class RankedResult:
    """Fused search result."""

    document: dict[str, Any]
    score: float

    # Score breakdown, 0 when the document missed that leg. Normalized after
    # fusion; the keyword-only fallback carries raw engine scores.
    keyword_score: float = 0.0
    vector_score: float = 0.0

    @property
    def id(self) -> str:
        return str(self.document["id"])

    @property
    def retrieved_via(self) -> str:
        if self.keyword_score > 0 and self.vector_score > 0:
            return "hybrid"
        return "vector" if self.vector_score > 0 else "keyword"

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the API response shape."""
        return {
            **self.document,
            "score": self.score,
            "keyword_score": self.keyword_score,
            "vector_score": self.vector_score,
            "retrieved_via": self.retrieved_via,
        }
