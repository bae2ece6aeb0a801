"""
Core exceptions for ShelfSearch.

Raised by the search core and translated to HTTP responses by
shelfsearch.api.middleware.error_handler.
"""

from typing import Optional


class ShelfSearchError(Exception):
    """Base class for search core failures."""


class EmbeddingError(ShelfSearchError):
    """Embedding endpoint call failed or returned an unusable vector."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class IndexUnavailableError(ShelfSearchError):
    """Index engine could not be reached or rejected a lifecycle/read call."""


class IndexWriteError(ShelfSearchError):
    """A single document write was rejected."""

    def __init__(self, book_id: str, message: str):
        self.book_id = book_id
        super().__init__(f"Failed to write document {book_id}: {message}")


class DocumentMappingError(ShelfSearchError):
    """A catalog record could not be mapped to a search document."""
