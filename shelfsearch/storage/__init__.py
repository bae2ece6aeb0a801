"""
Storage Module for ShelfSearch

Canonical catalog records in a relational store (SQLAlchemy).
"""

from shelfsearch.storage.book_repository import (
    BookRepository,
    CatalogRecord,
)
from shelfsearch.storage.models import (
    Base,
    BookModel,
    UserBookModel,
)

__all__ = [
    "BookRepository",
    "CatalogRecord",
    "Base",
    "BookModel",
    "UserBookModel",
]
