"""
Database models for ShelfSearch.

The relational store owns the canonical book records; the search core only
reads them.
"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, Text, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class BookModel(Base):
    """Canonical catalog record."""

    __tablename__ = "books"

    id = Column(String(64), primary_key=True)

    title = Column(String(500), nullable=False, index=True)
    isbn = Column(String(20), index=True)

    # Publication
    publisher = Column(String(200))
    published_date = Column(String(50))
    edition = Column(String(100))
    language = Column(String(20))
    page_count = Column(Integer)
    number_of_pages = Column(Integer)

    description = Column(Text)

    # List-valued fields (JSON arrays). Authors, subjects and publish places
    # hold either plain strings or {"name": ...} objects.
    authors = Column(JSON, default=list)
    categories = Column(JSON, default=list)
    subjects = Column(JSON, default=list)
    excerpts = Column(JSON, default=list)
    publish_places = Column(JSON, default=list)

    # Cover images
    cover_url = Column(String(500))
    cover_small_url = Column(String(500))
    cover_large_url = Column(String(500))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserBookModel(Base):
    """Membership of a book in a user's library."""

    __tablename__ = "user_books"

    user_id = Column(String(64), primary_key=True)
    book_id = Column(String(64), ForeignKey("books.id"), primary_key=True)
    added_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_user_books_user", "user_id"),
    )
