"""
Document Mapper

Converts canonical catalog records into search documents and builds the
text that gets embedded for each record.

Author-like fields (authors, subjects, publish places) arrive in one of two
shapes:
- a plain string: "Frank Herbert"
- a structured object: {"name": "Frank Herbert", ...}

Both are decoded to a single display string by ``display_name``. Any other
shape is dropped.

The embedding text layout is a stable contract: changing the line order or
labels changes every stored vector, so existing indices would need a full
re-embed.
"""

from collections.abc import Mapping
from typing import Any, Iterable, Optional, Union

from loguru import logger

from shelfsearch.exceptions import DocumentMappingError
from shelfsearch.search.types import SearchDocument
from shelfsearch.storage.book_repository import CatalogRecord


RecordLike = Union[CatalogRecord, Mapping]


def display_name(value: Any) -> Optional[str]:
    """
    Decode an author/subject/place entry to its display string.

    Returns None for empty values and unsupported shapes.
    """
    if isinstance(value, str):
        name = value
    elif isinstance(value, Mapping):
        raw = value.get("name")
        name = raw if isinstance(raw, str) else ""
    else:
        logger.debug(f"Dropping unsupported name shape: {type(value).__name__}")
        return None

    return name if name.strip() else None


def _as_list(values: Any) -> list:
    if isinstance(values, (list, tuple)):
        return list(values)
    if values:
        logger.debug(f"Treating non-list value as empty: {type(values).__name__}")
    return []


def display_names(values: Optional[Iterable[Any]]) -> list[str]:
    """Decode a list of named values, skipping empty and unsupported entries."""
    names = []
    for value in _as_list(values):
        name = display_name(value)
        if name:
            names.append(name)
    return names


def excerpt_text(excerpt: Any) -> Optional[str]:
    """Text of an excerpt object (``text`` else ``comment``)."""
    if isinstance(excerpt, str):
        return excerpt or None
    if isinstance(excerpt, Mapping):
        for key in ("text", "comment"):
            value = excerpt.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def normalize_isbn(isbn: Optional[str]) -> Optional[str]:
    """Strip hyphens and spaces from an ISBN."""
    if not isbn:
        return None
    cleaned = str(isbn).replace("-", "").replace(" ", "")
    return cleaned or None


def _get(record: RecordLike, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _present(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _string_list(values: Any) -> list[str]:
    return [str(v).strip() for v in _as_list(values) if v is not None and str(v).strip()]


def _page_count(record: RecordLike) -> Optional[int]:
    for name in ("page_count", "number_of_pages"):
        value = _get(record, name)
        if value:
            try:
                return int(value)
            except (TypeError, ValueError):
                continue
    return None


def build_book_text(record: RecordLike) -> str:
    """
    Build the embedding text for a record.

    One labelled line per present field, in fixed order. An empty record
    maps to the empty string. Blank category entries and non-numeric page
    counts are left out of the text.
    """
    parts: list[str] = []

    title = _present(_get(record, "title"))
    if title:
        parts.append(f"Title: {title}")

    authors = display_names(_get(record, "authors"))
    if authors:
        parts.append(f"Authors: {', '.join(authors)}")

    for label, name in (
        ("Description", "description"),
        ("Publisher", "publisher"),
        ("Published", "published_date"),
        ("Edition", "edition"),
        ("Language", "language"),
    ):
        value = _present(_get(record, name))
        if value:
            parts.append(f"{label}: {value}")

    categories = [c for c in (_present(v) for v in _as_list(_get(record, "categories"))) if c]
    if categories:
        parts.append(f"Categories: {', '.join(categories)}")

    subjects = display_names(_get(record, "subjects"))
    if subjects:
        parts.append(f"Subjects: {', '.join(subjects)}")

    texts = [t for t in (excerpt_text(e) for e in _as_list(_get(record, "excerpts"))) if t]
    if texts:
        parts.append(f"Excerpts: {' '.join(texts)}")

    places = display_names(_get(record, "publish_places"))
    if places:
        parts.append(f"Published in: {', '.join(places)}")

    isbn = _present(_get(record, "isbn"))
    if isbn:
        parts.append(f"ISBN: {isbn}")

    pages = _page_count(record)
    if pages:
        parts.append(f"Pages: {pages}")

    return "\n".join(parts)


def to_search_document(
    record: RecordLike,
    vector: Optional[list[float]] = None,
) -> SearchDocument:
    """
    Map a catalog record to its search document.

    Args:
        record: CatalogRecord or a mapping with the same keys
        vector: Embedding for the record, or None when unavailable

    Raises:
        DocumentMappingError: If the record has no identifier
    """
    book_id = _get(record, "id")
    if book_id is None or str(book_id).strip() == "":
        raise DocumentMappingError("Catalog record has no id")

    return SearchDocument(
        id=str(book_id),
        title=_text(_get(record, "title")),
        authors=display_names(_get(record, "authors")),
        isbn=normalize_isbn(_get(record, "isbn")),
        description=_text(_get(record, "description")),
        publisher=_text(_get(record, "publisher")),
        published_date=_text(_get(record, "published_date")),
        categories=_string_list(_get(record, "categories")),
        language=_text(_get(record, "language")),
        page_count=_page_count(record),
        cover_url=_text(_get(record, "cover_url")),
        cover_small_url=_text(_get(record, "cover_small_url")),
        cover_large_url=_text(_get(record, "cover_large_url")),
        subjects=display_names(_get(record, "subjects")),
        vector=vector,
    )
