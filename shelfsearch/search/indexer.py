"""
Book Indexer

Per-record ingestion pipeline: map -> embed (best effort) -> upsert.
"""

from dataclasses import dataclass

from loguru import logger

from shelfsearch.embeddings.embedding_client import EmbeddingClient
from shelfsearch.exceptions import EmbeddingError
from shelfsearch.search.document_mapper import (
    RecordLike,
    build_book_text,
    to_search_document,
)
from shelfsearch.search.index_manager import IndexManager


@dataclass
class IndexOutcome:
    """Result of indexing one record."""

    book_id: str
    has_vector: bool


class BookIndexer:
    """Writes catalog records into the search index."""

    def __init__(self, index_manager: IndexManager, embedding_client: EmbeddingClient):
        self.index_manager = index_manager
        self.embedding_client = embedding_client

    async def index_book(self, record: RecordLike) -> IndexOutcome:
        """
        Index a single record.

        An embedding failure stores the document without a vector; it stays
        keyword-searchable until a later sync succeeds.

        Raises:
            DocumentMappingError: If the record cannot be mapped
            IndexWriteError: If the write is rejected
        """
        document = to_search_document(record)

        text = build_book_text(record)
        if text:
            try:
                document.vector = await self.embedding_client.embed(text)
            except EmbeddingError as e:
                logger.warning(f"Failed to generate embedding for book {document.id}: {e}")
        else:
            logger.debug(f"Book {document.id} has no text to embed")

        await self.index_manager.upsert(document)

        return IndexOutcome(book_id=document.id, has_vector=document.has_vector)

    async def remove_book(self, book_id: str) -> bool:
        """Remove a record's document; returns False if it was not indexed."""
        return await self.index_manager.delete(book_id)
