"""
Index Manager for ShelfSearch

Owns the Elasticsearch books index:
- Schema (analyzers and field mappings)
- Create / recreate lifecycle
- Document upsert, delete and refresh

Design Decisions:
1. Edge n-grams at index time only: prefix matches work ("dun" -> "Dune")
   while search-time queries are not expanded into n-gram variants
2. title.exact uses the standard analyzer so phrase matches are not
   diluted by n-grams
3. id and isbn are keyword fields for exact-value lookups
4. Writes are full-document index calls, so re-indexing a record replaces
   the previous document instead of merging into it
"""

from typing import Any, Optional

from elasticsearch import ApiError, AsyncElasticsearch, TransportError
from loguru import logger

from shelfsearch.exceptions import IndexUnavailableError, IndexWriteError
from shelfsearch.search.types import SearchDocument


def response_body(resp: Any) -> dict[str, Any]:
    """Plain dict body of an Elasticsearch API response."""
    return getattr(resp, "body", resp)


DEFAULT_INDEX = "books"
DEFAULT_VECTOR_FIELD = "book_vector"
DEFAULT_DIMENSION = 768

EDGE_NGRAM_MIN = 2
EDGE_NGRAM_MAX = 15


def build_index_settings() -> dict[str, Any]:
    """Analysis settings for the books index."""
    return {
        "analysis": {
            "analyzer": {
                "book_analyzer": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "asciifolding", "edge_ngram_filter"],
                },
                "book_search_analyzer": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "asciifolding"],
                },
            },
            "filter": {
                "edge_ngram_filter": {
                    "type": "edge_ngram",
                    "min_gram": EDGE_NGRAM_MIN,
                    "max_gram": EDGE_NGRAM_MAX,
                },
            },
        },
    }


def build_index_mappings(
    dimension: int = DEFAULT_DIMENSION,
    vector_field: str = DEFAULT_VECTOR_FIELD,
) -> dict[str, Any]:
    """Field mappings for the books index."""
    return {
        "properties": {
            "id": {"type": "keyword"},
            "title": {
                "type": "text",
                "analyzer": "book_analyzer",
                "search_analyzer": "book_search_analyzer",
                "fields": {
                    "keyword": {"type": "keyword"},
                    "exact": {"type": "text", "analyzer": "standard"},
                },
            },
            "authors": {
                "type": "text",
                "analyzer": "book_analyzer",
                "search_analyzer": "book_search_analyzer",
            },
            "isbn": {"type": "keyword"},
            "description": {"type": "text"},
            "publisher": {"type": "text"},
            "published_date": {"type": "keyword"},
            "categories": {"type": "keyword"},
            "language": {"type": "keyword"},
            "page_count": {"type": "integer"},
            "cover_url": {"type": "keyword", "index": False},
            "cover_small_url": {"type": "keyword", "index": False},
            "cover_large_url": {"type": "keyword", "index": False},
            "subjects": {"type": "text"},
            vector_field: {
                "type": "dense_vector",
                "dims": dimension,
            },
        },
    }


class IndexManager:
    """
    Lifecycle and writes for the books index.

    Usage:
        manager = IndexManager(AsyncElasticsearch("http://localhost:9200"))
        await manager.ensure_index()
        await manager.upsert(document)
        await manager.refresh()
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        index_name: str = DEFAULT_INDEX,
        dimension: int = DEFAULT_DIMENSION,
        vector_field: str = DEFAULT_VECTOR_FIELD,
    ):
        """
        Initialize index manager.

        Args:
            client: Elasticsearch client
            index_name: Name of the books index
            dimension: Embedding dimension of the vector field
            vector_field: Name of the dense_vector field
        """
        self.client = client
        self.index_name = index_name
        self.dimension = dimension
        self.vector_field = vector_field

    async def exists(self) -> bool:
        """Check whether the index exists."""
        try:
            return bool(await self.client.indices.exists(index=self.index_name))
        except (ApiError, TransportError) as e:
            raise IndexUnavailableError(f"Cannot check index '{self.index_name}': {e}") from e

    async def ensure_index(self, force_recreate: bool = False) -> bool:
        """
        Create the index if missing.

        Args:
            force_recreate: Delete and recreate an existing index. Destructive;
                only for controlled reindex runs.

        Returns:
            True if the index was (re)created, False if it already existed
        """
        exists = await self.exists()

        try:
            if exists and force_recreate:
                await self.client.indices.delete(index=self.index_name)
                logger.warning(f"Deleted index '{self.index_name}' for recreation")
            elif exists:
                return False

            await self.client.indices.create(
                index=self.index_name,
                settings=build_index_settings(),
                mappings=build_index_mappings(self.dimension, self.vector_field),
            )
        except (ApiError, TransportError) as e:
            raise IndexUnavailableError(f"Cannot create index '{self.index_name}': {e}") from e

        logger.info(f"Created index '{self.index_name}' (dims={self.dimension})")
        return True

    async def upsert(self, document: SearchDocument) -> None:
        """
        Write a document, replacing any previous version with the same id.

        Raises:
            IndexWriteError: If the engine rejects the write
        """
        try:
            await self.client.index(
                index=self.index_name,
                id=document.id,
                document=document.to_source(self.vector_field),
            )
        except (ApiError, TransportError) as e:
            raise IndexWriteError(document.id, str(e)) from e

    async def delete(self, book_id: str) -> bool:
        """
        Remove a document. A missing document is not an error.

        Returns:
            True if a document was deleted
        """
        try:
            resp = await self.client.options(ignore_status=404).delete(
                index=self.index_name,
                id=book_id,
            )
        except (ApiError, TransportError) as e:
            raise IndexWriteError(book_id, str(e)) from e

        return response_body(resp).get("result") == "deleted"

    async def refresh(self) -> None:
        """Make all pending writes searchable."""
        try:
            await self.client.indices.refresh(index=self.index_name)
        except (ApiError, TransportError) as e:
            raise IndexUnavailableError(f"Cannot refresh index '{self.index_name}': {e}") from e

    async def count(self) -> int:
        """Number of documents in the index."""
        try:
            resp = await self.client.count(index=self.index_name)
        except (ApiError, TransportError) as e:
            raise IndexUnavailableError(f"Cannot count index '{self.index_name}': {e}") from e
        return int(resp["count"])

    async def get(self, book_id: str) -> Optional[dict[str, Any]]:
        """Fetch a stored document source, or None."""
        try:
            resp = await self.client.options(ignore_status=404).get(
                index=self.index_name,
                id=book_id,
            )
        except (ApiError, TransportError) as e:
            raise IndexUnavailableError(f"Cannot read document {book_id}: {e}") from e

        body = response_body(resp)
        if not body.get("found"):
            return None
        return dict(body["_source"])
