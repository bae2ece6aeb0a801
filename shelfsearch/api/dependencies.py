"""
Dependency injection for FastAPI routes.

Provides injectable dependencies for:
- Configuration
- Service instances (repository, index, retrievers, search engine, sync)
- Search availability (degraded mode)
- Admin authentication
"""

import os
from typing import Optional
from functools import lru_cache
from dataclasses import dataclass

from elasticsearch import AsyncElasticsearch
from fastapi import Depends, Header, Request
from loguru import logger

from .middleware.error_handler import (
    AuthenticationError,
    ForbiddenError,
    SearchUnavailableError,
)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class Settings:
    """Application settings loaded from environment."""

    # Database
    database_url: str = "sqlite:///./shelfsearch.db"
    database_echo: bool = False

    # Search index
    elasticsearch_url: str = "http://localhost:9200"
    books_index: str = "books"
    elasticsearch_timeout: float = 10.0

    # Embeddings
    embeddings_url: str = "http://localhost:4000/v1/embeddings"
    embeddings_model: str = "heartcode-embed"
    embeddings_api_key: Optional[str] = None
    embeddings_timeout: float = 10.0
    vector_dimension: int = 768
    query_cache_size: int = 1000

    # Sync
    sync_concurrency: int = 1

    # Search limits
    search_max_limit: int = 50
    search_default_limit: int = 20
    similar_default_limit: int = 10

    # Admin
    admin_api_key: Optional[str] = None

    # Environment
    environment: str = "development"
    debug: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            database_echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
            elasticsearch_url=os.getenv("ELASTICSEARCH_URL", cls.elasticsearch_url),
            books_index=os.getenv("BOOKS_INDEX", cls.books_index),
            elasticsearch_timeout=float(os.getenv("ELASTICSEARCH_TIMEOUT", cls.elasticsearch_timeout)),
            embeddings_url=os.getenv("EMBEDDINGS_URL", cls.embeddings_url),
            embeddings_model=os.getenv("EMBEDDINGS_MODEL", cls.embeddings_model),
            embeddings_api_key=os.getenv("EMBEDDINGS_API_KEY") or os.getenv("LITELLM_API_KEY"),
            embeddings_timeout=float(os.getenv("EMBEDDINGS_TIMEOUT", cls.embeddings_timeout)),
            vector_dimension=int(os.getenv("VECTOR_DIMENSION", cls.vector_dimension)),
            query_cache_size=int(os.getenv("QUERY_CACHE_SIZE", cls.query_cache_size)),
            sync_concurrency=int(os.getenv("SYNC_CONCURRENCY", cls.sync_concurrency)),
            search_max_limit=int(os.getenv("SEARCH_MAX_LIMIT", cls.search_max_limit)),
            search_default_limit=int(os.getenv("SEARCH_DEFAULT_LIMIT", cls.search_default_limit)),
            admin_api_key=os.getenv("ADMIN_API_KEY"),
            environment=os.getenv("SHELFSEARCH_ENV", cls.environment),
            debug=os.getenv("DEBUG", "true").lower() == "true",
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings.from_env()


# =============================================================================
# Service Dependencies (Lazy Loading)
# =============================================================================

class ServiceContainer:
    """
    Container for lazy-loaded service instances.

    Services are initialized on first access. Tests pass pre-built
    collaborators (fake Elasticsearch client, in-memory repository, stub
    embedder) through the constructor.
    """

    def __init__(
        self,
        settings: Settings,
        es_client=None,
        book_repository=None,
        embedding_client=None,
    ):
        self.settings = settings
        self._es_client = es_client
        self._book_repository = book_repository
        self._embedding_client = embedding_client
        self._index_manager = None
        self._keyword_retriever = None
        self._vector_retriever = None
        self._search_engine = None
        self._indexer = None
        self._sync_job = None

    @property
    def es_client(self) -> AsyncElasticsearch:
        """Get Elasticsearch client."""
        if self._es_client is None:
            self._es_client = AsyncElasticsearch(
                self.settings.elasticsearch_url,
                request_timeout=self.settings.elasticsearch_timeout,
            )
        return self._es_client

    @property
    def book_repository(self):
        """Get book repository instance."""
        if self._book_repository is None:
            from ..storage.book_repository import BookRepository
            self._book_repository = BookRepository(
                self.settings.database_url,
                echo=self.settings.database_echo,
            )
        return self._book_repository

    @property
    def embedding_client(self):
        """Get embedding client instance."""
        if self._embedding_client is None:
            from ..embeddings.cache import LRUEmbeddingCache
            from ..embeddings.embedding_client import EmbeddingClient
            self._embedding_client = EmbeddingClient(
                url=self.settings.embeddings_url,
                model=self.settings.embeddings_model,
                api_key=self.settings.embeddings_api_key,
                dimension=self.settings.vector_dimension,
                timeout=self.settings.embeddings_timeout,
                cache=LRUEmbeddingCache(max_size=self.settings.query_cache_size),
            )
        return self._embedding_client

    @property
    def index_manager(self):
        """Get index manager instance."""
        if self._index_manager is None:
            from ..search.index_manager import IndexManager
            self._index_manager = IndexManager(
                self.es_client,
                index_name=self.settings.books_index,
                dimension=self.settings.vector_dimension,
            )
        return self._index_manager

    @property
    def keyword_retriever(self):
        """Get keyword retriever instance."""
        if self._keyword_retriever is None:
            from ..search.retrievers import KeywordRetriever
            self._keyword_retriever = KeywordRetriever(
                self.es_client,
                index_name=self.settings.books_index,
            )
        return self._keyword_retriever

    @property
    def vector_retriever(self):
        """Get vector retriever instance."""
        if self._vector_retriever is None:
            from ..search.retrievers import VectorRetriever
            self._vector_retriever = VectorRetriever(
                self.es_client,
                index_name=self.settings.books_index,
            )
        return self._vector_retriever

    @property
    def search_engine(self):
        """Get hybrid search engine instance."""
        if self._search_engine is None:
            from ..search.fusion import HybridSearchEngine
            self._search_engine = HybridSearchEngine(
                keyword_retriever=self.keyword_retriever,
                vector_retriever=self.vector_retriever,
                embedding_client=self.embedding_client,
            )
        return self._search_engine

    @property
    def indexer(self):
        """Get book indexer instance."""
        if self._indexer is None:
            from ..search.indexer import BookIndexer
            self._indexer = BookIndexer(self.index_manager, self.embedding_client)
        return self._indexer

    @property
    def sync_job(self):
        """Get sync job instance."""
        if self._sync_job is None:
            from ..search.sync import SyncJob
            self._sync_job = SyncJob(
                self.book_repository,
                self.indexer,
                self.index_manager,
                concurrency=self.settings.sync_concurrency,
            )
        return self._sync_job

    async def close(self) -> None:
        """Release network clients that were created."""
        if self._embedding_client is not None:
            await self._embedding_client.close()
        if self._es_client is not None:
            await self._es_client.close()


# Global service container
_service_container: Optional[ServiceContainer] = None


def init_services(settings: Settings, **overrides) -> ServiceContainer:
    """Initialize service container."""
    global _service_container
    _service_container = ServiceContainer(settings, **overrides)
    return _service_container


def get_service_container(request: Request) -> ServiceContainer:
    """Get the service container bound to the running app."""
    services = getattr(request.app.state, "services", None)
    if services is not None:
        return services
    if _service_container is None:
        return init_services(get_settings())
    return _service_container


# =============================================================================
# Individual Service Dependencies
# =============================================================================

def get_book_repository(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for book repository."""
    return container.book_repository


def get_index_manager(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for index manager."""
    return container.index_manager


def get_indexer(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for book indexer."""
    return container.indexer


def get_sync_job(
    container: ServiceContainer = Depends(get_service_container),
):
    """Dependency for sync job."""
    return container.sync_job


def get_search_engine(
    request: Request,
    container: ServiceContainer = Depends(get_service_container),
):
    """
    Dependency for the hybrid search engine.

    Raises:
        SearchUnavailableError: If the index could not be ensured at startup
    """
    if not getattr(request.app.state, "search_available", True):
        raise SearchUnavailableError("Search index is not available")
    return container.search_engine


# =============================================================================
# Authentication Dependencies
# =============================================================================

async def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Extract API key from header.

    Returns None if no key provided.
    """
    return x_api_key


async def require_admin_key(
    request: Request,
    api_key: Optional[str] = Depends(get_api_key),
) -> str:
    """
    Require the admin API key for index maintenance endpoints.

    Raises:
        AuthenticationError: If no key was sent
        ForbiddenError: If the key is wrong or no admin key is configured
    """
    settings = getattr(request.app.state, "settings", None) or get_settings()

    if not api_key:
        raise AuthenticationError("API key required")

    if not settings.admin_api_key or api_key != settings.admin_api_key:
        logger.warning(f"Rejected admin request to {request.url.path}")
        raise ForbiddenError("Admin access required")

    return api_key


async def require_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """
    Identify the calling user.

    Raises:
        AuthenticationError: If the header is missing
    """
    if not x_user_id:
        raise AuthenticationError("User identity required")
    return x_user_id
