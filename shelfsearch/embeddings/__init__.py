"""
Embeddings Module

Remote text embeddings for indexing and search:
- OpenAI-compatible embeddings endpoint client
- Query embedding LRU cache
"""

from shelfsearch.embeddings.embedding_client import EmbeddingClient
from shelfsearch.embeddings.cache import LRUEmbeddingCache, make_cache_key

__all__ = [
    "EmbeddingClient",
    "LRUEmbeddingCache",
    "make_cache_key",
]
