"""
Embedding Cache

In-memory LRU cache for query embeddings:
- Content-addressed keys (hash of model + text)
- Automatic eviction of least recently used entries
- Hit/miss statistics
"""

import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from loguru import logger


@dataclass
class CacheEntry:
    """Single cache entry."""

    key: str
    embedding: list[float]
    model_name: str
    created_at: float


def make_cache_key(model_name: str, text: str) -> str:
    """Content-addressed key for a (model, text) pair."""
    digest = hashlib.sha256(f"{model_name}\x00{text}".encode("utf-8"))
    return digest.hexdigest()


class LRUEmbeddingCache:
    """
    In-memory LRU cache for embeddings.

    Repeated queries skip the embedding round trip.
    """

    def __init__(self, max_size: int = 1000):
        """
        Initialize LRU cache.

        Args:
            max_size: Maximum number of entries to cache
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

        logger.info(f"LRUEmbeddingCache initialized: max_size={max_size}")

    def get(self, key: str) -> Optional[list[float]]:
        """
        Get embedding from cache.

        Args:
            key: Cache key

        Returns:
            Embedding or None if not found
        """
        if key in self._cache:
            # Move to end (most recently used)
            self._cache.move_to_end(key)
            self._hits += 1
            return self._cache[key].embedding

        self._misses += 1
        return None

    def put(self, key: str, embedding: list[float], model_name: str = "unknown") -> None:
        """Store embedding in cache."""
        if key in self._cache:
            self._cache.move_to_end(key)
        else:
            while len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)  # Remove oldest

        self._cache[key] = CacheEntry(
            key=key,
            embedding=embedding,
            model_name=model_name,
            created_at=time.time(),
        )

    def contains(self, key: str) -> bool:
        """Check if key exists in cache."""
        return key in self._cache

    def clear(self) -> None:
        """Clear all entries."""
        self._cache.clear()
        self._hits = 0
        self._misses = 0

    @property
    def size(self) -> int:
        """Current cache size."""
        return len(self._cache)

    @property
    def hit_rate(self) -> float:
        """Cache hit rate."""
        total = self._hits + self._misses
        if total == 0:
            return 0.0
        return self._hits / total

    def stats(self) -> dict:
        """Get cache statistics."""
        return {
            "size": len(self._cache),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
        }
