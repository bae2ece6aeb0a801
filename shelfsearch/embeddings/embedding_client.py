"""
Embedding Client

Converts text into a dense vector by calling a remote OpenAI-compatible
embeddings endpoint (LiteLLM, Ollama, etc.):

    POST <url>  {"model": ..., "input": ...}
    Authorization: Bearer <key>
    -> {"data": [{"embedding": [...]}]}

Every failure (empty input, transport error, non-2xx status, malformed
payload, unusable vector) is raised as EmbeddingError. Callers degrade on
it: search drops the vector leg, indexing stores the document without a
vector.
"""

import asyncio
import time
from typing import Any, Optional

import aiohttp
import numpy as np
from loguru import logger

from shelfsearch.embeddings.cache import LRUEmbeddingCache, make_cache_key
from shelfsearch.exceptions import EmbeddingError


class EmbeddingClient:
    """
    Client for a remote text-embedding endpoint.

    Usage:
        client = EmbeddingClient(
            url="http://localhost:4000/v1/embeddings",
            model="heartcode-embed",
            api_key="sk-...",
        )
        vector = await client.embed("Dune by Frank Herbert")
    """

    def __init__(
        self,
        url: str,
        model: str,
        api_key: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: float = 10.0,
        cache: Optional[LRUEmbeddingCache] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize client.

        Args:
            url: Embeddings endpoint URL
            model: Model name sent in the request body
            api_key: Bearer credential (empty string if the endpoint is open)
            dimension: Expected vector length; None disables the check
            timeout: Total request timeout in seconds
            cache: Optional LRU cache used by embed_query
            session: Shared aiohttp session; one is created lazily otherwise
        """
        self.url = url
        self.model = model
        self.api_key = api_key or ""
        self.dimension = dimension
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.cache = cache

        self._session = session
        self._owns_session = session is None

        if not self.api_key:
            logger.warning("No embeddings API key configured; sending an empty bearer token")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text string.

        Args:
            text: Non-empty text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: On any failure
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        start = time.perf_counter()
        payload = {"model": self.model, "input": text}
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        session = await self._get_session()
        try:
            async with session.post(
                self.url, json=payload, headers=headers, timeout=self.timeout
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    error_text = await resp.text(errors="replace")
                    raise EmbeddingError(
                        f"Embedding API error {resp.status}: {error_text[:200]}",
                        status_code=resp.status,
                    )
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise EmbeddingError(f"Malformed embedding response: {e}") from e
        except aiohttp.ClientError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise EmbeddingError("Embedding request timed out") from e

        vector = self._parse_vector(data)

        elapsed = (time.perf_counter() - start) * 1000
        logger.debug(f"Embedded {len(text)} chars in {elapsed:.1f}ms (dim={len(vector)})")

        return vector

    async def embed_query(self, query: str) -> list[float]:
        """
        Embed a search query, consulting the cache first.

        Raises:
            EmbeddingError: On any failure (failures are not cached)
        """
        if self.cache is None:
            return await self.embed(query)

        key = make_cache_key(self.model, query)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        vector = await self.embed(query)
        self.cache.put(key, vector, model_name=self.model)
        return vector

    def _parse_vector(self, data: Any) -> list[float]:
        """Extract and validate data[0].embedding."""
        try:
            raw = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise EmbeddingError("Embedding response missing data[0].embedding") from e

        if not isinstance(raw, list) or not raw:
            raise EmbeddingError("Embedding is not a non-empty array")
        if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in raw):
            raise EmbeddingError("Embedding contains non-numeric values")

        vector = np.asarray(raw, dtype=np.float64)

        if self.dimension is not None and vector.shape[0] != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension {vector.shape[0]} != expected {self.dimension}"
            )
        if not np.all(np.isfinite(vector)):
            raise EmbeddingError("Embedding contains non-finite values")
        # Cosine similarity is undefined for a zero vector
        if float(np.linalg.norm(vector)) == 0.0:
            raise EmbeddingError("Embedding has zero magnitude")

        return [float(v) for v in raw]

    @property
    def stats(self) -> dict:
        """Get client statistics."""
        return {
            "url": self.url,
            "model": self.model,
            "dimension": self.dimension,
            "cache": self.cache.stats() if self.cache else None,
        }
