"""
Hybrid Search Fusion

Combines keyword and vector retrieval into one ranked list:
- Per-list max normalization (top hit of each list scores 1.0)
- Union merge by document id; a document missing from one list scores 0
  on that side
- Weighted sum, 70% keyword / 30% vector
- Keyword-only fallback when the query cannot be embedded
"""

import asyncio
import time
from contextvars import ContextVar
from typing import Iterable, Optional

from loguru import logger

from shelfsearch.embeddings.embedding_client import EmbeddingClient
from shelfsearch.exceptions import EmbeddingError, IndexUnavailableError
from shelfsearch.search.retrievers import KeywordRetriever, VectorRetriever
from shelfsearch.search.types import Candidate, RankedResult


KEYWORD_WEIGHT = 0.7
VECTOR_WEIGHT = 0.3

# Mode of the most recent hybrid_search in the current context:
# "hybrid" or "keyword_only"
search_mode_var: ContextVar[str] = ContextVar("search_mode", default="hybrid")


def normalize_scores(candidates: list[Candidate]) -> dict[str, float]:
    """
    Divide each score by the list's maximum score.

    The divisor is the observed maximum, not a theoretical one, so scores
    that drift past their nominal range still normalize to at most 1.0.
    An empty list normalizes to an empty mapping.
    """
    if not candidates:
        return {}

    max_score = max(c.score for c in candidates)
    if max_score <= 0:
        max_score = 1.0

    normalized: dict[str, float] = {}
    for candidate in candidates:
        # First occurrence wins if a retriever repeats a document
        normalized.setdefault(candidate.id, candidate.score / max_score)
    return normalized


def fuse_candidates(
    keyword: list[Candidate],
    vector: list[Candidate],
    limit: int,
    keyword_weight: float = KEYWORD_WEIGHT,
    vector_weight: float = VECTOR_WEIGHT,
) -> list[RankedResult]:
    """
    Merge two candidate lists into one ranked list.

    Args:
        keyword: Keyword retriever candidates
        vector: Vector retriever candidates
        limit: Maximum results
        keyword_weight: Weight of the normalized keyword score
        vector_weight: Weight of the normalized vector score

    Returns:
        Results sorted by fused score, descending, at most ``limit`` long
    """
    k_scores = normalize_scores(keyword)
    v_scores = normalize_scores(vector)

    # Keyword documents first, so ties keep keyword order
    documents: dict[str, dict] = {}
    for candidate in keyword + vector:
        documents.setdefault(candidate.id, candidate.document)

    fused = []
    for doc_id, document in documents.items():
        k_score = k_scores.get(doc_id, 0.0)
        v_score = v_scores.get(doc_id, 0.0)

        fused.append(RankedResult(
            document=document,
            score=keyword_weight * k_score + vector_weight * v_score,
            keyword_score=k_score,
            vector_score=v_score,
        ))

    fused.sort(key=lambda r: r.score, reverse=True)

    return fused[:limit]


def keyword_only_results(keyword: list[Candidate]) -> list[RankedResult]:
    """Pass keyword candidates through unchanged, raw scores included."""
    return [
        RankedResult(document=c.document, score=c.score, keyword_score=c.score)
        for c in keyword
    ]


class HybridSearchEngine:
    """
    Hybrid keyword + vector search.

    Usage:
        engine = HybridSearchEngine(keyword_retriever, vector_retriever, embedder)
        results = await engine.search("dune", limit=10)
    """

    def __init__(
        self,
        keyword_retriever: KeywordRetriever,
        vector_retriever: VectorRetriever,
        embedding_client: EmbeddingClient,
        keyword_weight: float = KEYWORD_WEIGHT,
        vector_weight: float = VECTOR_WEIGHT,
    ):
        """
        Initialize hybrid search engine.

        Args:
            keyword_retriever: Lexical retriever
            vector_retriever: Similarity retriever
            embedding_client: Client used to embed queries
            keyword_weight: Weight for keyword scores
            vector_weight: Weight for vector scores
        """
        self.keyword_retriever = keyword_retriever
        self.vector_retriever = vector_retriever
        self.embedding_client = embedding_client
        self.keyword_weight = keyword_weight
        self.vector_weight = vector_weight

        logger.info(
            f"HybridSearchEngine initialized: "
            f"keyword_weight={keyword_weight}, vector_weight={vector_weight}"
        )

    async def hybrid_search(
        self,
        query_text: str,
        limit: int,
        id_filter: Optional[Iterable[str]] = None,
    ) -> list[RankedResult]:
        """
        Search using keyword and vector retrieval.

        Falls back to keyword-only results (raw keyword scores, keyword
        order) when the query cannot be embedded or the vector leg fails.

        Args:
            query_text: Free-text query
            limit: Maximum results; callers enforce the ceiling
            id_filter: Optional allowed document ids

        Raises:
            IndexUnavailableError: If keyword retrieval fails
        """
        start = time.perf_counter()
        if id_filter is not None:
            id_filter = list(id_filter)

        try:
            query_vector = await self.embedding_client.embed_query(query_text)
        except EmbeddingError as e:
            logger.warning(f"Query embedding failed, falling back to keyword only: {e}")
            search_mode_var.set("keyword_only")
            keyword = await self.keyword_retriever.search(query_text, limit, id_filter)
            return keyword_only_results(keyword)

        keyword_result, vector_result = await asyncio.gather(
            self.keyword_retriever.search(query_text, limit, id_filter),
            self.vector_retriever.search(query_vector, limit, id_filter),
            return_exceptions=True,
        )

        if isinstance(keyword_result, BaseException):
            raise keyword_result
        if isinstance(vector_result, IndexUnavailableError):
            logger.warning(f"Vector search failed, using keyword results only: {vector_result}")
            search_mode_var.set("keyword_only")
            return keyword_only_results(keyword_result)
        if isinstance(vector_result, BaseException):
            raise vector_result

        search_mode_var.set("hybrid")
        results = fuse_candidates(
            keyword_result,
            vector_result,
            limit,
            keyword_weight=self.keyword_weight,
            vector_weight=self.vector_weight,
        )

        elapsed = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Hybrid search '{query_text[:50]}': keyword={len(keyword_result)} "
            f"vector={len(vector_result)} fused={len(results)} in {elapsed:.1f}ms"
        )

        return results

    async def search(self, query_text: str, limit: int) -> list[RankedResult]:
        """Search the whole catalog."""
        return await self.hybrid_search(query_text, limit)

    async def search_within(
        self,
        query_text: str,
        book_ids: Iterable[str],
        limit: int,
    ) -> list[RankedResult]:
        """Search restricted to the given book ids."""
        return await self.hybrid_search(query_text, limit, id_filter=book_ids)

    @property
    def stats(self) -> dict:
        """Get engine statistics."""
        return {
            "keyword_weight": self.keyword_weight,
            "vector_weight": self.vector_weight,
            "embedding": self.embedding_client.stats,
        }
