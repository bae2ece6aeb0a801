"""
Keyword and vector retrievers over the books index.

Each retriever runs one Elasticsearch query and returns Candidates with the
engine's raw score. Scores from the two retrievers live on different scales
(unbounded BM25-style relevance vs. cosine similarity shifted to [0, 2]) and
are only made comparable by the fusion step.
"""

import time
from typing import Any, Iterable, Optional

from elasticsearch import ApiError, AsyncElasticsearch, TransportError
from loguru import logger

from shelfsearch.exceptions import IndexUnavailableError
from shelfsearch.search.index_manager import (
    DEFAULT_INDEX,
    DEFAULT_VECTOR_FIELD,
    response_body,
)
from shelfsearch.search.types import Candidate


# Clause boosts for the keyword query
ISBN_BOOST = 10
TITLE_PHRASE_BOOST = 5
TITLE_BOOST = 3
AUTHORS_BOOST = 2
DESCRIPTION_BOOST = 1
SUBJECTS_BOOST = 1


def strip_isbn_query(query: str) -> str:
    """Normalize a query for the exact ISBN clause."""
    return query.replace("-", "").strip()


def build_keyword_query(
    query: str,
    id_filter: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """
    Boolean OR of boosted clauses; any one clause may match.

    Args:
        query: Free-text query
        id_filter: Restrict candidates to these document ids
    """
    bool_query: dict[str, Any] = {
        "should": [
            # Exact ISBN match dominates
            {"term": {"isbn": {"value": strip_isbn_query(query), "boost": ISBN_BOOST}}},
            {"match_phrase": {"title.exact": {"query": query, "boost": TITLE_PHRASE_BOOST}}},
            {"match": {"title": {"query": query, "boost": TITLE_BOOST}}},
            {"match": {"authors": {"query": query, "boost": AUTHORS_BOOST}}},
            {"match": {"description": {"query": query, "boost": DESCRIPTION_BOOST}}},
            {
                "multi_match": {
                    "query": query,
                    "fields": ["subjects", "categories"],
                    "boost": SUBJECTS_BOOST,
                }
            },
        ],
        "minimum_should_match": 1,
    }

    if id_filter is not None:
        bool_query["filter"] = [{"terms": {"id": list(id_filter)}}]

    return {"bool": bool_query}


def build_vector_query(
    query_vector: list[float],
    vector_field: str = DEFAULT_VECTOR_FIELD,
    id_filter: Optional[Iterable[str]] = None,
) -> dict[str, Any]:
    """
    Cosine similarity over documents that have a vector, offset by +1.0.

    Documents without the vector field are excluded by the exists filter.
    """
    filters: list[dict[str, Any]] = [{"exists": {"field": vector_field}}]
    if id_filter is not None:
        filters.insert(0, {"terms": {"id": list(id_filter)}})

    return {
        "script_score": {
            "query": {"bool": {"filter": filters}},
            "script": {
                "source": f"cosineSimilarity(params.query_vector, '{vector_field}') + 1.0",
                "params": {"query_vector": query_vector},
            },
        }
    }


class _BaseRetriever:
    """Shared search plumbing."""

    name = "base"

    def __init__(
        self,
        client: AsyncElasticsearch,
        index_name: str = DEFAULT_INDEX,
        vector_field: str = DEFAULT_VECTOR_FIELD,
    ):
        self.client = client
        self.index_name = index_name
        self.vector_field = vector_field

    async def _execute(self, query: dict[str, Any], limit: int) -> list[Candidate]:
        start = time.perf_counter()
        try:
            resp = await self.client.search(
                index=self.index_name,
                query=query,
                size=limit,
                source_excludes=[self.vector_field],
            )
        except (ApiError, TransportError) as e:
            raise IndexUnavailableError(f"{self.name} search failed: {e}") from e

        hits = response_body(resp)["hits"]["hits"]
        candidates = [
            Candidate(document=dict(hit["_source"]), score=float(hit["_score"]))
            for hit in hits
        ]

        elapsed = (time.perf_counter() - start) * 1000
        logger.debug(f"{self.name} search: {len(candidates)} hits in {elapsed:.1f}ms")

        return candidates


class KeywordRetriever(_BaseRetriever):
    """Multi-field lexical retrieval."""

    name = "keyword"

    async def search(
        self,
        query: str,
        limit: int,
        id_filter: Optional[Iterable[str]] = None,
    ) -> list[Candidate]:
        """
        Lexical search ranked by engine relevance.

        Args:
            query: Free-text query
            limit: Maximum hits
            id_filter: Optional allowed document ids

        Returns:
            Candidates in engine order; empty when nothing matches
        """
        if id_filter is not None:
            id_filter = list(id_filter)
            if not id_filter:
                return []

        return await self._execute(build_keyword_query(query, id_filter), limit)


class VectorRetriever(_BaseRetriever):
    """Cosine-similarity retrieval over the embedding field."""

    name = "vector"

    async def search(
        self,
        query_vector: list[float],
        limit: int,
        id_filter: Optional[Iterable[str]] = None,
    ) -> list[Candidate]:
        """
        Similarity search; scores are cosine similarity + 1.0.

        Args:
            query_vector: Query embedding
            limit: Maximum hits
            id_filter: Optional allowed document ids
        """
        if id_filter is not None:
            id_filter = list(id_filter)
            if not id_filter:
                return []

        query = build_vector_query(query_vector, self.vector_field, id_filter)
        return await self._execute(query, limit)
