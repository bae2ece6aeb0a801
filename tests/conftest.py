"""
Pytest configuration and fixtures for ShelfSearch tests.
"""

import copy
import re
import sys
import zlib
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import numpy as np
import pytest
import pytest_asyncio
from elasticsearch import ConnectionError as ESConnectionError
from httpx import AsyncClient, ASGITransport

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shelfsearch.api.main import create_app
from shelfsearch.api.dependencies import ServiceContainer, Settings
from shelfsearch.exceptions import EmbeddingError
from shelfsearch.storage.book_repository import BookRepository


TEST_DIMENSION = 16
ADMIN_KEY = "test-admin-key"

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text) -> list[str]:
    if isinstance(text, list):
        text = " ".join(str(t) for t in text)
    return _TOKEN_RE.findall(str(text or "").lower())


# =============================================================================
# Fake Elasticsearch
# =============================================================================

class _FakeIndices:
    def __init__(self, es: "FakeElasticsearch"):
        self._es = es

    async def exists(self, index: str):
        self._es._maybe_fail("indices.exists")
        return index in self._es.indices_created

    async def create(self, index: str, settings=None, mappings=None):
        self._es._maybe_fail("indices.create")
        self._es.indices_created[index] = {"settings": settings, "mappings": mappings}
        self._es.documents = {}
        return {"acknowledged": True}

    async def delete(self, index: str):
        self._es._maybe_fail("indices.delete")
        self._es.indices_created.pop(index, None)
        self._es.documents = {}
        self._es.deleted_indices.append(index)
        return {"acknowledged": True}

    async def refresh(self, index: str):
        self._es._maybe_fail("indices.refresh")
        self._es.refresh_count += 1
        return {}


class FakeElasticsearch:
    """
    In-memory stand-in for AsyncElasticsearch.

    Understands the query shapes the retrievers send: the boosted bool/should
    keyword query (with a naive token-overlap scorer) and the script_score
    cosine query.
    """

    def __init__(self, vector_field: str = "book_vector"):
        self.vector_field = vector_field
        self.indices_created: dict[str, dict] = {}
        self.documents: dict[str, dict] = {}
        self.deleted_indices: list[str] = []
        self.search_calls: list[dict] = []
        self.refresh_count = 0
        self.fail_ops: set[str] = set()
        self.fail_ids: set[str] = set()
        self.closed = False
        self.indices = _FakeIndices(self)

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_ops:
            raise ESConnectionError(f"{op} failed: connection refused")

    def options(self, **kwargs) -> "FakeElasticsearch":
        return self

    async def close(self) -> None:
        self.closed = True

    async def index(self, index: str, id: str, document: dict):
        self._maybe_fail("index")
        if id in self.fail_ids:
            raise ESConnectionError(f"write of {id} failed")
        result = "updated" if id in self.documents else "created"
        self.documents[id] = copy.deepcopy(document)
        return {"_id": id, "result": result}

    async def delete(self, index: str, id: str):
        self._maybe_fail("delete")
        if self.documents.pop(id, None) is None:
            return {"_id": id, "result": "not_found"}
        return {"_id": id, "result": "deleted"}

    async def get(self, index: str, id: str):
        self._maybe_fail("get")
        if id not in self.documents:
            return {"_id": id, "found": False}
        return {"_id": id, "found": True, "_source": copy.deepcopy(self.documents[id])}

    async def count(self, index: str):
        self._maybe_fail("count")
        return {"count": len(self.documents)}

    async def search(self, index: str, query: dict, size: int = 10, source_excludes=None, **kwargs):
        self._maybe_fail("search")
        self.search_calls.append({"index": index, "query": query, "size": size, "source_excludes": source_excludes})

        if "script_score" in query:
            scored = self._vector_scores(query["script_score"])
        else:
            scored = self._keyword_scores(query["bool"])

        # Stable sort keeps insertion order on ties, like a deterministic engine
        scored.sort(key=lambda pair: pair[1], reverse=True)

        hits = []
        for doc_id, score in scored[:size]:
            source = {
                k: v for k, v in copy.deepcopy(self.documents[doc_id]).items()
                if k not in (source_excludes or [])
            }
            hits.append({"_id": doc_id, "_score": score, "_source": source})

        return {"hits": {"total": {"value": len(scored)}, "hits": hits}}

    @staticmethod
    def _allowed_ids(filters: list[dict]) -> Optional[set[str]]:
        for f in filters:
            if "terms" in f:
                return set(f["terms"]["id"])
        return None

    def _keyword_scores(self, bool_query: dict) -> list[tuple[str, float]]:
        allowed = self._allowed_ids(bool_query.get("filter", []))
        results = []
        for doc_id, doc in self.documents.items():
            if allowed is not None and doc_id not in allowed:
                continue
            score = 0.0
            for clause in bool_query["should"]:
                score += self._clause_score(clause, doc)
            if score > 0:
                results.append((doc_id, score))
        return results

    @staticmethod
    def _clause_score(clause: dict, doc: dict) -> float:
        if "term" in clause:
            field, params = next(iter(clause["term"].items()))
            return float(params["boost"]) if doc.get(field) == params["value"] else 0.0

        if "match_phrase" in clause:
            field, params = next(iter(clause["match_phrase"].items()))
            phrase = " ".join(tokenize(params["query"]))
            text = " ".join(tokenize(doc.get(field.split(".")[0])))
            return float(params["boost"]) if phrase and phrase in text else 0.0

        if "match" in clause:
            field, params = next(iter(clause["match"].items()))
            overlap = set(tokenize(params["query"])) & set(tokenize(doc.get(field)))
            return float(params["boost"]) * len(overlap)

        if "multi_match" in clause:
            params = clause["multi_match"]
            query_tokens = set(tokenize(params["query"]))
            overlap = 0
            for field in params["fields"]:
                overlap += len(query_tokens & set(tokenize(doc.get(field))))
            return float(params["boost"]) * overlap

        return 0.0

    def _vector_scores(self, script_score: dict) -> list[tuple[str, float]]:
        filters = script_score["query"]["bool"]["filter"]
        allowed = self._allowed_ids(filters)
        query_vector = np.asarray(script_score["script"]["params"]["query_vector"], dtype=np.float64)

        results = []
        for doc_id, doc in self.documents.items():
            if allowed is not None and doc_id not in allowed:
                continue
            if self.vector_field not in doc:
                continue
            doc_vector = np.asarray(doc[self.vector_field], dtype=np.float64)
            cosine = float(
                np.dot(query_vector, doc_vector)
                / (np.linalg.norm(query_vector) * np.linalg.norm(doc_vector))
            )
            results.append((doc_id, cosine + 1.0))
        return results


# =============================================================================
# Fake Embedding Client
# =============================================================================

class FakeEmbeddingClient:
    """Deterministic bag-of-words embedder; ``fail`` makes every call raise."""

    def __init__(self, dimension: int = TEST_DIMENSION):
        self.dimension = dimension
        self.fail = False
        self.calls: list[str] = []
        self.closed = False

    def vector_for(self, text: str) -> list[float]:
        vector = np.zeros(self.dimension)
        for token in tokenize(text):
            vector[zlib.crc32(token.encode("utf-8")) % self.dimension] += 1.0
        if not vector.any():
            raise EmbeddingError("Embedding has zero magnitude")
        return vector.tolist()

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("Embedding API error 503: unavailable", status_code=503)
        return self.vector_for(text)

    async def embed_query(self, query: str) -> list[float]:
        return await self.embed(query)

    async def close(self) -> None:
        self.closed = True

    @property
    def stats(self) -> dict:
        return {"calls": len(self.calls)}


# =============================================================================
# Test Settings
# =============================================================================

def get_test_settings() -> Settings:
    """Return settings configured for testing."""
    return Settings(
        database_url="sqlite:///:memory:",
        elasticsearch_url="http://es.test:9200",
        books_index="books-test",
        embeddings_url="http://embeddings.test/v1/embeddings",
        embeddings_api_key="test-embeddings-key",
        vector_dimension=TEST_DIMENSION,
        admin_api_key=ADMIN_KEY,
        environment="test",
        debug=True,
    )


@pytest.fixture
def test_settings() -> Settings:
    return get_test_settings()


# =============================================================================
# Data Fixtures
# =============================================================================

SAMPLE_BOOKS = [
    {
        "id": "b1",
        "title": "Dune",
        "authors": ["Frank Herbert"],
        "isbn": "9780441013593",
        "description": "A desert planet, a noble family and the spice melange.",
        "publisher": "Ace",
        "published_date": "1965",
        "language": "en",
        "categories": ["Science Fiction"],
        "page_count": 604,
    },
    {
        "id": "b2",
        "title": "Dune Messiah",
        "authors": [{"name": "Frank Herbert", "key": "/authors/OL79034A"}],
        "isbn": "978-0-441-17269-6",
        "description": "Paul Atreides rules an empire he cannot control.",
        "categories": ["Science Fiction"],
    },
    {
        "id": "b3",
        "title": "The Left Hand of Darkness",
        "authors": [{"name": "Ursula K. Le Guin"}],
        "isbn": "9780441478125",
        "description": "An envoy visits the ice world of Gethen.",
        "subjects": [{"name": "Gender"}, "Ice worlds"],
    },
    {
        "id": "b4",
        "title": "Foundation",
        "authors": ["Isaac Asimov"],
        "isbn": "9780553293357",
        "description": "Psychohistory predicts the fall of the Galactic Empire.",
        "number_of_pages": 255,
    },
]


@pytest.fixture
def sample_books() -> list[dict]:
    """Canonical records used across tests."""
    return copy.deepcopy(SAMPLE_BOOKS)


@pytest.fixture
def repository(sample_books) -> BookRepository:
    """In-memory repository seeded with the sample books."""
    repo = BookRepository("sqlite:///:memory:")
    for book in sample_books:
        repo.add(**book)
    return repo


@pytest.fixture
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch()


@pytest.fixture
def fake_embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def app_factory(test_settings, fake_es, repository, fake_embedder):
    """Build an app wired to the fakes and run its lifespan."""

    @asynccontextmanager
    async def factory():
        services = ServiceContainer(
            test_settings,
            es_client=fake_es,
            book_repository=repository,
            embedding_client=fake_embedder,
        )
        application = create_app(test_settings, services=services)
        async with application.router.lifespan_context(application):
            yield application

    return factory


@pytest_asyncio.fixture(scope="function")
async def app(app_factory):
    """Create FastAPI application for testing."""
    async with app_factory() as application:
        yield application


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide async HTTP client for API tests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict:
    return {"X-API-Key": ADMIN_KEY}
