"""
Unit tests for per-record indexing and the full resync job.
"""

import pytest

from shelfsearch.exceptions import DocumentMappingError, IndexUnavailableError
from shelfsearch.search.index_manager import IndexManager
from shelfsearch.search.indexer import BookIndexer
from shelfsearch.search.sync import SyncJob, reindex
from shelfsearch.storage.book_repository import CatalogRecord


class ListSource:
    """Record source backed by a plain list."""

    def __init__(self, records):
        self.records = records

    def list_all(self):
        return list(self.records)


@pytest.fixture
def index_manager(fake_es):
    return IndexManager(fake_es, index_name="books-test", dimension=16)


@pytest.fixture
def indexer(index_manager, fake_embedder):
    return BookIndexer(index_manager, fake_embedder)


@pytest.fixture
def sync_job(repository, indexer, index_manager):
    return SyncJob(repository, indexer, index_manager)


class TestBookIndexer:
    """Tests for BookIndexer."""

    async def test_indexes_with_vector(self, indexer, fake_es, fake_embedder):
        record = CatalogRecord(id="b1", title="Dune", authors=["Frank Herbert"])

        outcome = await indexer.index_book(record)

        assert outcome.has_vector
        assert fake_embedder.calls == ["Title: Dune\nAuthors: Frank Herbert"]
        assert len(fake_es.documents["b1"]["book_vector"]) == 16

    async def test_embedding_failure_still_writes(self, indexer, fake_es, fake_embedder):
        fake_embedder.fail = True

        outcome = await indexer.index_book(CatalogRecord(id="b1", title="Dune"))

        assert not outcome.has_vector
        assert fake_es.documents["b1"] == {"id": "b1", "title": "Dune", "authors": []}

    async def test_record_without_text_skips_embedding(self, indexer, fake_es, fake_embedder):
        outcome = await indexer.index_book(CatalogRecord(id="bare"))

        assert not outcome.has_vector
        assert fake_embedder.calls == []
        assert "bare" in fake_es.documents

    async def test_mapping_failure(self, indexer):
        with pytest.raises(DocumentMappingError):
            await indexer.index_book(CatalogRecord(id=""))

    async def test_remove(self, indexer, fake_es):
        await indexer.index_book(CatalogRecord(id="b1", title="Dune"))

        assert await indexer.remove_book("b1") is True
        assert await indexer.remove_book("b1") is False


class TestSyncJob:
    """Tests for SyncJob."""

    async def test_syncs_every_record(self, sync_job, fake_es):
        count = await sync_job.sync_all_books()

        assert count == 4
        assert sorted(fake_es.documents) == ["b1", "b2", "b3", "b4"]
        assert fake_es.refresh_count == 1

    async def test_idempotent(self, sync_job, fake_es):
        first = await sync_job.sync_all_books()
        snapshot = {k: dict(v) for k, v in fake_es.documents.items()}

        second = await sync_job.sync_all_books()

        assert first == second == 4
        assert fake_es.documents == snapshot

    async def test_write_failure_is_isolated(self, sync_job, fake_es):
        fake_es.fail_ids.add("b2")

        report = await sync_job.run()

        assert report.total == 4
        assert report.indexed == 3
        assert report.failed_ids == ["b2"]
        assert "b2" not in fake_es.documents
        assert fake_es.refresh_count == 1

    async def test_embedding_failures_count_as_indexed(self, sync_job, fake_es, fake_embedder):
        fake_embedder.fail = True

        report = await sync_job.run()

        assert report.indexed == 4
        assert sorted(report.without_vector_ids) == ["b1", "b2", "b3", "b4"]
        assert all("book_vector" not in doc for doc in fake_es.documents.values())

    async def test_mapping_failure_is_isolated(self, indexer, index_manager, fake_es):
        source = ListSource([
            CatalogRecord(id="b1", title="Dune"),
            CatalogRecord(id="", title="Orphan"),
        ])
        job = SyncJob(source, indexer, index_manager)

        report = await job.run()

        assert report.indexed == 1
        assert report.failed == 1
        assert list(fake_es.documents) == ["b1"]

    async def test_malformed_record_is_isolated(self, indexer, index_manager, fake_es):
        source = ListSource([
            CatalogRecord(id="b1", title="Dune", authors=["Frank Herbert"]),
            CatalogRecord(id="bad", title="Broken", authors=5, excerpts=3),
            CatalogRecord(id="b5", title="Emma", authors=["Jane Austen"]),
        ])
        job = SyncJob(source, indexer, index_manager)

        report = await job.run()

        assert report.indexed == 3
        assert report.failed_ids == []
        assert fake_es.documents["bad"]["authors"] == []
        assert fake_es.refresh_count == 1

    async def test_unexpected_error_is_isolated(self, indexer, index_manager, fake_es, monkeypatch):
        original = indexer.index_book

        async def flaky(record):
            if record.id == "bad":
                raise TypeError("'int' object is not iterable")
            return await original(record)

        monkeypatch.setattr(indexer, "index_book", flaky)
        source = ListSource([
            CatalogRecord(id="b1", title="Dune"),
            CatalogRecord(id="bad", title="Broken"),
            CatalogRecord(id="b5", title="Emma"),
        ])
        job = SyncJob(source, indexer, index_manager)

        report = await job.run()

        assert report.indexed == 2
        assert report.failed_ids == ["bad"]
        assert sorted(fake_es.documents) == ["b1", "b5"]
        assert fake_es.refresh_count == 1

    async def test_bounded_concurrency_same_result(self, repository, indexer, index_manager, fake_es):
        job = SyncJob(repository, indexer, index_manager, concurrency=3)

        assert await job.sync_all_books() == 4
        assert sorted(fake_es.documents) == ["b1", "b2", "b3", "b4"]

    async def test_force_recreate(self, sync_job, fake_es):
        await sync_job.index_manager.ensure_index()
        fake_es.documents["stale"] = {"id": "stale"}

        report = await sync_job.run(force_recreate=True)

        assert report.index_recreated
        assert "stale" not in fake_es.documents
        assert fake_es.deleted_indices == ["books-test"]

    async def test_refresh_failure_propagates(self, sync_job, fake_es):
        fake_es.fail_ops.add("indices.refresh")

        with pytest.raises(IndexUnavailableError):
            await sync_job.run()

    async def test_invalid_concurrency(self, repository, indexer, index_manager):
        with pytest.raises(ValueError):
            SyncJob(repository, indexer, index_manager, concurrency=0)


class TestReindex:
    """Tests for the maintenance reindex helper."""

    async def test_recreate_and_resync(self, sync_job, fake_es):
        report = await reindex(sync_job)

        assert "books-test" in fake_es.indices_created
        assert report.indexed == 4

    async def test_recreate_only(self, sync_job, fake_es):
        assert await reindex(sync_job, recreate_index=True, reembed=False) is None
        assert fake_es.documents == {}

    async def test_resync_only(self, sync_job, fake_es):
        report = await reindex(sync_job, recreate_index=False, reembed=True)

        assert report.indexed == 4
        assert fake_es.deleted_indices == []
