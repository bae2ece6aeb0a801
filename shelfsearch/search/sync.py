"""
Sync / Reindex Job

Rebuilds the search index from the canonical record store:
- Optional force-recreate of the index (schema changes)
- Per-record map + embed + upsert through BookIndexer
- Bounded concurrency; each record's embed and write stay in one task
- Per-record failure isolation
- Final refresh so writes become searchable

Re-running the job with unchanged records yields the same document set,
since every write is an upsert keyed by the record id.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

from loguru import logger

from shelfsearch.exceptions import DocumentMappingError, IndexWriteError
from shelfsearch.search.indexer import BookIndexer
from shelfsearch.search.index_manager import IndexManager
from shelfsearch.storage.book_repository import CatalogRecord


class RecordSource(Protocol):
    """Read-all access to canonical records."""

    def list_all(self) -> list[CatalogRecord]:
        ...


@dataclass
class SyncReport:
    """Outcome of a sync run."""

    total: int = 0
    indexed: int = 0
    failed_ids: list[str] = field(default_factory=list)
    without_vector_ids: list[str] = field(default_factory=list)
    index_recreated: bool = False
    duration_ms: float = 0.0

    @property
    def failed(self) -> int:
        return len(self.failed_ids)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "indexed": self.indexed,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
            "without_vector": len(self.without_vector_ids),
            "index_recreated": self.index_recreated,
            "duration_ms": round(self.duration_ms, 2),
        }


class SyncJob:
    """
    Full resync of catalog records into the index.

    Usage:
        job = SyncJob(repository, indexer, index_manager, concurrency=4)
        count = await job.sync_all_books()
    """

    def __init__(
        self,
        source: RecordSource,
        indexer: BookIndexer,
        index_manager: IndexManager,
        concurrency: int = 1,
    ):
        """
        Initialize sync job.

        Args:
            source: Canonical record source (BookRepository)
            indexer: Per-record indexing pipeline
            index_manager: Index lifecycle owner
            concurrency: Maximum records processed at once
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.source = source
        self.indexer = indexer
        self.index_manager = index_manager
        self.concurrency = concurrency

    async def run(self, force_recreate: bool = False) -> SyncReport:
        """
        Sync every canonical record.

        Args:
            force_recreate: Recreate the index before syncing

        Returns:
            SyncReport; ``indexed`` counts records actually written,
            including those written without a vector

        Raises:
            IndexUnavailableError: If the index cannot be created or refreshed
        """
        start = time.perf_counter()
        report = SyncReport()

        if force_recreate:
            report.index_recreated = await self.index_manager.ensure_index(force_recreate=True)

        records = await asyncio.to_thread(self.source.list_all)
        report.total = len(records)

        logger.info(f"Syncing {report.total} books to index (concurrency={self.concurrency})")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def process(record: CatalogRecord) -> None:
            async with semaphore:
                await self._sync_record(record, report)

        await asyncio.gather(*(process(record) for record in records))

        await self.index_manager.refresh()

        report.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Synced {report.indexed}/{report.total} books "
            f"({len(report.without_vector_ids)} without vector, {report.failed} failed) "
            f"in {report.duration_ms:.0f}ms"
        )

        return report

    async def _sync_record(self, record: CatalogRecord, report: SyncReport) -> None:
        book_id = getattr(record, "id", None) or "<unknown>"
        try:
            outcome = await self.indexer.index_book(record)
        except (DocumentMappingError, IndexWriteError) as e:
            logger.error(f"Failed to index book {book_id}: {e}")
            report.failed_ids.append(str(book_id))
            return
        except Exception as e:
            logger.exception(f"Unexpected error indexing book {book_id}: {e}")
            report.failed_ids.append(str(book_id))
            return

        report.indexed += 1
        if not outcome.has_vector:
            report.without_vector_ids.append(outcome.book_id)

    async def sync_all_books(self, force_recreate: bool = False) -> int:
        """Sync every record and return the number indexed."""
        report = await self.run(force_recreate=force_recreate)
        return report.indexed


async def reindex(
    sync_job: SyncJob,
    recreate_index: bool = True,
    reembed: bool = True,
) -> Optional[SyncReport]:
    """
    Maintenance reindex: optionally recreate the index, then optionally
    re-embed and resync every record.

    Returns:
        The sync report, or None when no resync was requested
    """
    if recreate_index:
        logger.info("Recreating search index...")
        await sync_job.index_manager.ensure_index(force_recreate=True)
        logger.info("Index recreated")

    if not reembed:
        return None

    logger.info("Syncing all books to the index (with embedding generation)...")
    return await sync_job.run()
