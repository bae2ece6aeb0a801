"""
Search API Routes

Hybrid search over the whole catalog or a user's library, plus admin
index maintenance (ensure, full resync, single-record reindex/remove).
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from loguru import logger

from shelfsearch.api.dependencies import (
    Settings,
    get_book_repository,
    get_index_manager,
    get_indexer,
    get_search_engine,
    get_settings,
    get_sync_job,
    require_admin_key,
    require_user_id,
)
from shelfsearch.api.middleware.error_handler import NotFoundError, ValidationError
from shelfsearch.api.middleware.logging import annotate_request
from shelfsearch.api.schemas import (
    BookIndexResponse,
    ErrorResponse,
    IndexResponse,
    SearchHit,
    SimilarSearchRequest,
    SyncResponse,
)
from shelfsearch.search.fusion import search_mode_var


router = APIRouter(prefix="/search", tags=["search"])


def resolve_limit(raw, default: int, maximum: int) -> int:
    """
    Parse a requested result limit.

    Missing, non-numeric and non-positive values fall back to ``default``;
    anything above ``maximum`` is clamped.
    """
    try:
        limit = int(float(raw)) if raw is not None else 0
    except (TypeError, ValueError):
        limit = 0
    if limit <= 0:
        limit = default
    return min(limit, maximum)


def _settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


# =============================================================================
# Search Endpoints
# =============================================================================

@router.get(
    "",
    response_model=list[SearchHit],
    responses={
        400: {"model": ErrorResponse, "description": "Missing query"},
        503: {"model": ErrorResponse, "description": "Search unavailable"},
    },
)
async def search_books(
    request: Request,
    q: Optional[str] = Query(None, description="Free-text query"),
    limit: Optional[str] = Query(None, description="Maximum results (capped)"),
    engine=Depends(get_search_engine),
):
    """Hybrid keyword + vector search across all indexed books."""
    if not q or not q.strip():
        raise ValidationError('Search query "q" is required')

    settings = _settings(request)
    max_results = resolve_limit(limit, settings.search_default_limit, settings.search_max_limit)
    annotate_request(limit=max_results)

    results = await engine.search(q, max_results)
    annotate_request(mode=search_mode_var.get(), hits=len(results))
    return [r.to_dict() for r in results]


@router.post(
    "/similar",
    response_model=list[SearchHit],
    responses={
        400: {"model": ErrorResponse, "description": "Missing text"},
        401: {"model": ErrorResponse, "description": "Missing user"},
        503: {"model": ErrorResponse, "description": "Search unavailable"},
    },
)
async def search_similar_in_library(
    body: SimilarSearchRequest,
    request: Request,
    user_id: str = Depends(require_user_id),
    engine=Depends(get_search_engine),
    repo=Depends(get_book_repository),
):
    """Hybrid search restricted to the books in the caller's library."""
    if not body.text.strip():
        raise ValidationError('"text" is required')

    settings = _settings(request)
    max_results = resolve_limit(body.limit, settings.similar_default_limit, settings.search_max_limit)

    annotate_request(limit=max_results)

    book_ids = await asyncio.to_thread(repo.list_user_book_ids, user_id)
    annotate_request(library_size=len(book_ids))
    if not book_ids:
        return []

    results = await engine.search_within(body.text, book_ids, max_results)
    annotate_request(mode=search_mode_var.get(), hits=len(results))
    return [r.to_dict() for r in results]


# =============================================================================
# Index Maintenance Endpoints (admin)
# =============================================================================

@router.post(
    "/index",
    response_model=IndexResponse,
    dependencies=[Depends(require_admin_key)],
    responses={503: {"model": ErrorResponse, "description": "Index unavailable"}},
)
async def ensure_index(
    request: Request,
    recreate: bool = Query(False, description="Delete and recreate the index"),
    index_manager=Depends(get_index_manager),
):
    """Create the books index if missing (or recreate it)."""
    created = await index_manager.ensure_index(force_recreate=recreate)
    # The index exists now, so leave degraded mode
    request.app.state.search_available = True
    return IndexResponse(index=index_manager.index_name, created=created)


@router.post(
    "/sync",
    response_model=SyncResponse,
    dependencies=[Depends(require_admin_key)],
    responses={503: {"model": ErrorResponse, "description": "Index unavailable"}},
)
async def sync_index(
    request: Request,
    recreate: bool = Query(False, description="Recreate the index before syncing"),
    sync_job=Depends(get_sync_job),
):
    """Re-sync every canonical record into the index, with embeddings."""
    if not recreate and not getattr(request.app.state, "search_available", True):
        # Startup could not ensure the index; writes must not auto-create it
        await sync_job.index_manager.ensure_index()

    report = await sync_job.run(force_recreate=recreate)
    request.app.state.search_available = True
    logger.info(f"Sync requested via API: {report.indexed}/{report.total} indexed")
    annotate_request(synced=report.indexed, failed=report.failed, without_vector=len(report.without_vector_ids))

    return SyncResponse(synced=report.indexed, **{
        k: v for k, v in report.to_dict().items() if k != "indexed"
    })


@router.put(
    "/books/{book_id}",
    response_model=BookIndexResponse,
    dependencies=[Depends(require_admin_key)],
    responses={404: {"model": ErrorResponse, "description": "Book not found"}},
)
async def reindex_book(
    book_id: str,
    repo=Depends(get_book_repository),
    indexer=Depends(get_indexer),
):
    """Reindex one record from the canonical store."""
    record = await asyncio.to_thread(repo.get, book_id)
    if record is None:
        raise NotFoundError("Book", book_id)

    outcome = await indexer.index_book(record)
    await indexer.index_manager.refresh()
    annotate_request(has_vector=outcome.has_vector)

    return BookIndexResponse(id=book_id, indexed=True, has_vector=outcome.has_vector)


@router.delete(
    "/books/{book_id}",
    response_model=BookIndexResponse,
    dependencies=[Depends(require_admin_key)],
    responses={404: {"model": ErrorResponse, "description": "Book not indexed"}},
)
async def remove_book(
    book_id: str,
    indexer=Depends(get_indexer),
):
    """Remove one record's document from the index."""
    removed = await indexer.remove_book(book_id)
    if not removed:
        raise NotFoundError("Indexed book", book_id)

    await indexer.index_manager.refresh()
    return BookIndexResponse(id=book_id, removed=True)
