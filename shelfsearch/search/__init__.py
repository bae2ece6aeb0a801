"""
Search Module for ShelfSearch

Hybrid keyword + vector search over an Elasticsearch books index:
- Record to document mapping and embedding text
- Index lifecycle and writes
- Keyword and vector retrievers
- Score fusion
- Per-record indexing and full resync
"""

from shelfsearch.search.types import (
    SearchDocument,
    Candidate,
    RankedResult,
)
from shelfsearch.search.document_mapper import (
    build_book_text,
    to_search_document,
)
from shelfsearch.search.index_manager import IndexManager
from shelfsearch.search.retrievers import (
    KeywordRetriever,
    VectorRetriever,
)
from shelfsearch.search.fusion import (
    HybridSearchEngine,
    fuse_candidates,
    normalize_scores,
)
from shelfsearch.search.indexer import BookIndexer, IndexOutcome
from shelfsearch.search.sync import SyncJob, SyncReport

__all__ = [
    # Types
    "SearchDocument",
    "Candidate",
    "RankedResult",
    # Mapping
    "build_book_text",
    "to_search_document",
    # Index
    "IndexManager",
    # Retrieval
    "KeywordRetriever",
    "VectorRetriever",
    # Fusion
    "HybridSearchEngine",
    "fuse_candidates",
    "normalize_scores",
    # Ingestion
    "BookIndexer",
    "IndexOutcome",
    "SyncJob",
    "SyncReport",
]
