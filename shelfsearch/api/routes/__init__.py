"""
API Routes for ShelfSearch

Route modules:
- search: Hybrid search and index maintenance
"""

from shelfsearch.api.routes.search import router as search_router

__all__ = [
    "search_router",
]
