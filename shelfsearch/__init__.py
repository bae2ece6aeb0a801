"""
ShelfSearch - hybrid search and ranking for a personal library catalog.
"""

__version__ = "1.0.0"
