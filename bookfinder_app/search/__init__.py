"""
================================================================================
BookFinder - Search Package
================================================================================
Cached, deduplicated, debounced search across the book catalogs.

Components:
  - cache.py - Merged page cache (15 min TTL, batch LRU eviction)
  - deduplicator.py - Collapses the same book from different catalogs
  - coordinator.py - Debounce, coalescing, cancellation, retry, publishing
  - models.py - SearchPage / SearchSnapshot / SearchPhase
================================================================================
"""

from .cache import CacheEntry, ResultCache, make_cache_key
from .deduplicator import SearchDeduplicator, extend_unique, merge
from .models import SearchPage, SearchPhase, SearchSnapshot
from .coordinator import SearchCoordinator

# NormalizedRecord is from sources.base, not defined here
__all__ = [
    'CacheEntry', 'ResultCache', 'make_cache_key',
    'SearchDeduplicator', 'extend_unique', 'merge',
    'SearchPage', 'SearchPhase', 'SearchSnapshot',
    'SearchCoordinator',
]
