"""
================================================================================
BookFinder - Source Registry
================================================================================
The closed set of catalog adapters and their merge priority.

Merge order matters: when two catalogs return the same book, the record
from the higher-priority catalog is the one that survives deduplication.
================================================================================
"""

from typing import List, Optional

import httpx

from .base import (
    BaseSourceAdapter, NormalizedRecord, SourceResult, SourceTag,
    UNKNOWN_TOTAL, build_record, sanitize_text, sanitize_authors
)
from .openlibrary import OpenLibraryAdapter
from .google_books import GoogleBooksAdapter
from ..config import SearchConfig

# Lower number = merged first
SOURCE_PRIORITY = {
    SourceTag.OPEN_LIBRARY: 1,
    SourceTag.GOOGLE_BOOKS: 2,
}


def sort_by_priority(adapters: List[BaseSourceAdapter]) -> List[BaseSourceAdapter]:
    """Order adapters by SOURCE_PRIORITY (unknown tags go last, stable)."""
    return sorted(adapters, key=lambda a: SOURCE_PRIORITY.get(a.tag, 999))


def build_default_adapters(
    config: SearchConfig,
    client: Optional[httpx.AsyncClient] = None
) -> List[BaseSourceAdapter]:
    """
    Instantiate every known catalog adapter in priority order.

    Args:
        config: Supplies timeout, User-Agent and the Google Books API key
        client: Optional shared HTTP client (the caller then owns closing it)
    """
    adapters: List[BaseSourceAdapter] = [
        OpenLibraryAdapter(
            client=client,
            timeout=config.request_timeout,
            user_agent=config.user_agent,
        ),
        GoogleBooksAdapter(
            client=client,
            timeout=config.request_timeout,
            user_agent=config.user_agent,
            api_key=config.google_api_key,
        ),
    ]
    return sort_by_priority(adapters)


__all__ = [
    'BaseSourceAdapter', 'NormalizedRecord', 'SourceResult', 'SourceTag',
    'UNKNOWN_TOTAL', 'build_record', 'sanitize_text', 'sanitize_authors',
    'OpenLibraryAdapter', 'GoogleBooksAdapter', 'SOURCE_PRIORITY',
    'sort_by_priority', 'build_default_adapters',
]
