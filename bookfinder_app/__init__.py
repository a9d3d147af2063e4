"""
================================================================================
BookFinder - Search Acquisition Layer
================================================================================
Fetches book results from Open Library and Google Books, merges and
deduplicates them, caches merged pages, and publishes one incremental
result stream {records, has_more, loading, error} to a presentation layer.

Usage:
    coordinator = create_coordinator()
    coordinator.subscribe(render)
    coordinator.set_query("dune")
    coordinator.load_more()
    ...
    await coordinator.close()
================================================================================
"""

import os
from typing import Optional

import httpx

from .config import SearchConfig
from .errors import (
    AdapterFailure, AllSourcesFailed, ConfigError, SearchCanceled,
    SearchError, SearchTimeout
)
from .log import configure_logging
from .sources import build_default_adapters
from .search import ResultCache, SearchCoordinator

__version__ = "1.0.0"


def create_cache(config: SearchConfig) -> ResultCache:
    """Build a ResultCache sized by config; share it between coordinators if needed."""
    return ResultCache(
        ttl=config.cache_ttl,
        max_size=config.cache_capacity,
        eviction_fraction=config.eviction_fraction,
    )


def create_coordinator(
    config: Optional[SearchConfig] = None,
    cache: Optional[ResultCache] = None,
    client: Optional[httpx.AsyncClient] = None
) -> SearchCoordinator:
    """
    Wire config, cache and the default adapters into a SearchCoordinator.

    Args:
        config: Defaults to SearchConfig.from_env()
        cache: Defaults to a new cache owned by the returned coordinator
        client: Optional shared HTTP client for every adapter
    """
    if config is None:
        config = SearchConfig.from_env()
        configure_logging(log_file=os.environ.get('BOOKFINDER_LOG_FILE') or None)
    else:
        config.validate()

    return SearchCoordinator(
        adapters=build_default_adapters(config, client=client),
        cache=cache if cache is not None else create_cache(config),
        config=config,
    )


__all__ = [
    'SearchConfig', 'ResultCache', 'SearchCoordinator',
    'create_cache', 'create_coordinator', 'configure_logging',
    'SearchError', 'ConfigError', 'AdapterFailure', 'SearchTimeout',
    'AllSourcesFailed', 'SearchCanceled',
]
