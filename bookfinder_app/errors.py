"""
Exception hierarchy for the search pipeline.

Only AllSourcesFailed ever reaches the coordinator's retry loop; the
others are absorbed (AdapterFailure, SearchTimeout) or dropped silently
(SearchCanceled).
"""

from typing import List, Optional


class SearchError(Exception):
    """Base class for every error raised by bookfinder_app."""


class ConfigError(SearchError):
    """Raised when a configuration value is missing or invalid."""


class AdapterFailure(SearchError):
    """One catalog was unreachable or returned something we can't use."""

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        super().__init__(f"{source_id}: {message}")


class SearchTimeout(AdapterFailure):
    """A catalog did not answer within the per-request ceiling."""

    def __init__(self, source_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(source_id, f"timed out after {timeout:.1f}s")


class AllSourcesFailed(SearchError):
    """Every adapter failed for the same cache key."""

    def __init__(self, failures: Optional[List[AdapterFailure]] = None):
        self.failures = list(failures or [])
        sources = ', '.join(f.source_id for f in self.failures) or 'none'
        super().__init__(f"All sources failed ({sources})")


class SearchCanceled(SearchError):
    """Work superseded by a newer request."""
