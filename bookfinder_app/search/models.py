"""Value objects passed between the cache, the coordinator and its listeners."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from ..sources.base import NormalizedRecord, SourceTag


class SearchPhase(str, Enum):
    """Coordinator state machine."""
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SearchPage:
    """
    One merged, deduplicated page for a (query, page_number) key.

    This is what the cache stores.
    """
    query: str
    page_number: int
    records: Tuple[NormalizedRecord, ...] = ()
    has_more: bool = False
    total_results: int = 0
    fetched_at: float = 0.0
    sources: Tuple[SourceTag, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "query": self.query,
            "page_number": self.page_number,
            "records": [r.to_dict() for r in self.records],
            "has_more": self.has_more,
            "total_results": self.total_results,
            "fetched_at": self.fetched_at,
            "sources": [s.value for s in self.sources],
        }


@dataclass(frozen=True)
class SearchSnapshot:
    """
    The value published to the presentation layer.

    records is everything loaded so far for the current query.
    """
    records: Tuple[NormalizedRecord, ...] = ()
    has_more: bool = False
    loading: bool = False
    error: bool = False
    query: str = ""
    page_number: int = 1
    retry_count: int = 0
    phase: SearchPhase = SearchPhase.IDLE
    errors: Tuple[str, ...] = field(default=(), compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "has_more": self.has_more,
            "loading": self.loading,
            "error": self.error,
            "query": self.query,
            "page_number": self.page_number,
            "retry_count": self.retry_count,
            "phase": self.phase.value,
            "errors": list(self.errors),
        }
