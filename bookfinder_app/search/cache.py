"""
Cache layer for merged search pages.

Design:
  - In-memory dict cache (no persistence, empty on every start)
  - TTL-based expiration (15 minutes), checked lazily on lookup
  - Thread-safe with locks
  - Batch LRU eviction: when full, the least recently accessed ~20%
    of entries go at once

Usage:
    cache = ResultCache(ttl=900, max_size=100)

    key = make_cache_key("dune", 1)
    cache.set(key, page)
    cached = cache.get(key)

    stats = cache.stats()
"""

import json
import time
import hashlib
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from collections import OrderedDict

from .models import SearchPage


# Rough bytes per serialized character (UTF-16-ish); diagnostic only
BYTES_PER_CHAR = 2


def make_cache_key(query: str, page_number: int) -> str:
    """
    Generate cache key from query and page.

    Returns:
        MD5 hash of normalized query + page number
    """
    data = f"{query.lower().strip()}:{page_number}"
    return hashlib.md5(data.encode()).hexdigest()


def estimate_size(page: SearchPage) -> int:
    """Approximate memory footprint of a page (serialized length x constant)."""
    return len(json.dumps(page.to_dict(), separators=(',', ':'))) * BYTES_PER_CHAR


@dataclass
class CacheEntry:
    key: str
    payload: SearchPage
    created_at: float
    last_accessed_at: float
    access_count: int = 0
    estimated_byte_size: int = 0


class ResultCache:
    """Thread-safe in-memory cache for merged search pages."""

    def __init__(
        self,
        ttl: float = 900,
        max_size: int = 100,
        eviction_fraction: float = 0.2,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize cache.

        Args:
            ttl: Time-to-live in seconds (default: 15 minutes)
            max_size: Maximum cache entries (default: 100)
            eviction_fraction: Share of entries dropped when full (default: 20%)
            clock: Time source, injectable for tests
        """
        self.ttl = ttl
        self.max_size = max_size
        self.eviction_fraction = eviction_fraction
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl

    def get(self, key: str) -> Optional[SearchPage]:
        """
        Get cached page if not expired.

        An expired entry is removed and counted as a miss.

        Returns:
            Cached SearchPage or None if not found/expired
        """
        now = self._clock()

        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            # Check expiration
            if self._is_expired(entry, now):
                del self._cache[key]
                self._misses += 1
                return None

            entry.last_accessed_at = now
            entry.access_count += 1
            self._cache.move_to_end(key)
            self._hits += 1

            return entry.payload

    def has(self, key: str) -> bool:
        """Check for a live entry without touching hit/miss counters."""
        now = self._clock()

        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            if self._is_expired(entry, now):
                del self._cache[key]
                return False
            return True

    def set(self, key: str, payload: SearchPage):
        """
        Cache a merged page.

        When the key is new and the cache is full, expired entries are
        dropped first; if that frees nothing, the least recently accessed
        batch is evicted.
        """
        now = self._clock()
        size = estimate_size(payload)

        with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_size:
                self._evict_expired_locked(now)
                if len(self._cache) >= self.max_size:
                    self._evict_batch_locked()

            self._cache[key] = CacheEntry(
                key=key,
                payload=payload,
                created_at=now,
                last_accessed_at=now,
                estimated_byte_size=size,
            )
            self._cache.move_to_end(key)

    def _evict_batch_locked(self) -> int:
        """Drop the oldest eviction_fraction of entries by last access (min 1)."""
        count = max(1, int(len(self._cache) * self.eviction_fraction))
        oldest = sorted(self._cache.values(), key=lambda e: e.last_accessed_at)[:count]
        for entry in oldest:
            del self._cache[entry.key]
        return count

    def _evict_expired_locked(self, now: float) -> int:
        expired_keys = [
            key for key, entry in self._cache.items()
            if self._is_expired(entry, now)
        ]
        for key in expired_keys:
            del self._cache[key]
        return len(expired_keys)

    def clear(self):
        """Clear all cache entries and reset statistics."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with cache metrics:
                - size: Current number of entries
                - max_size: Maximum capacity
                - ttl: Time-to-live in seconds
                - hit_count: Cache hit count
                - miss_count: Cache miss count
                - hit_rate: Percentage of cache hits
                - approx_memory_bytes: Estimated payload size
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

            return {
                'size': len(self._cache),
                'max_size': self.max_size,
                'ttl': self.ttl,
                'hit_count': self._hits,
                'miss_count': self._misses,
                'hit_rate': round(hit_rate, 2),
                'approx_memory_bytes': sum(e.estimated_byte_size for e in self._cache.values()),
            }

    def evict_expired(self) -> int:
        """
        Manually evict all expired entries.

        Returns:
            Number of entries evicted
        """
        with self._lock:
            return self._evict_expired_locked(self._clock())

    def __len__(self) -> int:
        return len(self._cache)
