"""
================================================================================
BookFinder - Search Coordinator
================================================================================
Owns the query/page state and drives the fetch pipeline.

Flow:
  1. set_query() restarts a debounce window (300ms)
  2. The settled query resets page/records and starts fetching page 1
  3. Cache hit -> publish immediately, no network
  4. Cache miss -> all catalogs queried concurrently (10s ceiling each)
  5. Surviving catalogs merged + deduplicated, cached, published
  6. Every catalog failed -> retry with backoff (1s, 2s), then FAILED

State machine:
  IDLE -> DEBOUNCING -> FETCHING -> SUCCEEDED | RETRYING | FAILED

Ordering:
  - One fetch per cache key at a time (duplicates coalesce)
  - A newer query cancels older work; stale results never land
  - Page 1 replaces the record list, later pages extend it
================================================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .cache import ResultCache, make_cache_key
from .deduplicator import SearchDeduplicator
from .models import SearchPage, SearchPhase, SearchSnapshot
from ..cancellation import CancellationToken
from ..config import SearchConfig
from ..errors import AdapterFailure, AllSourcesFailed, SearchCanceled, SearchTimeout
from ..log import debug_log_event
from ..sources import sort_by_priority
from ..sources.base import (
    UNKNOWN_TOTAL, BaseSourceAdapter, NormalizedRecord, SourceResult, sanitize_text
)

logger = logging.getLogger(__name__)

Listener = Callable[[SearchSnapshot], None]


@dataclass
class _InFlight:
    """A fetch currently running for one cache key."""
    key: str
    query: str
    page_number: int
    token: CancellationToken
    task: Optional[asyncio.Task] = None


class SearchCoordinator:
    """
    Debounced, cached, cancellable multi-catalog search.

    The coordinator is the only writer of the cache and of the published
    state. All public methods must be called from the event loop thread.

    Usage:
        coordinator = SearchCoordinator(adapters, ResultCache(), config)
        coordinator.subscribe(render)

        coordinator.set_query("dune")
        ...
        coordinator.load_more()
    """

    def __init__(
        self,
        adapters: Iterable[BaseSourceAdapter],
        cache: ResultCache,
        config: Optional[SearchConfig] = None,
        deduplicator: Optional[SearchDeduplicator] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            adapters: Catalog adapters; merged in SOURCE_PRIORITY order
            cache: Shared result cache (may outlive this coordinator)
            config: Tunables (defaults when omitted)
            deduplicator: Similarity rule used for merging and paging
            sleep: Backoff sleep, injectable for tests
            clock: Time source for fetched_at stamps
        """
        self.adapters: List[BaseSourceAdapter] = sort_by_priority(list(adapters))
        if not self.adapters:
            raise ValueError("SearchCoordinator needs at least one adapter")

        self.cache = cache
        self.config = config or SearchConfig()
        self.deduplicator = deduplicator or SearchDeduplicator()
        self._sleep = sleep
        self._clock = clock

        # Session state (reset whenever debounced_query changes)
        self.raw_query: str = ""
        self.debounced_query: Optional[str] = None
        self.page_number: int = 1
        self._records: List[NormalizedRecord] = []
        self.has_more: bool = False
        self.loading: bool = False
        self.error: bool = False
        self.retry_count: int = 0
        self.phase: SearchPhase = SearchPhase.IDLE
        self._errors: Tuple[str, ...] = ()

        self._phase_before_debounce: SearchPhase = SearchPhase.IDLE
        self._debounce_task: Optional[asyncio.Task] = None
        self._in_flight: Dict[str, _InFlight] = {}

        self._listeners: List[Listener] = []
        self._snapshot = SearchSnapshot()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @property
    def state(self) -> SearchSnapshot:
        """Latest published snapshot."""
        return self._snapshot

    def snapshot(self) -> SearchSnapshot:
        """Latest published snapshot (same object as `state`)."""
        return self._snapshot

    @property
    def records(self) -> Tuple[NormalizedRecord, ...]:
        return self._snapshot.records

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for state changes.

        The listener is called right away with the current snapshot, then
        after every change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)
        self._notify(listener, self._snapshot)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def normalize_query(self, text: str) -> str:
        """Sanitize user input; blank input falls back to default_query."""
        return sanitize_text(text) or self.config.default_query

    def set_query(self, text: str) -> None:
        """
        Record a raw query change and restart the debounce window.

        Only the value present when the window elapses uninterrupted is
        searched for.
        """
        self.raw_query = text

        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

        if self._is_active_query(self.normalize_query(text)):
            # Typed back to what is already showing
            if self.phase == SearchPhase.DEBOUNCING:
                self.phase = self._phase_before_debounce
                self._publish()
            return

        if self.phase != SearchPhase.DEBOUNCING:
            self._phase_before_debounce = self.phase
            self.phase = SearchPhase.DEBOUNCING
            self._publish()

        loop = asyncio.get_running_loop()
        self._debounce_task = loop.create_task(self._debounce(text))

    def load_more(self) -> bool:
        """
        Advance to the next page for the current query.

        Ignored while loading, after a failure, when there is nothing more
        or before any query has settled.

        Returns:
            True if a fetch was started (or served from cache)
        """
        if self.debounced_query is None or self.loading or self.error or not self.has_more:
            return False

        self.page_number += 1
        logger.debug(f"Loading page {self.page_number} for '{self.debounced_query}'")
        self._start_fetch()
        return True

    def retry(self) -> bool:
        """
        Re-enter fetching for the failed key with a fresh attempt counter.

        Returns:
            True if a retry was started
        """
        if self.phase != SearchPhase.FAILED or self.debounced_query is None:
            return False

        logger.info(f"Manual retry for '{self.debounced_query}' page {self.page_number}")
        self.retry_count = 0
        self.error = False
        self._errors = ()
        self._start_fetch()
        return True

    async def wait_until_idle(self) -> None:
        """Wait for the pending debounce window and every in-flight fetch."""
        while True:
            pending = [t for t in self._pending_tasks() if not t.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    async def close(self) -> None:
        """Cancel pending work and close adapter HTTP clients."""
        tasks = [t for t in self._pending_tasks() if not t.done()]
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None
        self._cancel_in_flight(reason="coordinator closed")

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for adapter in self.adapters:
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Closing {adapter.id} failed: {e}")

        self.loading = False
        self._listeners.clear()

    # =========================================================================
    # DEBOUNCE
    # =========================================================================

    async def _debounce(self, text: str) -> None:
        await asyncio.sleep(self.config.debounce_delay)
        if self._debounce_task is asyncio.current_task():
            self._debounce_task = None
        self._commit_query(self.normalize_query(text))

    def _is_active_query(self, query: str) -> bool:
        """True if query maps to the same cache keys as the committed one."""
        if self.debounced_query is None:
            return False
        return make_cache_key(query, 1) == make_cache_key(self.debounced_query, 1)

    def _commit_query(self, query: str) -> None:
        """The debounce window elapsed: make query the active one."""
        if self._is_active_query(query):
            if self.phase == SearchPhase.DEBOUNCING:
                self.phase = self._phase_before_debounce
                self._publish()
            return

        previous = self.debounced_query
        self._cancel_in_flight(reason=f"query changed to '{query}'")

        self.debounced_query = query
        self.page_number = 1
        self._records = []
        self.has_more = False
        self.error = False
        self.retry_count = 0
        self._errors = ()

        logger.info(f"Query changed: {previous!r} -> {query!r}")
        self._start_fetch()

    # =========================================================================
    # FETCH PIPELINE
    # =========================================================================

    def _start_fetch(self) -> None:
        query = self.debounced_query
        page_number = self.page_number
        key = make_cache_key(query, page_number)

        if key in self._in_flight:
            logger.debug(f"Coalesced duplicate request for '{query}' page {page_number}")
            return

        # Only the current key may have work outstanding
        self._cancel_in_flight(reason="superseded")

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Cache HIT for '{query}' page {page_number} ({len(cached.records)} records)")
            self._apply_page(cached)
            return

        logger.info(f"Cache MISS - searching '{query}' page {page_number} across {len(self.adapters)} sources")

        entry = _InFlight(
            key=key,
            query=query,
            page_number=page_number,
            token=CancellationToken(key),
        )
        self._in_flight[key] = entry

        self.loading = True
        self.error = False
        self.phase = SearchPhase.FETCHING
        self._publish()

        loop = asyncio.get_running_loop()
        entry.task = loop.create_task(self._run_fetch(entry))

    async def _run_fetch(self, entry: _InFlight) -> None:
        start_time = time.time()
        attempt = 0

        try:
            while True:
                entry.token.raise_if_canceled()
                try:
                    page = await self._fetch_from_sources(entry)
                    break
                except AllSourcesFailed as e:
                    if attempt >= self.config.max_retries:
                        self._fail(entry, e)
                        return

                    delay = self.config.backoff_base ** attempt
                    attempt += 1
                    logger.warning(
                        f"{e} for '{entry.query}' page {entry.page_number}, "
                        f"retry {attempt}/{self.config.max_retries} in {delay:.1f}s"
                    )
                    if self._is_current(entry):
                        self.retry_count = attempt
                        self.phase = SearchPhase.RETRYING
                        self._publish()

                    await self._sleep(delay)

            if not self._is_current(entry):
                logger.debug(f"Discarding stale result for '{entry.query}' page {entry.page_number}")
                return

            self.cache.set(entry.key, page)
            self._apply_page(page)

            elapsed = time.time() - start_time
            logger.info(
                f"Search for '{entry.query}' page {entry.page_number} completed in {elapsed:.2f}s "
                f"({len(page.records)} records)"
            )

        except SearchCanceled as e:
            logger.debug(f"Canceled: {e}")

        finally:
            if self._in_flight.get(entry.key) is entry:
                del self._in_flight[entry.key]

    async def _fetch_from_sources(self, entry: _InFlight) -> SearchPage:
        """
        Query every adapter concurrently and merge whatever succeeded.

        Raises:
            AllSourcesFailed: If no adapter produced a result
            SearchCanceled: If the token was cancelled meanwhile
        """
        start_time = time.time()
        outcomes = await asyncio.gather(
            *(self._call_adapter(adapter, entry) for adapter in self.adapters),
            return_exceptions=True
        )

        entry.token.raise_if_canceled()

        record_lists: List[List[NormalizedRecord]] = []
        totals: List[int] = []
        answered = []
        failures: List[AdapterFailure] = []
        outcome_log: Dict[str, str] = {}

        for adapter, outcome in zip(self.adapters, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

            if isinstance(outcome, SourceResult):
                record_lists.append(outcome.records)
                answered.append(adapter.tag)
                if outcome.total_results is not UNKNOWN_TOTAL:
                    totals.append(outcome.total_results)
                outcome_log[adapter.id] = f"ok ({len(outcome.records)})"
                continue

            if isinstance(outcome, AdapterFailure):
                failure = outcome
            elif isinstance(outcome, Exception):
                failure = AdapterFailure(adapter.id, repr(outcome))
            else:
                failure = AdapterFailure(adapter.id, f"unexpected result {type(outcome).__name__}")

            failures.append(failure)
            outcome_log[adapter.id] = str(failure)
            logger.error(f"Search failed for {adapter.id}: {failure}")

        debug_log_event({
            'event': 'search_fetch',
            'query': entry.query,
            'page': entry.page_number,
            'sources': outcome_log,
            'duration_ms': int((time.time() - start_time) * 1000),
        })

        if not answered:
            raise AllSourcesFailed(failures)

        records = self.deduplicator.merge(record_lists)
        threshold = entry.page_number * self.config.page_size

        return SearchPage(
            query=entry.query,
            page_number=entry.page_number,
            records=tuple(records),
            has_more=any(total > threshold for total in totals),
            total_results=max(totals, default=0),
            fetched_at=self._clock(),
            sources=tuple(answered),
        )

    async def _call_adapter(self, adapter: BaseSourceAdapter, entry: _InFlight) -> SourceResult:
        """Run one adapter under the per-request timeout."""
        try:
            return await asyncio.wait_for(
                adapter.fetch_page(
                    entry.query,
                    entry.page_number,
                    self.config.page_size,
                    entry.token
                ),
                timeout=self.config.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise SearchTimeout(adapter.id, self.config.request_timeout) from e

    # =========================================================================
    # STATE MUTATION (only after the staleness checks above)
    # =========================================================================

    def _is_current(self, entry: _InFlight) -> bool:
        return (
            not entry.token.canceled
            and entry.query == self.debounced_query
            and entry.page_number == self.page_number
        )

    def _apply_page(self, page: SearchPage) -> None:
        if page.page_number == 1:
            self._records = list(page.records)
        else:
            self._records = self.deduplicator.extend_unique(self._records, page.records)

        self.has_more = page.has_more
        self.loading = False
        self.error = False
        self.retry_count = 0
        self._errors = ()
        self.phase = SearchPhase.SUCCEEDED
        self._publish()

    def _fail(self, entry: _InFlight, exc: AllSourcesFailed) -> None:
        if not self._is_current(entry):
            return

        logger.error(
            f"Giving up on '{entry.query}' page {entry.page_number} "
            f"after {self.retry_count} retries: {exc}"
        )
        self.loading = False
        self.error = True
        self.phase = SearchPhase.FAILED
        self._errors = tuple(str(f) for f in exc.failures)
        self._publish()

    def _cancel_in_flight(self, reason: str) -> None:
        """Cancel and forget every in-flight fetch."""
        for key, entry in list(self._in_flight.items()):
            entry.token.cancel(reason)
            if entry.task is not None and not entry.task.done():
                entry.task.cancel()
            del self._in_flight[key]
            logger.debug(f"Canceled fetch for '{entry.query}' page {entry.page_number}: {reason}")

    def _pending_tasks(self) -> List[asyncio.Task]:
        tasks = [entry.task for entry in self._in_flight.values() if entry.task is not None]
        if self._debounce_task is not None:
            tasks.append(self._debounce_task)
        return tasks

    # =========================================================================
    # PUBLISHING
    # =========================================================================

    def _publish(self) -> None:
        self._snapshot = SearchSnapshot(
            records=tuple(self._records),
            has_more=self.has_more,
            loading=self.loading,
            error=self.error,
            query=self.debounced_query or "",
            page_number=self.page_number,
            retry_count=self.retry_count,
            phase=self.phase,
            errors=self._errors,
        )
        for listener in list(self._listeners):
            self._notify(listener, self._snapshot)

    def _notify(self, listener: Listener, snapshot: SearchSnapshot) -> None:
        try:
            listener(snapshot)
        except Exception as e:
            logger.error(f"Search listener {listener!r} failed: {e}")
