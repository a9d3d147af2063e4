import asyncio

from bookfinder_app.errors import AdapterFailure
from bookfinder_app.sources.base import (
    UNKNOWN_TOTAL, BaseSourceAdapter, NormalizedRecord, SourceResult, SourceTag
)


def make_record(title, authors=("Someone",), source=SourceTag.OPEN_LIBRARY, record_id=None):
    return NormalizedRecord(
        id=record_id or f"{source.value}:{title}",
        title=title,
        authors=tuple(authors),
        source=source,
    )


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class SleepRecorder:
    """Stands in for asyncio.sleep during backoff; records the delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeAdapter(BaseSourceAdapter):
    """In-memory catalog: pages keyed by (query, page_number)."""

    def __init__(self, tag, pages=None, total=UNKNOWN_TOTAL, failures=0):
        super().__init__()
        self.tag = tag
        self.id = tag.value
        self.pages = pages or {}
        self.total = total
        self.failures_left = failures
        self.calls = []
        self.gates = {}
        self.closed = False

    def gate(self, query):
        """Block fetches for query until the returned event is set."""
        event = asyncio.Event()
        self.gates[query] = event
        return event

    async def fetch_page(self, query, page_number, page_size, token):
        self.calls.append((query, page_number))

        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()

        token.raise_if_canceled()

        if self.failures_left > 0:
            self.failures_left -= 1
            raise AdapterFailure(self.id, "catalog unavailable")

        return SourceResult(
            records=list(self.pages.get((query, page_number), [])),
            total_results=self.total,
        )

    async def close(self):
        self.closed = True


async def wait_for(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


