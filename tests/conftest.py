import pytest

from bookfinder_app.config import SearchConfig
from bookfinder_app.search import ResultCache, SearchCoordinator
from bookfinder_app.sources.base import SourceTag

from .utils import FakeAdapter, FakeClock, SleepRecorder


@pytest.fixture
def config():
    return SearchConfig(page_size=2, debounce_delay=0, request_timeout=1.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def open_library():
    return FakeAdapter(SourceTag.OPEN_LIBRARY)


@pytest.fixture
def google_books():
    return FakeAdapter(SourceTag.GOOGLE_BOOKS)


@pytest.fixture
def cache(config):
    return ResultCache(ttl=config.cache_ttl, max_size=config.cache_capacity)


@pytest.fixture
def coordinator(open_library, google_books, cache, config, sleeper):
    # Deliberately passed out of priority order
    return SearchCoordinator(
        adapters=[google_books, open_library],
        cache=cache,
        config=config,
        sleep=sleeper,
    )
