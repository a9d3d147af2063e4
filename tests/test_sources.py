import httpx
import pytest

from bookfinder_app.cancellation import CancellationToken
from bookfinder_app.config import SearchConfig
from bookfinder_app.errors import AdapterFailure, SearchCanceled
from bookfinder_app.sources import (
    GoogleBooksAdapter, OpenLibraryAdapter, build_default_adapters
)
from bookfinder_app.sources.base import (
    UNKNOWN_TOTAL, SourceTag, build_record, sanitize_authors, sanitize_text
)


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# SANITIZATION
# =============================================================================

def test_sanitize_strips_markup_and_control_chars():
    assert sanitize_text("<b>Dune</b>\x00\u200b  Messiah\n") == "Dune Messiah"
    assert sanitize_text("Pride &amp; Prejudice") == "Pride & Prejudice"
    assert sanitize_text(None) == ""
    assert sanitize_text(42) == ""


def test_sanitize_authors_falls_back_to_unknown():
    assert sanitize_authors(None) == ("Unknown",)
    assert sanitize_authors(["", "<i></i>"]) == ("Unknown",)
    assert sanitize_authors("Frank Herbert") == ("Frank Herbert",)
    assert sanitize_authors([" Frank\tHerbert ", None]) == ("Frank Herbert",)


def test_build_record_drops_unusable_titles():
    assert build_record("id1", "<br/>\x07", SourceTag.OPEN_LIBRARY) is None
    assert build_record(None, "Dune", SourceTag.OPEN_LIBRARY) is None
    assert build_record("", "Dune", SourceTag.OPEN_LIBRARY) is None

    record = build_record("id1", " Dune ", SourceTag.GOOGLE_BOOKS, links={'info': None, 'preview': 'https://x'})
    assert record.title == "Dune"
    assert record.authors == ("Unknown",)
    assert record.links == {'preview': 'https://x'}
    assert record.to_dict()['source'] == "google_books"


# =============================================================================
# OPEN LIBRARY
# =============================================================================

OPEN_LIBRARY_PAYLOAD = {
    "numFound": 120,
    "docs": [
        {
            "key": "/works/OL893415W",
            "title": "Dune",
            "author_name": ["Frank Herbert"],
            "cover_i": 11481354,
            "first_publish_year": 1965,
        },
        {"key": "/works/OL1W", "title": "  <script></script> "},
        {"key": "/works/OL2W", "title": "Untitled authors"},
        "garbage",
    ],
}


@pytest.mark.asyncio
async def test_open_library_maps_docs():
    seen = {}

    def handler(request):
        seen['url'] = request.url
        return httpx.Response(200, json=OPEN_LIBRARY_PAYLOAD)

    async with mock_client(handler) as client:
        adapter = OpenLibraryAdapter(client=client)
        result = await adapter.fetch_page("dune", 2, 40, CancellationToken())

    assert seen['url'].path == "/search.json"
    assert seen['url'].params['q'] == "dune"
    assert seen['url'].params['page'] == "2"
    assert seen['url'].params['limit'] == "40"

    assert result.total_results == 120
    assert [r.title for r in result.records] == ["Dune", "Untitled authors"]

    dune = result.records[0]
    assert dune.id == "/works/OL893415W"
    assert dune.authors == ("Frank Herbert",)
    assert dune.thumbnail_url == "https://covers.openlibrary.org/b/id/11481354-M.jpg"
    assert dune.published_date == "1965"
    assert dune.source == SourceTag.OPEN_LIBRARY
    assert dune.links['details'] == "https://openlibrary.org/works/OL893415W"
    assert dune.links['preview'].endswith("/preview")
    assert dune.links['info'].endswith("/about")

    assert result.records[1].authors == ("Unknown",)
    assert result.records[1].thumbnail_url is None


@pytest.mark.asyncio
async def test_open_library_missing_count_is_unknown():
    def handler(request):
        return httpx.Response(200, json={"docs": []})

    async with mock_client(handler) as client:
        result = await OpenLibraryAdapter(client=client).fetch_page("x", 1, 40, CancellationToken())

    assert result.records == []
    assert result.total_results is UNKNOWN_TOTAL


@pytest.mark.asyncio
async def test_open_library_server_error_is_adapter_failure():
    def handler(request):
        return httpx.Response(503)

    async with mock_client(handler) as client:
        with pytest.raises(AdapterFailure) as exc_info:
            await OpenLibraryAdapter(client=client).fetch_page("x", 1, 40, CancellationToken())

    assert exc_info.value.source_id == "open_library"
    assert "503" in str(exc_info.value)


@pytest.mark.asyncio
async def test_invalid_json_is_adapter_failure():
    def handler(request):
        return httpx.Response(200, content=b"<html>maintenance</html>")

    async with mock_client(handler) as client:
        with pytest.raises(AdapterFailure):
            await OpenLibraryAdapter(client=client).fetch_page("x", 1, 40, CancellationToken())


@pytest.mark.asyncio
async def test_malformed_envelope_is_adapter_failure():
    def handler(request):
        return httpx.Response(200, json=["not", "an", "object"])

    async with mock_client(handler) as client:
        with pytest.raises(AdapterFailure):
            await GoogleBooksAdapter(client=client).fetch_page("x", 1, 40, CancellationToken())


@pytest.mark.asyncio
async def test_transport_error_is_adapter_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(AdapterFailure):
            await GoogleBooksAdapter(client=client).fetch_page("x", 1, 40, CancellationToken())


@pytest.mark.asyncio
async def test_cancelled_token_skips_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=OPEN_LIBRARY_PAYLOAD)

    token = CancellationToken("k")
    token.cancel()

    async with mock_client(handler) as client:
        with pytest.raises(SearchCanceled):
            await OpenLibraryAdapter(client=client).fetch_page("x", 1, 40, token)

    assert calls == []


# =============================================================================
# GOOGLE BOOKS
# =============================================================================

GOOGLE_PAYLOAD = {
    "totalItems": 57,
    "items": [
        {
            "id": "B1hSG45JCX4C",
            "volumeInfo": {
                "title": "Dune",
                "authors": ["Frank Herbert"],
                "publishedDate": "2005-08-02",
                "imageLinks": {"thumbnail": "http://books.google.com/books/content?id=B1hSG45JCX4C"},
                "previewLink": "http://books.google.com/books?id=B1hSG45JCX4C&printsec=frontcover",
                "infoLink": "http://books.google.com/books?id=B1hSG45JCX4C",
            },
        },
        {"id": "nope"},
        {"id": "x2", "volumeInfo": {"title": "Anonymous Work"}},
    ],
}


@pytest.mark.asyncio
async def test_google_books_maps_volumes():
    seen = {}

    def handler(request):
        seen['url'] = request.url
        return httpx.Response(200, json=GOOGLE_PAYLOAD)

    async with mock_client(handler) as client:
        adapter = GoogleBooksAdapter(client=client, api_key="secret")
        result = await adapter.fetch_page("dune", 3, 40, CancellationToken())

    assert seen['url'].path == "/books/v1/volumes"
    assert seen['url'].params['startIndex'] == "80"
    assert seen['url'].params['maxResults'] == "40"
    assert seen['url'].params['key'] == "secret"

    assert result.total_results == 57
    assert [r.id for r in result.records] == ["B1hSG45JCX4C", "x2"]

    dune = result.records[0]
    assert dune.source == SourceTag.GOOGLE_BOOKS
    assert dune.published_date == "2005-08-02"
    assert dune.thumbnail_url.startswith("https://books.google.com/")
    assert set(dune.links) == {'preview', 'info'}
    assert result.records[1].authors == ("Unknown",)


@pytest.mark.asyncio
async def test_google_books_caps_page_size_and_omits_key():
    seen = {}

    def handler(request):
        seen['url'] = request.url
        return httpx.Response(200, json={"totalItems": 0})

    async with mock_client(handler) as client:
        result = await GoogleBooksAdapter(client=client).fetch_page("x", 1, 60, CancellationToken())

    assert seen['url'].params['maxResults'] == "40"
    assert 'key' not in seen['url'].params
    assert result.records == []
    assert result.total_results == 0


# =============================================================================
# REGISTRY / LIFECYCLE
# =============================================================================

@pytest.mark.asyncio
async def test_default_adapters_in_priority_order():
    config = SearchConfig(google_api_key="k", request_timeout=3.0)
    adapters = build_default_adapters(config)

    assert [a.tag for a in adapters] == [SourceTag.OPEN_LIBRARY, SourceTag.GOOGLE_BOOKS]
    assert adapters[1].api_key == "k"
    assert all(a.timeout == 3.0 for a in adapters)

    for adapter in adapters:
        await adapter.close()


@pytest.mark.asyncio
async def test_shared_client_is_not_closed_by_adapter():
    def handler(request):
        return httpx.Response(200, json={"docs": []})

    async with mock_client(handler) as client:
        adapter = OpenLibraryAdapter(client=client)
        await adapter.close()
        assert not client.is_closed
