"""
================================================================================
BookFinder - Base Source Adapter
================================================================================
Abstract base class for every remote book catalog.

Each catalog implements a single operation:
  fetch_page(query, page_number, page_size, token) -> SourceResult

and is responsible for turning its own JSON shape into NormalizedRecord
objects before anything leaves the adapter. Adapters never touch the
cache and never retry; the coordinator owns both.

SANITIZATION:
  - Markup tags stripped, HTML entities unescaped
  - Control/format characters removed
  - Whitespace collapsed
  - Records whose title ends up empty are dropped
================================================================================
"""

import html
import logging
import re
import unicodedata
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from ..errors import AdapterFailure
from ..cancellation import CancellationToken

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS & DATA CLASSES
# =============================================================================

class SourceTag(str, Enum):
    """Identifies the catalog a record came from."""
    OPEN_LIBRARY = "open_library"
    GOOGLE_BOOKS = "google_books"


# Returned as total_results by adapters that can't count their matches
UNKNOWN_TOTAL = None

UNKNOWN_AUTHOR = "Unknown"


@dataclass(frozen=True)
class NormalizedRecord:
    """
    Standardized book record shared by all catalogs.

    Whether it came from Open Library or Google Books, the presentation
    layer always receives this same structure.
    """
    id: str                                  # Stable per source
    title: str                               # Sanitized, never empty
    authors: Tuple[str, ...] = (UNKNOWN_AUTHOR,)
    thumbnail_url: Optional[str] = None
    published_date: Optional[str] = None
    source: SourceTag = SourceTag.OPEN_LIBRARY
    links: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "authors": list(self.authors),
            "thumbnail_url": self.thumbnail_url,
            "published_date": self.published_date,
            "source": self.source.value,
            "links": dict(self.links),
        }


@dataclass
class SourceResult:
    """What one adapter produced for one page."""
    records: List[NormalizedRecord] = field(default_factory=list)
    total_results: Optional[int] = UNKNOWN_TOTAL


# =============================================================================
# SANITIZATION
# =============================================================================

_TAG_RE = re.compile(r'<[^>]*>')
_WHITESPACE_RE = re.compile(r'\s+')


def sanitize_text(value: Any) -> str:
    """
    Strip markup and control characters from a provider string.

    Returns an empty string for None and non-string values.
    """
    if not isinstance(value, str):
        return ""

    text = _TAG_RE.sub(' ', value)
    text = html.unescape(text)
    text = _WHITESPACE_RE.sub(' ', text)
    # Whatever control (Cc) and format (Cf) characters survive are not whitespace
    text = ''.join(ch for ch in text if unicodedata.category(ch) not in ('Cc', 'Cf'))
    return _WHITESPACE_RE.sub(' ', text).strip()


def sanitize_authors(values: Any) -> Tuple[str, ...]:
    """Sanitize an author list; falls back to ("Unknown",)."""
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        return (UNKNOWN_AUTHOR,)

    authors = tuple(a for a in (sanitize_text(v) for v in values) if a)
    return authors or (UNKNOWN_AUTHOR,)


def build_record(
    record_id: Any,
    title: Any,
    source: SourceTag,
    authors: Any = None,
    thumbnail_url: Optional[str] = None,
    published_date: Any = None,
    links: Optional[Dict[str, Optional[str]]] = None
) -> Optional[NormalizedRecord]:
    """
    Build a sanitized NormalizedRecord, or None if it can't be one.

    Records without an id or with a title that sanitizes to nothing are
    dropped here, at the adapter boundary.
    """
    if record_id is None or str(record_id).strip() == "":
        return None

    clean_title = sanitize_text(title)
    if not clean_title:
        return None

    published = None
    if published_date is not None:
        published = sanitize_text(str(published_date)) or None

    return NormalizedRecord(
        id=str(record_id).strip(),
        title=clean_title,
        authors=sanitize_authors(authors),
        thumbnail_url=thumbnail_url or None,
        published_date=published,
        source=source,
        links={kind: url for kind, url in (links or {}).items() if url},
    )


# =============================================================================
# BASE ADAPTER CLASS
# =============================================================================

class BaseSourceAdapter(ABC):
    """
    Abstract base class for catalog adapters.

    Subclasses set the identification attributes and implement
    fetch_page(). HTTP goes through _get_json(), which turns every
    transport, status or decoding problem into AdapterFailure.

    Example:
        class OpenLibraryAdapter(BaseSourceAdapter):
            id = "open_library"
            tag = SourceTag.OPEN_LIBRARY
            base_url = "https://openlibrary.org"

            async def fetch_page(self, query, page_number, page_size, token):
                ...
    """

    # Source identification
    id: str = "base"
    name: str = "Base Source"
    tag: SourceTag = SourceTag.OPEN_LIBRARY

    base_url: str = ""

    # Request timeout (seconds); the coordinator enforces its own ceiling too
    timeout: float = 10.0

    user_agent: str = "BookFinder/1.0"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None
    ):
        """
        Args:
            client: Shared HTTP client. When omitted the adapter creates
                    (and later closes) its own.
            timeout: Overrides the class-level timeout
            user_agent: Overrides the class-level User-Agent
        """
        if timeout is not None:
            self.timeout = timeout
        if user_agent:
            self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    'User-Agent': self.user_agent,
                    'Accept': 'application/json'
                }
            )
            self._owns_client = True
        return self._client

    async def close(self):
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(
        self,
        url: str,
        params: Dict[str, Any],
        token: CancellationToken
    ) -> Any:
        """
        GET a URL and decode the JSON body.

        Raises:
            SearchCanceled: If the token was cancelled before or during the call
            AdapterFailure: On transport errors, non-2xx responses or bad JSON
        """
        token.raise_if_canceled()
        client = await self._get_client()

        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AdapterFailure(
                self.id, f"HTTP {e.response.status_code} from {url}"
            ) from e
        except httpx.HTTPError as e:
            raise AdapterFailure(self.id, f"request failed: {e!r}") from e

        token.raise_if_canceled()

        try:
            return response.json()
        except ValueError as e:
            raise AdapterFailure(self.id, "response was not valid JSON") from e

    @staticmethod
    def _parse_total(value: Any) -> Optional[int]:
        """Coerce a provider count to a non-negative int, else UNKNOWN_TOTAL."""
        if isinstance(value, bool):
            return UNKNOWN_TOTAL
        try:
            total = int(value)
        except (TypeError, ValueError):
            return UNKNOWN_TOTAL
        return total if total >= 0 else UNKNOWN_TOTAL

    @staticmethod
    def _collect(records: Iterable[Optional[NormalizedRecord]]) -> List[NormalizedRecord]:
        return [r for r in records if r is not None]

    # =========================================================================
    # ABSTRACT METHODS
    # =========================================================================

    @abstractmethod
    async def fetch_page(
        self,
        query: str,
        page_number: int,
        page_size: int,
        token: CancellationToken
    ) -> SourceResult:
        """
        Fetch one page of results for an already-sanitized query.

        Args:
            query: Sanitized search string
            page_number: 1-based page number
            page_size: Records requested per page
            token: Cancellation handle, checked around every I/O call

        Returns:
            SourceResult with normalized records and a total (or UNKNOWN_TOTAL)

        Raises:
            AdapterFailure: When the catalog is unreachable or malformed
            SearchCanceled: When the token is cancelled
        """
        pass

    def __repr__(self):
        return f"<{self.__class__.__name__}(id='{self.id}')>"
