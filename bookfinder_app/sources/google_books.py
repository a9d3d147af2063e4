"""
================================================================================
BookFinder - Google Books Adapter
================================================================================
REST client for the Google Books volumes API.

  GET https://www.googleapis.com/books/v1/volumes?q=...&startIndex=...

Google Books paginates by offset (startIndex) and caps maxResults at 40.
A response without "items" is a valid empty page, not an error. The API
key is optional; anonymous requests share a low quota.

API Docs: https://developers.google.com/books/docs/v1/using
================================================================================
"""

import logging
from typing import Any, Optional

import httpx

from .base import (
    BaseSourceAdapter, NormalizedRecord, SourceResult, SourceTag, build_record
)
from ..cancellation import CancellationToken
from ..errors import AdapterFailure

logger = logging.getLogger(__name__)


class GoogleBooksAdapter(BaseSourceAdapter):
    """Google Books volumes adapter."""

    id = "google_books"
    name = "Google Books"
    tag = SourceTag.GOOGLE_BOOKS
    base_url = "https://www.googleapis.com/books/v1"

    # Hard limit imposed by the API
    max_results_limit = 40

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        api_key: Optional[str] = None
    ):
        super().__init__(client=client, timeout=timeout, user_agent=user_agent)
        self.api_key = api_key

    async def fetch_page(
        self,
        query: str,
        page_number: int,
        page_size: int,
        token: CancellationToken
    ) -> SourceResult:
        params = {
            "q": query,
            "startIndex": (page_number - 1) * page_size,
            "maxResults": min(page_size, self.max_results_limit),
        }
        if self.api_key:
            params["key"] = self.api_key

        data = await self._get_json(f"{self.base_url}/volumes", params, token)

        if not isinstance(data, dict):
            raise AdapterFailure(self.id, "unexpected response shape")

        items = data.get('items') or []
        if not isinstance(items, list):
            raise AdapterFailure(self.id, "'items' is not a list")

        records = self._collect(self._parse_volume(item) for item in items)

        logger.debug(f"{self.id}: {len(records)}/{len(items)} usable volumes for '{query}' page {page_number}")

        return SourceResult(
            records=records,
            total_results=self._parse_total(data.get('totalItems')),
        )

    def _parse_volume(self, item: Any) -> Optional[NormalizedRecord]:
        """Map one volumes[] item to a NormalizedRecord."""
        if not isinstance(item, dict):
            return None

        info = item.get('volumeInfo')
        if not isinstance(info, dict):
            return None

        images = info.get('imageLinks') or {}
        thumbnail = None
        if isinstance(images, dict):
            thumbnail = images.get('thumbnail') or images.get('smallThumbnail')
        if isinstance(thumbnail, str) and thumbnail.startswith('http://'):
            thumbnail = 'https://' + thumbnail[len('http://'):]

        return build_record(
            record_id=item.get('id'),
            title=info.get('title'),
            source=self.tag,
            authors=info.get('authors'),
            thumbnail_url=thumbnail if isinstance(thumbnail, str) else None,
            published_date=info.get('publishedDate'),
            links={
                'details': info.get('canonicalVolumeLink'),
                'preview': info.get('previewLink'),
                'info': info.get('infoLink'),
            },
        )
