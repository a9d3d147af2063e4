"""
================================================================================
BookFinder - Open Library Adapter
================================================================================
REST client for the Open Library search API.

  GET https://openlibrary.org/search.json?q=...&page=...&limit=...

Open Library paginates by page number directly and always reports
numFound, so it is the most reliable source for has_more. Only the fields
we map are requested to keep responses small.

API Docs: https://openlibrary.org/dev/docs/api/search
================================================================================
"""

import logging
from typing import Any, Optional

from .base import (
    BaseSourceAdapter, NormalizedRecord, SourceResult, SourceTag, build_record
)
from ..cancellation import CancellationToken
from ..errors import AdapterFailure

logger = logging.getLogger(__name__)


class OpenLibraryAdapter(BaseSourceAdapter):
    """Open Library search adapter."""

    id = "open_library"
    name = "Open Library"
    tag = SourceTag.OPEN_LIBRARY
    base_url = "https://openlibrary.org"
    covers_url = "https://covers.openlibrary.org/b/id"

    search_fields = "key,title,author_name,cover_i,first_publish_year"

    async def fetch_page(
        self,
        query: str,
        page_number: int,
        page_size: int,
        token: CancellationToken
    ) -> SourceResult:
        params = {
            "q": query,
            "page": page_number,
            "limit": page_size,
            "fields": self.search_fields,
        }

        data = await self._get_json(f"{self.base_url}/search.json", params, token)

        if not isinstance(data, dict):
            raise AdapterFailure(self.id, "unexpected response shape")

        docs = data.get('docs') or []
        if not isinstance(docs, list):
            raise AdapterFailure(self.id, "'docs' is not a list")

        records = self._collect(self._parse_doc(doc) for doc in docs[:page_size])

        logger.debug(f"{self.id}: {len(records)}/{len(docs)} usable docs for '{query}' page {page_number}")

        return SourceResult(
            records=records,
            total_results=self._parse_total(data.get('numFound')),
        )

    def _parse_doc(self, doc: Any) -> Optional[NormalizedRecord]:
        """Map one search.json doc to a NormalizedRecord."""
        if not isinstance(doc, dict):
            return None

        key = doc.get('key')
        if not isinstance(key, str) or not key:
            return None

        cover_id = doc.get('cover_i')
        thumbnail = f"{self.covers_url}/{cover_id}-M.jpg" if cover_id else None

        year = doc.get('first_publish_year')

        return build_record(
            record_id=key,
            title=doc.get('title'),
            source=self.tag,
            authors=doc.get('author_name'),
            thumbnail_url=thumbnail,
            published_date=str(year) if year is not None else None,
            links={
                'details': f"{self.base_url}{key}",
                'preview': f"{self.base_url}{key}/preview",
                'info': f"{self.base_url}{key}/about",
            },
        )
