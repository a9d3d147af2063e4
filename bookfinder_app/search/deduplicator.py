"""
================================================================================
BookFinder - Search Result Deduplicator
================================================================================
Collapses the same book coming back from different catalogs.

Problem:
  "The Hobbit" by "J.R.R. Tolkien" (Open Library) and
  "the hobbit" by "Tolkien" (Google Books) are one book.

Rule (title AND author must match):
  Title:  normalize (lowercase, strip punctuation, collapse whitespace);
          equal, or one contains the other when both are longer than
          5 characters.
  Author: lowercase; any author of one record is a substring of any
          author of the other, in either direction.

Candidates are folded left to right against everything already kept, so
the first occurrence wins and catalog priority decides which record
survives. Pages are small (two catalogs x page size), so the pairwise
scan is fine.
================================================================================
"""

import logging
import re
from typing import Iterable, List, Sequence

from ..sources.base import NormalizedRecord

logger = logging.getLogger(__name__)

_PUNCTUATION_RE = re.compile(r'[^\w\s]')
_WHITESPACE_RE = re.compile(r'\s+')

# Containment only counts when both normalized titles are longer than this
MIN_CONTAINMENT_LENGTH = 5


class SearchDeduplicator:
    """
    Deduplicates normalized records using fuzzy title + author matching.

    Algorithm:
      1. Concatenate the per-catalog lists in priority order
      2. For each candidate, scan the kept records for a similar one
      3. Keep the candidate only if none is found
    """

    def __init__(self, min_containment_length: int = MIN_CONTAINMENT_LENGTH):
        self.min_containment_length = min_containment_length

    def normalize_title(self, title: str) -> str:
        """
        Normalize title for comparison.

          - Lowercase
          - Remove punctuation (keep word characters and spaces)
          - Collapse whitespace
        """
        title = title.lower()
        title = _PUNCTUATION_RE.sub('', title)
        title = _WHITESPACE_RE.sub(' ', title)
        return title.strip()

    def normalize_author(self, author: str) -> str:
        return author.lower().strip()

    def titles_match(self, title1: str, title2: str) -> bool:
        norm1 = self.normalize_title(title1)
        norm2 = self.normalize_title(title2)

        if norm1 == norm2:
            return True

        if len(norm1) > self.min_containment_length and len(norm2) > self.min_containment_length:
            return norm1 in norm2 or norm2 in norm1

        return False

    def authors_match(self, authors1: Sequence[str], authors2: Sequence[str]) -> bool:
        names1 = [self.normalize_author(a) for a in authors1]
        names2 = [self.normalize_author(a) for a in authors2]

        return any(
            a in b or b in a
            for a in names1
            for b in names2
        )

    def is_duplicate(self, record: NormalizedRecord, other: NormalizedRecord) -> bool:
        """Both title and author must match."""
        return (
            self.titles_match(record.title, other.title)
            and self.authors_match(record.authors, other.authors)
        )

    def extend_unique(
        self,
        existing: Sequence[NormalizedRecord],
        candidates: Iterable[NormalizedRecord]
    ) -> List[NormalizedRecord]:
        """
        Append candidates to existing, skipping any similar to a kept record.

        existing is trusted as-is; only candidates are checked (against
        existing and against each other).

        Returns:
            A new list; existing is not modified
        """
        kept: List[NormalizedRecord] = list(existing)
        skipped = 0

        for candidate in candidates:
            duplicate_of = next(
                (r for r in kept if self.is_duplicate(candidate, r)),
                None
            )
            if duplicate_of is not None:
                skipped += 1
                logger.debug(
                    f"Dropped '{candidate.title}' ({candidate.source.value}) "
                    f"as duplicate of '{duplicate_of.title}' ({duplicate_of.source.value})"
                )
                continue
            kept.append(candidate)

        if skipped:
            logger.debug(f"Deduplicated {skipped} record(s), kept {len(kept)}")

        return kept

    def merge(self, record_lists: Iterable[Sequence[NormalizedRecord]]) -> List[NormalizedRecord]:
        """
        Merge per-catalog record lists into one ordered, duplicate-free list.

        Args:
            record_lists: One list per catalog, already in priority order

        Returns:
            Deduplicated records, first occurrence wins
        """
        combined = [record for records in record_lists for record in records]
        return self.extend_unique([], combined)


_default_deduplicator = SearchDeduplicator()


def merge(record_lists: Iterable[Sequence[NormalizedRecord]]) -> List[NormalizedRecord]:
    """merge() with the default similarity rule."""
    return _default_deduplicator.merge(record_lists)


def extend_unique(
    existing: Sequence[NormalizedRecord],
    candidates: Iterable[NormalizedRecord]
) -> List[NormalizedRecord]:
    """extend_unique() with the default similarity rule."""
    return _default_deduplicator.extend_unique(existing, candidates)
