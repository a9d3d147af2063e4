"""Cooperative cancellation handle threaded through every adapter call."""

import asyncio
from typing import Optional

from .errors import SearchCanceled


class CancellationToken:
    """
    One token per fetch. The coordinator cancels it when the fetch goes
    stale; adapters and the coordinator check it before any state change.
    """

    def __init__(self, key: Optional[str] = None):
        self.key = key
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def canceled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "superseded") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_canceled(self) -> None:
        """Raise SearchCanceled if cancel() has been called."""
        if self._event.is_set():
            raise SearchCanceled(f"{self.key or 'request'}: {self.reason}")

    def __repr__(self):
        return f"<CancellationToken(key={self.key!r}, canceled={self.canceled})>"
