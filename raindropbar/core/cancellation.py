"""Cooperative cancellation for long-running sync work."""

from __future__ import annotations

import asyncio

from raindropbar.sync.errors import SyncCancelledError


class CancellationToken:
    """Flag polled at safe points; never preempts an in-flight request."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelledError(self.reason or "Sync cancelled")

