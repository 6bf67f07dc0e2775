"""Errors raised by the sync orchestrator itself (API errors live with the client)."""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync orchestration errors."""


class NoTokenError(SyncError):
    def __init__(self) -> None:
        super().__init__("No API token configured")


class StoreNotReadyError(SyncError):
    def __init__(self) -> None:
        super().__init__("Database not initialized")


class SyncCancelledError(SyncError):
    """Cooperative cancellation; ends a run in the ``cancelled`` phase, not ``failed``."""

    def __init__(self, reason: str = "Sync cancelled") -> None:
        super().__init__(reason)
