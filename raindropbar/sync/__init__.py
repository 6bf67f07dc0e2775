"""Sync engine: errors and state types.

The orchestrator and reconciler are imported from their modules directly;
``raindropbar.core.cancellation`` depends on this package.
"""

from raindropbar.sync.errors import (
    NoTokenError,
    StoreNotReadyError,
    SyncCancelledError,
    SyncError,
)
from raindropbar.sync.state import (
    CheckpointMode,
    SyncCheckpoint,
    SyncMode,
    SyncPhase,
    SyncProgress,
    SyncState,
)

__all__ = [
    "CheckpointMode",
    "NoTokenError",
    "StoreNotReadyError",
    "SyncCancelledError",
    "SyncCheckpoint",
    "SyncError",
    "SyncMode",
    "SyncPhase",
    "SyncProgress",
    "SyncState",
]
