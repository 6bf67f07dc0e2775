"""Sync state, checkpoint and progress types."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from raindropbar.core.time_utils import ensure_utc, utc_now

SYNC_STATE_SCHEMA_VERSION = 1


class SyncMode(str, Enum):
    FULL_BACKFILL = "full_backfill"
    INCREMENTAL = "incremental"
    FORCE_FULL_RESYNC = "force_full_resync"


class CheckpointMode(str, Enum):
    FULL_BACKFILL = "full_backfill"
    INCREMENTAL = "incremental"


class SyncCheckpoint(BaseModel):
    """Marker of how far an interrupted run got; ``page`` is the next page to fetch."""

    mode: CheckpointMode
    collection_id: int | None = None
    page: int = 0
    started_at: datetime = Field(default_factory=utc_now)
    items_processed: int = 0

    @field_validator("started_at", mode="after")
    @classmethod
    def _attach_utc(cls, value: datetime) -> datetime | None:
        return ensure_utc(value)


class SyncState(BaseModel):
    """Durable sync bookkeeping, persisted as a single JSON blob."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    has_completed_full_backfill: bool = False
    cursor_last_update: datetime | None = None
    trash_cursor_last_update: datetime | None = None
    last_successful_sync_at: datetime | None = None
    last_attempt_at: datetime | None = None
    checkpoint: SyncCheckpoint | None = None
    schema_version: int = SYNC_STATE_SCHEMA_VERSION

    @field_validator(
        "cursor_last_update",
        "trash_cursor_last_update",
        "last_successful_sync_at",
        "last_attempt_at",
        mode="after",
    )
    @classmethod
    def _attach_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    def infer_mode(self) -> SyncMode:
        if self.has_completed_full_backfill:
            return SyncMode.INCREMENTAL
        return SyncMode.FULL_BACKFILL


class SyncPhase(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    FETCHING_COLLECTIONS = "fetching_collections"
    SYNCING_BOOKMARKS = "syncing_bookmarks"
    SYNCING_TRASH = "syncing_trash"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return _PHASE_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (SyncPhase.COMPLETED, SyncPhase.CANCELLED, SyncPhase.FAILED)


_PHASE_LABELS = {
    SyncPhase.IDLE: "Idle",
    SyncPhase.STARTING: "Starting sync...",
    SyncPhase.FETCHING_COLLECTIONS: "Fetching collections...",
    SyncPhase.SYNCING_BOOKMARKS: "Syncing bookmarks",
    SyncPhase.SYNCING_TRASH: "Syncing trash",
    SyncPhase.FINALIZING: "Finalizing...",
    SyncPhase.COMPLETED: "Sync completed",
    SyncPhase.CANCELLED: "Sync cancelled",
    SyncPhase.FAILED: "Sync failed",
}


@dataclass
class SyncProgress:
    """Mutable progress record observed by the presentation layer."""

    phase: SyncPhase = SyncPhase.IDLE
    completed_units: int = 0
    total_units: int | None = None
    current_collection_title: str | None = None
    current_page: int = 0
    items_applied: int = 0

    @property
    def fraction_completed(self) -> float | None:
        if not self.total_units:
            return None
        return min(max(self.completed_units / self.total_units, 0.0), 1.0)

    @property
    def is_indeterminate(self) -> bool:
        return self.fraction_completed is None

    @property
    def message(self) -> str:
        text = self.phase.label
        if self.phase in (SyncPhase.SYNCING_BOOKMARKS, SyncPhase.SYNCING_TRASH):
            if self.current_collection_title:
                text += f" {self.current_collection_title}"
            if self.current_page > 0:
                text += f" (page {self.current_page})"
            if self.items_applied > 0:
                text += f" - {self.items_applied} items"
        return text

    def snapshot(self) -> SyncProgress:
        return replace(self)
