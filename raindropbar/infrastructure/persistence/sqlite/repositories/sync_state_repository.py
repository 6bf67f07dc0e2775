"""SQLite implementation of the sync state store.

The whole :class:`SyncState` is one JSON blob under a fixed key in
``sync_meta``; only the orchestrator reads or writes it.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from raindropbar.core.time_utils import utc_now
from raindropbar.db.models import SyncMeta
from raindropbar.infrastructure.persistence.sqlite.base import SqliteBaseRepository
from raindropbar.sync.state import SyncState

logger = logging.getLogger(__name__)

SYNC_STATE_KEY = "sync_state"


class SqliteSyncStateRepositoryAdapter(SqliteBaseRepository):
    """Adapter for the persisted sync state singleton."""

    async def async_load_state(self) -> SyncState:
        """Load the stored state, or a fresh default when absent or unreadable."""

        def _load() -> str | None:
            row = SyncMeta.get_or_none(SyncMeta.key == SYNC_STATE_KEY)
            return row.value if row else None

        raw = await self._execute(_load, operation_name="load_sync_state", read_only=True)
        if raw is None:
            return SyncState()
        try:
            return SyncState.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "sync_state_decode_failed",
                extra={"error": str(exc), "error_count": exc.error_count()},
            )
            return SyncState()

    async def async_save_state(self, state: SyncState) -> None:
        payload = state.model_dump_json()

        def _save() -> None:
            (
                SyncMeta.insert(key=SYNC_STATE_KEY, value=payload, updated_at=utc_now())
                .on_conflict(
                    conflict_target=[SyncMeta.key],
                    preserve=[SyncMeta.value, SyncMeta.updated_at],
                )
                .execute()
            )

        await self._execute(_save, operation_name="save_sync_state")

    async def async_reset_state(self) -> SyncState:
        """Delete the stored blob and return the default state."""

        def _reset() -> None:
            SyncMeta.delete().where(SyncMeta.key == SYNC_STATE_KEY).execute()

        await self._execute(_reset, operation_name="reset_sync_state")
        logger.info("sync_state_reset")
        return SyncState()
