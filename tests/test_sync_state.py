"""Tests for sync progress and state types."""

import unittest

from raindropbar.sync.state import SyncMode, SyncPhase, SyncProgress, SyncState


class TestSyncProgress(unittest.TestCase):
    def test_unknown_total_is_indeterminate(self):
        progress = SyncProgress(phase=SyncPhase.SYNCING_BOOKMARKS, completed_units=10)
        assert progress.fraction_completed is None
        assert progress.is_indeterminate

    def test_zero_total_is_indeterminate(self):
        assert SyncProgress(total_units=0).is_indeterminate

    def test_fraction_is_clamped(self):
        assert SyncProgress(completed_units=25, total_units=100).fraction_completed == 0.25
        assert SyncProgress(completed_units=130, total_units=100).fraction_completed == 1.0

    def test_message_while_syncing(self):
        progress = SyncProgress(
            phase=SyncPhase.SYNCING_TRASH,
            current_collection_title="Trash",
            current_page=3,
            items_applied=12,
        )
        assert progress.message == "Syncing trash Trash (page 3) - 12 items"

    def test_message_for_other_phases(self):
        assert SyncProgress(phase=SyncPhase.FETCHING_COLLECTIONS).message == "Fetching collections..."
        assert SyncProgress(phase=SyncPhase.COMPLETED, items_applied=5).message == "Sync completed"

    def test_snapshot_is_independent(self):
        progress = SyncProgress(current_page=1)
        snapshot = progress.snapshot()
        progress.current_page = 2
        assert snapshot.current_page == 1

    def test_terminal_phases(self):
        terminal = {phase for phase in SyncPhase if phase.is_terminal}
        assert terminal == {SyncPhase.COMPLETED, SyncPhase.CANCELLED, SyncPhase.FAILED}


class TestSyncState(unittest.TestCase):
    def test_mode_inference(self):
        assert SyncState().infer_mode() is SyncMode.FULL_BACKFILL
        assert SyncState(has_completed_full_backfill=True).infer_mode() is SyncMode.INCREMENTAL

    def test_unknown_keys_are_ignored(self):
        state = SyncState.model_validate({"has_completed_full_backfill": True, "legacy": 1})
        assert state.has_completed_full_backfill
        assert state.schema_version == 1
