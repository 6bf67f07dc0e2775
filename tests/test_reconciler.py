"""Tests for reconciling remote records against the local store."""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import BASE_TIME, make_collection, make_raindrop

from raindropbar.adapters.raindrop.models import CollectionResponse, RaindropResponse
from raindropbar.db.models import TRASH_COLLECTION_ID, UNSORTED_COLLECTION_ID, Collection, Raindrop
from raindropbar.sync.reconciler import (
    Reconciler,
    apply_bookmark_page,
    apply_collections,
    build_bookmark_index,
)


def _collections(*ids: int, **kwargs) -> list[CollectionResponse]:
    return [CollectionResponse.model_validate(make_collection(cid, **kwargs)) for cid in ids]


def _raindrops(*pairs: tuple[int, int]) -> list[RaindropResponse]:
    """``(id, minutes after BASE_TIME)`` pairs to decoded raindrops."""
    return [
        RaindropResponse.model_validate(make_raindrop(rid, BASE_TIME + timedelta(minutes=minutes)))
        for rid, minutes in pairs
    ]


def _local_collection_ids() -> set[int]:
    return {row.id for row in Collection.select()}


class TestApplyCollections:
    def test_inserts_into_empty_store(self, db):
        stats = apply_collections(_collections(1, 2, 3))
        assert stats.inserted == 3
        assert stats.deleted == 0
        assert _local_collection_ids() == {1, 2, 3}

    def test_local_set_tracks_each_snapshot(self, db):
        snapshots = [(1, 2, 3), (2, 3, 4), (), (5,), (5, 6, 7, 8)]
        for snapshot in snapshots:
            apply_collections(_collections(*snapshot))
            assert _local_collection_ids() == set(snapshot)

    def test_updates_changed_fields_in_place(self, db):
        apply_collections(_collections(1))
        renamed = make_collection(1, "Renamed", count=9, parent_id=4)
        stats = apply_collections([CollectionResponse.model_validate(renamed)])

        assert stats.updated == 1
        row = Collection.get_by_id(1)
        assert row.title == "Renamed"
        assert row.count == 9
        assert row.parent_id == 4

    def test_unchanged_collections_are_not_rewritten(self, db):
        apply_collections(_collections(1, 2))
        stats = apply_collections(_collections(1, 2))
        assert stats.unchanged == 2
        assert stats.updated == 0
        assert stats.inserted == 0

    def test_system_collections_are_never_touched(self, db):
        Collection.create(id=UNSORTED_COLLECTION_ID, title="Unsorted")
        Collection.create(id=TRASH_COLLECTION_ID, title="Trash")

        apply_collections(_collections(1))
        assert _local_collection_ids() == {UNSORTED_COLLECTION_ID, TRASH_COLLECTION_ID, 1}

        apply_collections(_collections(TRASH_COLLECTION_ID, 2))
        assert _local_collection_ids() == {UNSORTED_COLLECTION_ID, TRASH_COLLECTION_ID, 2}
        assert Collection.get_by_id(TRASH_COLLECTION_ID).title == "Trash"

    def test_duplicate_remote_ids_do_not_fail(self, db):
        stats = apply_collections(_collections(1, 1))
        assert stats.inserted == 1
        assert _local_collection_ids() == {1}


class TestApplyBookmarkPage:
    def test_inserts_and_indexes_new_bookmarks(self, db):
        index = build_bookmark_index()
        stats = apply_bookmark_page(_raindrops((1, 0), (2, 1)), index)
        assert stats.inserted == 2
        assert set(index) == {1, 2}
        assert Raindrop.select().count() == 2

    def test_same_page_twice_is_a_no_op(self, db):
        page = _raindrops((1, 0), (2, 1), (3, 2))
        index = build_bookmark_index()
        apply_bookmark_page(page, index)
        before = [(r.id, r.title, r.last_update) for r in Raindrop.select().order_by(Raindrop.id)]

        stats = apply_bookmark_page(page, index)

        assert stats.inserted == 0
        assert stats.updated == 0
        assert stats.unchanged == 3
        after = [(r.id, r.title, r.last_update) for r in Raindrop.select().order_by(Raindrop.id)]
        assert after == before

    def test_same_page_twice_with_fresh_index_is_a_no_op(self, db):
        page = _raindrops((1, 0), (2, 1))
        apply_bookmark_page(page, build_bookmark_index())
        stats = apply_bookmark_page(page, build_bookmark_index())
        assert stats.unchanged == 2
        assert stats.applied == 0

    def test_only_strictly_newer_remote_overwrites(self, db):
        index = build_bookmark_index()
        apply_bookmark_page(_raindrops((1, 10)), index)

        older = make_raindrop(1, BASE_TIME + timedelta(minutes=5), title="Older")
        stats = apply_bookmark_page([RaindropResponse.model_validate(older)], index)
        assert stats.unchanged == 1
        assert Raindrop.get_by_id(1).title == "Bookmark 1"

        newer = make_raindrop(1, BASE_TIME + timedelta(minutes=20), title="Newer", tags=["x"])
        stats = apply_bookmark_page([RaindropResponse.model_validate(newer)], index)
        assert stats.updated == 1
        row = Raindrop.get_by_id(1)
        assert row.title == "Newer"
        assert row.tags == ["x"]
        assert row.last_update == BASE_TIME + timedelta(minutes=20)

    def test_never_deletes(self, db):
        index = build_bookmark_index()
        apply_bookmark_page(_raindrops((1, 0), (2, 0), (3, 0)), index)
        apply_bookmark_page(_raindrops((4, 0)), index)
        assert Raindrop.select().count() == 4

    def test_orphan_collection_is_tolerated(self, db):
        orphan = make_raindrop(1, BASE_TIME, collection_id=424242)
        apply_bookmark_page([RaindropResponse.model_validate(orphan)], build_bookmark_index())
        assert Raindrop.get_by_id(1).collection_id == 424242


class TestReconciler:
    @pytest.mark.asyncio
    async def test_index_is_built_once_per_instance(self, db):
        reconciler = Reconciler(db)
        assert not reconciler.is_index_warm

        await reconciler.apply_bookmark_page(_raindrops((1, 0)))
        index = await reconciler.ensure_index()
        assert reconciler.is_index_warm
        assert set(index) == {1}

        await reconciler.apply_bookmark_page(_raindrops((2, 0)))
        assert (await reconciler.ensure_index()) is index
        assert set(index) == {1, 2}

    @pytest.mark.asyncio
    async def test_apply_collections_runs_in_transaction(self, db):
        reconciler = Reconciler(db)
        stats = await reconciler.apply_collections(_collections(1, 2))
        assert stats.inserted == 2
        assert _local_collection_ids() == {1, 2}
