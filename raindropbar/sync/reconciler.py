"""Reconcile remote Raindrop records against the local store.

The module-level functions are synchronous Peewee code and must run inside a
transaction; :class:`Reconciler` schedules them on the session manager and
keeps the id index for the lifetime of one sync run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from raindropbar.db.models import SYSTEM_COLLECTION_IDS, Collection, Raindrop

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from raindropbar.adapters.raindrop.models import CollectionResponse, RaindropResponse
    from raindropbar.db.session import DatabaseSessionManager

logger = logging.getLogger(__name__)

BookmarkIndex = dict[int, Raindrop]


@dataclass
class ReconcileStats:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0

    @property
    def applied(self) -> int:
        return self.inserted + self.updated

    def merge(self, other: ReconcileStats) -> ReconcileStats:
        return ReconcileStats(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            deleted=self.deleted + other.deleted,
            unchanged=self.unchanged + other.unchanged,
        )


def _collection_values(remote: CollectionResponse) -> dict[str, Any]:
    return {
        "title": remote.title,
        "count": remote.count,
        "cover": remote.cover_url,
        "color": remote.color or "",
        "parent_id": remote.parent_id,
        "sort_order": remote.sort,
        "view": remote.view.value,
        "is_public": remote.public,
        "expanded": remote.expanded,
        "last_update": remote.last_update,
    }


def _raindrop_values(remote: RaindropResponse) -> dict[str, Any]:
    return {
        "title": remote.title,
        "link": remote.link,
        "excerpt": remote.excerpt,
        "note": remote.note,
        "domain": remote.domain,
        "cover": remote.cover,
        "type": remote.type.value,
        "tags": list(remote.tags),
        "important": remote.important,
        "collection_id": remote.collection_id,
        "created": remote.created,
        "last_update": remote.last_update,
    }


def _assign(row: Any, values: dict[str, Any]) -> None:
    for name, value in values.items():
        setattr(row, name, value)


def apply_collections(remote: Iterable[CollectionResponse]) -> ReconcileStats:
    """Make the local collection set equal to ``remote``.

    Existing rows are updated in place, new ids inserted, and every local
    collection missing from ``remote`` deleted. System collections are left alone.
    """
    stats = ReconcileStats()
    local: dict[int, Collection] = {row.id: row for row in Collection.select()}
    seen: set[int] = set()

    for item in remote:
        if item.id in SYSTEM_COLLECTION_IDS:
            continue
        seen.add(item.id)
        values = _collection_values(item)
        existing = local.get(item.id)
        if existing is None:
            local[item.id] = Collection.create(id=item.id, **values)
            stats.inserted += 1
        elif any(getattr(existing, name) != value for name, value in values.items()):
            _assign(existing, values)
            existing.save()
            stats.updated += 1
        else:
            stats.unchanged += 1

    stale = [cid for cid in local if cid not in seen and cid not in SYSTEM_COLLECTION_IDS]
    if stale:
        stats.deleted = Collection.delete().where(Collection.id.in_(stale)).execute()

    logger.info(
        "collections_reconciled",
        extra={
            "inserted": stats.inserted,
            "updated": stats.updated,
            "deleted": stats.deleted,
            "unchanged": stats.unchanged,
        },
    )
    return stats


def build_bookmark_index() -> BookmarkIndex:
    return {row.id: row for row in Raindrop.select()}


def apply_bookmark_page(remote: Iterable[RaindropResponse], index: BookmarkIndex) -> ReconcileStats:
    """Upsert one page of bookmarks; a known row is overwritten only by a strictly newer one.

    New rows are added to ``index``. Nothing is ever deleted.
    """
    stats = ReconcileStats()
    for item in remote:
        values = _raindrop_values(item)
        existing = index.get(item.id)
        if existing is None:
            index[item.id] = Raindrop.create(id=item.id, **values)
            stats.inserted += 1
        elif item.last_update > existing.last_update:
            _assign(existing, values)
            existing.save()
            stats.updated += 1
        else:
            stats.unchanged += 1
    return stats


class Reconciler:
    """Runs reconciliation units of work against one database session.

    Create one per sync run; the bookmark index is built lazily on first use
    and reused for every later page of the same run.
    """

    def __init__(self, session: DatabaseSessionManager) -> None:
        self._session = session
        self._index: BookmarkIndex | None = None

    @property
    def is_index_warm(self) -> bool:
        return self._index is not None

    async def apply_collections(self, remote: Sequence[CollectionResponse]) -> ReconcileStats:
        return await self._session.transaction(
            apply_collections, list(remote), operation_name="apply_collections"
        )

    async def ensure_index(self) -> BookmarkIndex:
        if self._index is None:
            self._index = await self._session.execute(
                build_bookmark_index, operation_name="build_bookmark_index", read_only=True
            )
            logger.debug("bookmark_index_built", extra={"size": len(self._index)})
        return self._index

    async def apply_bookmark_page(self, remote: Sequence[RaindropResponse]) -> ReconcileStats:
        index = await self.ensure_index()
        try:
            return await self._session.transaction(
                apply_bookmark_page, list(remote), index, operation_name="apply_bookmark_page"
            )
        except BaseException:
            # Rows added to the index before the rollback no longer exist.
            self._index = None
            raise
