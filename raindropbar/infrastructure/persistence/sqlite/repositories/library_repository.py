"""SQLite read access to the cached collections and bookmarks."""

from __future__ import annotations

from typing import Any

from raindropbar.db.models import (
    TRASH_COLLECTION_ID,
    Collection,
    Raindrop,
    model_to_dict,
)
from raindropbar.infrastructure.persistence.sqlite.base import SqliteBaseRepository


class SqliteLibraryRepositoryAdapter(SqliteBaseRepository):
    """Adapter for reading the local Raindrop cache."""

    async def async_count_collections(self) -> int:
        return await self._execute(
            lambda: Collection.select().count(),
            operation_name="count_collections",
            read_only=True,
        )

    async def async_count_bookmarks(self, *, include_trash: bool = False) -> int:
        def _count() -> int:
            query = Raindrop.select()
            if not include_trash:
                query = query.where(Raindrop.collection_id != TRASH_COLLECTION_ID)
            return query.count()

        return await self._execute(_count, operation_name="count_bookmarks", read_only=True)

    async def async_list_collections(self) -> list[dict[str, Any]]:
        """List collections in display order: roots first, then by sort order and title."""

        def _list() -> list[dict[str, Any]]:
            query = Collection.select().order_by(
                Collection.parent_id.is_null(False),
                Collection.sort_order,
                Collection.title,
            )
            return [data for row in query if (data := model_to_dict(row)) is not None]

        return await self._execute(_list, operation_name="list_collections", read_only=True)

    async def async_get_bookmark(self, raindrop_id: int) -> dict[str, Any] | None:
        return await self._execute(
            lambda: model_to_dict(Raindrop.get_or_none(Raindrop.id == raindrop_id)),
            operation_name="get_bookmark",
            read_only=True,
        )

    async def async_list_bookmarks(
        self,
        *,
        collection_id: int | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List bookmarks newest first, optionally restricted to one collection.

        Without a collection filter, trashed bookmarks are excluded.
        """

        def _list() -> list[dict[str, Any]]:
            query = Raindrop.select()
            if collection_id is None:
                query = query.where(Raindrop.collection_id != TRASH_COLLECTION_ID)
            else:
                query = query.where(Raindrop.collection_id == collection_id)
            query = query.order_by(Raindrop.last_update.desc(), Raindrop.id.desc())
            return [
                data
                for row in query.limit(limit).offset(offset)
                if (data := model_to_dict(row)) is not None
            ]

        return await self._execute(_list, operation_name="list_bookmarks", read_only=True)
