"""Peewee ORM models for the local Raindrop cache."""

from __future__ import annotations

import datetime as _dt
from typing import Any

import peewee
from playhouse.sqlite_ext import JSONField

from raindropbar.core.time_utils import utc_now

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()

# System pseudo-collections; the API never lists them and sync never creates or deletes them.
UNSORTED_COLLECTION_ID = -1
TRASH_COLLECTION_ID = -99
SYSTEM_COLLECTION_IDS = frozenset({UNSORTED_COLLECTION_ID, TRASH_COLLECTION_ID})


class UTCDateTimeField(peewee.DateTimeField):
    """Stores naive UTC, returns aware UTC.

    Peewee cannot parse offset-suffixed strings back into datetimes, so the
    offset is stripped on write and reattached on read.
    """

    def db_value(self, value: Any) -> Any:
        if isinstance(value, _dt.datetime):
            if value.tzinfo is not None:
                value = value.astimezone(_dt.UTC).replace(tzinfo=None)
            return value.isoformat(sep=" ")
        return super().db_value(value)

    def python_value(self, value: Any) -> Any:
        value = super().python_value(value)
        if isinstance(value, _dt.datetime) and value.tzinfo is None:
            return value.replace(tzinfo=_dt.UTC)
        return value


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    class Meta:
        database = database_proxy
        legacy_table_names = False


class Collection(BaseModel):
    id = peewee.BigIntegerField(primary_key=True)
    title = peewee.TextField(default="")
    count = peewee.IntegerField(default=0)
    cover = peewee.TextField(default="")
    color = peewee.TextField(default="")
    parent_id = peewee.BigIntegerField(null=True)
    sort_order = peewee.IntegerField(default=0)
    view = peewee.TextField(default="list")  # list | simple | grid | masonry
    is_public = peewee.BooleanField(default=False)
    expanded = peewee.BooleanField(default=True)
    last_update = UTCDateTimeField(default=utc_now)

    class Meta:
        table_name = "collections"
        indexes = ((("parent_id",), False),)


class Raindrop(BaseModel):
    id = peewee.BigIntegerField(primary_key=True)
    title = peewee.TextField(default="")
    link = peewee.TextField()
    excerpt = peewee.TextField(default="")
    note = peewee.TextField(default="")
    domain = peewee.TextField(default="")
    cover = peewee.TextField(default="")
    type = peewee.TextField(default="link")  # link | article | image | video | document | audio
    tags = JSONField(default=list)
    important = peewee.BooleanField(default=False)
    # No foreign key: bookmarks may reference collections we have not seen yet.
    collection_id = peewee.BigIntegerField(default=UNSORTED_COLLECTION_ID)
    created = UTCDateTimeField(default=utc_now)
    last_update = UTCDateTimeField(default=utc_now)

    class Meta:
        table_name = "raindrops"
        indexes = (
            (("collection_id",), False),
            (("last_update",), False),
        )


class SyncMeta(BaseModel):
    """Key/value blobs for sync bookkeeping."""

    key = peewee.TextField(primary_key=True)
    value = peewee.TextField()
    updated_at = UTCDateTimeField(default=utc_now)

    class Meta:
        table_name = "sync_meta"


ALL_MODELS: tuple[type[BaseModel], ...] = (Collection, Raindrop, SyncMeta)


def model_to_dict(model: BaseModel | None) -> dict[str, Any] | None:
    """Plain dict of a row's column values (no backrefs)."""
    if model is None:
        return None
    return {name: getattr(model, name) for name in model._meta.sorted_field_names}
