"""Pydantic models for Raindrop.io API responses."""

from __future__ import annotations

import logging
from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from raindropbar.core.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class CollectionView(str, Enum):
    LIST = "list"
    SIMPLE = "simple"
    GRID = "grid"
    MASONRY = "masonry"


class RaindropType(str, Enum):
    LINK = "link"
    ARTICLE = "article"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"


class ObjectRef(BaseModel):
    """``{"$id": 123}`` reference used for parents and owning collections."""

    id: int = Field(alias="$id")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # The API sends explicit nulls for unset strings; let field defaults apply.
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    @field_validator("last_update", "created", mode="after", check_fields=False)
    @classmethod
    def _attach_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class CollectionResponse(_ApiModel):
    id: int = Field(alias="_id")
    title: str = ""
    count: int = 0
    cover: list[str] = Field(default_factory=list)
    color: str | None = None
    parent: ObjectRef | None = None
    sort: int = 0
    view: CollectionView = CollectionView.LIST
    public: bool = False
    expanded: bool = True
    last_update: datetime = Field(default_factory=utc_now, alias="lastUpdate")

    @field_validator("cover", mode="before")
    @classmethod
    def _coerce_cover(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        return value

    @field_validator("view", mode="before")
    @classmethod
    def _coerce_view(cls, value: Any) -> Any:
        if value in (None, ""):
            return CollectionView.LIST
        try:
            return CollectionView(str(value))
        except ValueError:
            logger.debug("unknown_collection_view", extra={"view": value})
            return CollectionView.LIST

    @property
    def parent_id(self) -> int | None:
        return self.parent.id if self.parent else None

    @property
    def cover_url(self) -> str:
        return self.cover[0] if self.cover else ""


class CollectionsWrapper(BaseModel):
    items: list[CollectionResponse] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class RaindropResponse(_ApiModel):
    id: int = Field(alias="_id")
    title: str = ""
    link: str
    excerpt: str = ""
    note: str = ""
    domain: str = ""
    cover: str = ""
    type: RaindropType = RaindropType.LINK
    tags: list[str] = Field(default_factory=list)
    important: bool = False
    collection: ObjectRef
    created: datetime = Field(default_factory=utc_now)
    last_update: datetime = Field(alias="lastUpdate")

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned = {key: value for key, value in data.items() if value is not None}
        if "lastUpdate" not in cleaned and "last_update" not in cleaned:
            cleaned["lastUpdate"] = cleaned.get("created") or utc_now()
        return cleaned

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        try:
            return RaindropType(str(value))
        except ValueError:
            logger.debug("unknown_raindrop_type", extra={"type": value})
            return RaindropType.LINK

    @property
    def collection_id(self) -> int:
        return self.collection.id


class RaindropsResponse(BaseModel):
    items: list[RaindropResponse] = Field(default_factory=list)
    count: int | None = None
    result: bool | None = None

    model_config = ConfigDict(extra="ignore")

    @property
    def item_count(self) -> int:
        return self.count if self.count is not None else len(self.items)
