"""Pytest configuration and shared fixtures.

This module provides common fixtures and fakes for all tests.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from raindropbar.adapters.raindrop.models import CollectionResponse, RaindropsResponse
from raindropbar.config import AppConfig, RaindropConfig, RuntimeConfig, SyncConfig
from raindropbar.db.session import DatabaseSessionManager

BASE_TIME = datetime(2026, 1, 1, tzinfo=UTC)


def iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def make_collection(
    collection_id: int,
    title: str | None = None,
    *,
    count: int = 0,
    parent_id: int | None = None,
    last_update: datetime = BASE_TIME,
) -> dict[str, Any]:
    """Collection payload shaped like the API's JSON."""
    payload: dict[str, Any] = {
        "_id": collection_id,
        "title": title or f"Collection {collection_id}",
        "count": count,
        "cover": [f"https://covers.example/{collection_id}.png"],
        "color": "#0a84ff",
        "sort": collection_id,
        "view": "list",
        "public": False,
        "expanded": True,
        "lastUpdate": iso(last_update),
    }
    if parent_id is not None:
        payload["parent"] = {"$id": parent_id}
    return payload


def make_raindrop(
    raindrop_id: int,
    last_update: datetime,
    *,
    collection_id: int = 1,
    title: str | None = None,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Raindrop payload shaped like the API's JSON."""
    return {
        "_id": raindrop_id,
        "title": title or f"Bookmark {raindrop_id}",
        "link": f"https://example.com/{raindrop_id}",
        "excerpt": "",
        "note": "",
        "domain": "example.com",
        "cover": "",
        "type": "link",
        "tags": tags or [],
        "important": False,
        "collection": {"$id": collection_id},
        "created": iso(last_update - timedelta(days=1)),
        "lastUpdate": iso(last_update),
    }


class FakeClock:
    """Epoch clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class FakeRaindropClient:
    """In-memory stand-in for ``RaindropClient`` serving pages from fixed lists.

    ``on_fetch`` runs inside every ``list_bookmarks`` call with
    ``(collection_id, page)`` and may raise to simulate failures.
    """

    def __init__(
        self,
        collections: list[dict[str, Any]],
        bookmarks: list[dict[str, Any]],
        *,
        trash: list[dict[str, Any]] | None = None,
        report_count: bool = True,
    ) -> None:
        self.collections = collections
        self.bookmarks = bookmarks
        self.trash = trash or []
        self.report_count = report_count
        self.calls: list[dict[str, Any]] = []
        self.collection_calls = 0
        self.on_fetch: Any = None

    async def __aenter__(self) -> FakeRaindropClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        return None

    async def list_collections(self) -> list[CollectionResponse]:
        self.collection_calls += 1
        return [CollectionResponse.model_validate(item) for item in self.collections]

    async def list_bookmarks(
        self,
        collection_id: int = 0,
        page: int = 0,
        per_page: int = 50,
        sort: str | None = None,
    ) -> RaindropsResponse:
        self.calls.append(
            {"collection_id": collection_id, "page": page, "per_page": per_page, "sort": sort}
        )
        if self.on_fetch is not None:
            self.on_fetch(collection_id, page)
        source = self.trash if collection_id == -99 else self.bookmarks
        if sort == "-lastUpdate":
            source = sorted(source, key=lambda item: item["lastUpdate"], reverse=True)
        items = source[page * per_page : (page + 1) * per_page]
        payload: dict[str, Any] = {"result": True, "items": items}
        if self.report_count:
            payload["count"] = len(source)
        return RaindropsResponse.model_validate(payload)

    def pages_fetched(self, collection_id: int = 0) -> list[int]:
        return [call["page"] for call in self.calls if call["collection_id"] == collection_id]


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "raindropbar.db")


@pytest.fixture
def db(db_path):
    session = DatabaseSessionManager(db_path)
    session.migrate()
    yield session
    session.close()


@pytest.fixture
def make_config(tmp_path, db_path):
    def _make(**sync_overrides: Any) -> AppConfig:
        sync_values = {"auto_enabled": False, **sync_overrides}
        return AppConfig(
            raindrop=RaindropConfig(min_request_interval_sec=0.0),
            sync=SyncConfig(**sync_values),
            runtime=RuntimeConfig(db_path=db_path, token_dir=str(tmp_path / "credentials")),
        )

    return _make
