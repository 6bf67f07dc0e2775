"""Structural types the orchestrator depends on."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from typing import Self

    from raindropbar.adapters.raindrop.models import CollectionResponse, RaindropsResponse


class RaindropClientProtocol(Protocol):
    async def __aenter__(self) -> Self: ...

    async def __aexit__(self, *args: object) -> None: ...

    async def list_collections(self) -> list[CollectionResponse]: ...

    async def list_bookmarks(
        self,
        collection_id: int = 0,
        page: int = 0,
        per_page: int = 50,
        sort: str | None = None,
    ) -> RaindropsResponse: ...


class RaindropClientFactory(Protocol):
    def __call__(self, token: str) -> RaindropClientProtocol: ...
