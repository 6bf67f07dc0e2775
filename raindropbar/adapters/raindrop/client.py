"""Raindrop.io REST API client."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from raindropbar.adapters.raindrop.errors import (
    HTTPError,
    InvalidResponseError,
    InvalidURLError,
    RaindropAPIError,
    RateLimitedError,
    ResponseDecodeError,
    ServerError,
    UnauthorizedError,
)
from raindropbar.adapters.raindrop.models import (
    CollectionResponse,
    CollectionsWrapper,
    RaindropsResponse,
)
from raindropbar.adapters.raindrop.rate_limiter import RateLimiter
from raindropbar.core.backoff import compute_backoff_delay
from raindropbar.core.logging_utils import redact_token

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Self

    from raindropbar.config.raindrop import RaindropConfig

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_PAGE_SIZE = 50
SORT_LAST_UPDATE_DESC = "-lastUpdate"

DEFAULT_MAX_RATE_LIMIT_RETRIES = 3
DEFAULT_MAX_SERVER_RETRIES = 4


class RaindropClient:
    """Async HTTP client for the Raindrop.io API.

    Every request goes through the shared :class:`RateLimiter`. 429 and 5xx
    responses are retried here and nowhere else; everything else is raised
    as a :class:`RaindropAPIError` subclass.
    """

    def __init__(
        self,
        api_url: str,
        token: str,
        *,
        rate_limiter: RateLimiter | None = None,
        timeout: float = 30.0,
        max_rate_limit_retries: int = DEFAULT_MAX_RATE_LIMIT_RETRIES,
        max_server_retries: int = DEFAULT_MAX_SERVER_RETRIES,
        backoff_base: float = 0.5,
        backoff_jitter: float = 0.3,
        backoff_max: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base URL, e.g. https://api.raindrop.io/rest/v1
            token: Raindrop test token or OAuth access token
            rate_limiter: Limiter to share with other clients (a private one otherwise)
            timeout: Per-request timeout in seconds
            max_rate_limit_retries: Retries allowed after 429 responses
            max_server_retries: Retries allowed after 5xx responses
            backoff_base: Base delay for 5xx backoff
            backoff_jitter: Upper bound of the additive random jitter
            backoff_max: Cap on a single backoff delay
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
            sleep: Async sleep used between 5xx retries
        """
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_rate_limit_retries = max_rate_limit_retries
        self.max_server_retries = max_server_retries
        self.backoff_base = backoff_base
        self.backoff_jitter = backoff_jitter
        self.backoff_max = backoff_max
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls,
        config: RaindropConfig,
        token: str,
        *,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> RaindropClient:
        return cls(
            config.api_url,
            token,
            rate_limiter=rate_limiter,
            timeout=config.request_timeout_sec,
            max_rate_limit_retries=config.max_rate_limit_retries,
            max_server_retries=config.max_server_retries,
            backoff_base=config.backoff_base_sec,
            backoff_jitter=config.backoff_jitter_sec,
            backoff_max=config.backoff_max_sec,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        try:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        except httpx.InvalidURL as exc:
            raise InvalidURLError(self.api_url) from exc
        logger.debug(
            "raindrop_client_opened",
            extra={"api_url": self.api_url, "token": redact_token(self.token)},
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RaindropAPIError("Client not initialized. Use async context manager.")
        return self._client

    async def list_collections(self) -> list[CollectionResponse]:
        """Return root collections followed by nested (child) collections."""
        root = await self._request("/collections", CollectionsWrapper)
        children = await self._request("/collections/childrens", CollectionsWrapper)
        logger.debug(
            "raindrop_collections_fetched",
            extra={"root": len(root.items), "children": len(children.items)},
        )
        return [*root.items, *children.items]

    async def list_bookmarks(
        self,
        collection_id: int = 0,
        page: int = 0,
        per_page: int = DEFAULT_PAGE_SIZE,
        sort: str | None = None,
    ) -> RaindropsResponse:
        """Fetch one page of raindrops.

        Args:
            collection_id: 0 for all collections except trash, -1 unsorted, -99 trash
            page: Zero-based page number
            per_page: Page size (the API caps it at 50)
            sort: Optional sort key such as ``-lastUpdate``
        """
        params: dict[str, Any] = {"page": page, "perpage": per_page}
        if sort:
            params["sort"] = sort
        return await self._request(f"/raindrops/{collection_id}", RaindropsResponse, params)

    async def get_total_count(self, collection_id: int = 0) -> int:
        response = await self.list_bookmarks(collection_id=collection_id, page=0, per_page=1)
        return response.item_count

    async def _request(
        self,
        path: str,
        model: type[T],
        params: dict[str, Any] | None = None,
    ) -> T:
        """GET ``path`` and decode it into ``model``, applying the retry policy."""
        rate_limit_retries = 0
        server_retries = 0

        while True:
            await self.rate_limiter.acquire_slot()

            try:
                response = await self.client.get(path, params=params)
            except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
                raise InvalidURLError(f"{self.api_url}{path}") from exc
            except httpx.RequestError as exc:
                logger.warning(
                    "raindrop_transport_error",
                    extra={"path": path, "error": str(exc), "error_type": type(exc).__name__},
                )
                raise InvalidResponseError(str(exc)) from exc

            status = response.status_code
            logger.debug(
                "raindrop_response",
                extra={"path": path, "params": params, "status_code": status},
            )

            if status == 429:
                await self.rate_limiter.register_throttle_from_headers(response.headers)
                if rate_limit_retries >= self.max_rate_limit_retries:
                    logger.error(
                        "raindrop_rate_limit_retries_exhausted",
                        extra={"path": path, "attempts": rate_limit_retries + 1},
                    )
                    raise RateLimitedError
                rate_limit_retries += 1
                logger.info(
                    "raindrop_rate_limit_retry",
                    extra={
                        "path": path,
                        "attempt": rate_limit_retries,
                        "max_retries": self.max_rate_limit_retries,
                    },
                )
                continue

            if status == 401:
                raise UnauthorizedError

            if 500 <= status <= 599:
                if server_retries >= self.max_server_retries:
                    logger.error(
                        "raindrop_server_retries_exhausted",
                        extra={"path": path, "status_code": status, "attempts": server_retries + 1},
                    )
                    raise ServerError(status)
                delay = compute_backoff_delay(
                    server_retries,
                    backoff_base=self.backoff_base,
                    jitter_max=self.backoff_jitter,
                    max_delay=self.backoff_max,
                )
                server_retries += 1
                logger.warning(
                    "raindrop_server_error_retry",
                    extra={
                        "path": path,
                        "status_code": status,
                        "attempt": server_retries,
                        "max_retries": self.max_server_retries,
                        "delay_seconds": round(delay, 2),
                    },
                )
                await self._sleep(delay)
                continue

            if not 200 <= status <= 299:
                raise HTTPError(status)

            await self.rate_limiter.clear_throttle()
            return self._decode(path, response, model)

    @staticmethod
    def _decode(path: str, response: httpx.Response, model: type[T]) -> T:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error(
                "raindrop_decode_failed",
                extra={"path": path, "model": model.__name__, "error": str(exc)},
            )
            raise ResponseDecodeError(path, str(exc)) from exc
