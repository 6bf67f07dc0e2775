"""Tests for the Raindrop API client's request and retry policy."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from conftest import BASE_TIME, FakeClock, make_collection, make_raindrop

from raindropbar.adapters.raindrop.client import RaindropClient
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
from raindropbar.adapters.raindrop.rate_limiter import RateLimiter

API_URL = "https://api.raindrop.test/rest/v1"

PAGE_BODY = {
    "result": True,
    "items": [make_raindrop(1, BASE_TIME), make_raindrop(2, BASE_TIME)],
    "count": 2,
}


class _Scripted:
    """MockTransport handler replaying a fixed list of responses."""

    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _client(handler: Any, clock: FakeClock, **kwargs: Any) -> RaindropClient:
    limiter = RateLimiter(0.55, 60.0, clock=clock.time, sleep=clock.sleep)
    return RaindropClient(
        API_URL,
        "secret-token-1234",
        rate_limiter=limiter,
        transport=httpx.MockTransport(handler),
        sleep=clock.sleep,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_three_rate_limit_retries_then_success(clock):
    handler = _Scripted(
        [
            httpx.Response(429),
            httpx.Response(429),
            httpx.Response(429),
            httpx.Response(200, json=PAGE_BODY),
        ]
    )
    async with _client(handler, clock) as client:
        page = await client.list_bookmarks(0)

    assert len(handler.requests) == 4
    assert [item.id for item in page.items] == [1, 2]
    assert client.rate_limiter.suspended_until is None


@pytest.mark.asyncio
async def test_fourth_rate_limit_raises_without_further_retry(clock):
    handler = _Scripted([httpx.Response(429)])
    async with _client(handler, clock) as client:
        with pytest.raises(RateLimitedError) as exc_info:
            await client.list_bookmarks(0)

    assert len(handler.requests) == 4
    assert str(exc_info.value) == "Rate limited by API"
    # The last 429 still leaves the limiter suspended.
    assert client.rate_limiter.is_throttled


@pytest.mark.asyncio
async def test_rate_limit_waits_for_reset_header(clock):
    reset_at = int(clock.now) + 17
    handler = _Scripted(
        [
            httpx.Response(429, headers={"X-RateLimit-Reset": str(reset_at)}),
            httpx.Response(200, json=PAGE_BODY),
        ]
    )
    async with _client(handler, clock) as client:
        await client.list_bookmarks(0)

    assert len(handler.requests) == 2
    assert clock.now >= reset_at


@pytest.mark.asyncio
async def test_rate_limit_without_header_waits_default_window(clock):
    start = clock.now
    handler = _Scripted([httpx.Response(429), httpx.Response(200, json=PAGE_BODY)])
    async with _client(handler, clock) as client:
        await client.list_bookmarks(0)

    assert clock.now >= start + 60.0


@pytest.mark.asyncio
async def test_server_error_retries_with_backoff(clock):
    handler = _Scripted(
        [httpx.Response(503), httpx.Response(502), httpx.Response(200, json=PAGE_BODY)]
    )
    async with _client(handler, clock) as client:
        page = await client.list_bookmarks(0)

    assert len(page.items) == 2
    assert len(handler.requests) == 3
    backoffs = [delay for delay in clock.sleeps if delay >= 0.5]
    assert len(backoffs) == 2
    assert 0.5 <= backoffs[0] <= 0.8
    assert 1.0 <= backoffs[1] <= 1.3


@pytest.mark.asyncio
async def test_server_error_exhausts_retries(clock):
    handler = _Scripted([httpx.Response(500)])
    async with _client(handler, clock) as client:
        with pytest.raises(ServerError) as exc_info:
            await client.list_bookmarks(0)

    assert len(handler.requests) == 5
    assert exc_info.value.status_code == 500
    assert str(exc_info.value) == "Server error: 500 (retries exhausted)"


@pytest.mark.asyncio
async def test_backoff_delay_is_capped(clock):
    handler = _Scripted([httpx.Response(500)])
    async with _client(handler, clock, max_server_retries=8) as client:
        with pytest.raises(ServerError):
            await client.list_bookmarks(0)

    assert max(clock.sleeps) <= 10.0


@pytest.mark.asyncio
async def test_unauthorized_is_not_retried(clock):
    handler = _Scripted([httpx.Response(401)])
    async with _client(handler, clock) as client:
        with pytest.raises(UnauthorizedError) as exc_info:
            await client.list_collections()

    assert len(handler.requests) == 1
    assert str(exc_info.value) == "Invalid or expired API token"


@pytest.mark.asyncio
async def test_other_client_error_is_http_error(clock):
    handler = _Scripted([httpx.Response(404)])
    async with _client(handler, clock) as client:
        with pytest.raises(HTTPError) as exc_info:
            await client.list_bookmarks(12345)

    assert len(handler.requests) == 1
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_transport_failure_is_invalid_response(clock):
    handler = _Scripted([httpx.ConnectError("connection refused")])
    async with _client(handler, clock) as client:
        with pytest.raises(InvalidResponseError):
            await client.list_bookmarks(0)

    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_undecodable_body_stream_is_invalid_response(clock):
    handler = _Scripted([httpx.DecodingError("invalid gzip stream")])
    async with _client(handler, clock) as client:
        with pytest.raises(InvalidResponseError) as exc_info:
            await client.list_bookmarks(0)

    assert len(handler.requests) == 1
    assert exc_info.value.detail == "invalid gzip stream"


def test_errors_carry_user_facing_messages():
    assert str(ServerError(503)) == "Server error: 503 (retries exhausted)"
    assert str(UnauthorizedError()) == "Invalid or expired API token"
    assert str(RateLimitedError()) == "Rate limited by API"
    assert str(HTTPError(404)) == "HTTP error: 404"
    assert all(
        issubclass(cls, RaindropAPIError)
        for cls in (ServerError, UnauthorizedError, RateLimitedError, HTTPError)
    )


@pytest.mark.asyncio
async def test_malformed_json_is_decode_error_and_not_retried(clock):
    handler = _Scripted([httpx.Response(200, content=b"<html>oops</html>")])
    async with _client(handler, clock) as client:
        with pytest.raises(ResponseDecodeError):
            await client.list_bookmarks(0)

    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_schema_mismatch_is_decode_error(clock):
    broken = make_raindrop(1, BASE_TIME)
    del broken["link"]
    handler = _Scripted([httpx.Response(200, json={"result": True, "items": [broken]})])
    async with _client(handler, clock) as client:
        with pytest.raises(ResponseDecodeError):
            await client.list_bookmarks(0)


@pytest.mark.asyncio
async def test_unsupported_scheme_is_invalid_url():
    client = RaindropClient("ftp://api.raindrop.test", "token", rate_limiter=RateLimiter(0.0))
    async with client:
        with pytest.raises(InvalidURLError):
            await client.list_collections()


@pytest.mark.asyncio
async def test_list_collections_returns_roots_then_children(clock):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/collections/childrens"):
            return httpx.Response(
                200, json={"result": True, "items": [make_collection(20, parent_id=10)]}
            )
        return httpx.Response(
            200, json={"result": True, "items": [make_collection(10), make_collection(11)]}
        )

    async with _client(handler, clock) as client:
        collections = await client.list_collections()

    assert [c.id for c in collections] == [10, 11, 20]
    assert collections[2].parent_id == 10
    assert collections[0].parent_id is None


@pytest.mark.asyncio
async def test_list_bookmarks_sends_paging_and_auth(clock):
    handler = _Scripted([httpx.Response(200, json=PAGE_BODY)])
    async with _client(handler, clock) as client:
        await client.list_bookmarks(-99, page=3, per_page=50, sort="-lastUpdate")

    request = handler.requests[0]
    assert request.url.path == "/rest/v1/raindrops/-99"
    assert request.url.params["page"] == "3"
    assert request.url.params["perpage"] == "50"
    assert request.url.params["sort"] == "-lastUpdate"
    assert request.headers["Authorization"] == "Bearer secret-token-1234"


@pytest.mark.asyncio
async def test_sort_is_omitted_when_not_given(clock):
    handler = _Scripted([httpx.Response(200, json=PAGE_BODY)])
    async with _client(handler, clock) as client:
        await client.list_bookmarks(0)

    assert "sort" not in handler.requests[0].url.params


@pytest.mark.asyncio
async def test_get_total_count(clock):
    handler = _Scripted(
        [httpx.Response(200, json={"result": True, "items": [make_raindrop(1, BASE_TIME)], "count": 873})]
    )
    async with _client(handler, clock) as client:
        total = await client.get_total_count()

    assert total == 873
    assert handler.requests[0].url.params["perpage"] == "1"


@pytest.mark.asyncio
async def test_requests_are_paced_by_shared_limiter(clock):
    handler = _Scripted([httpx.Response(200, json=PAGE_BODY)])
    async with _client(handler, clock) as client:
        await client.list_bookmarks(0, page=0)
        await client.list_bookmarks(0, page=1)

    assert clock.sleeps and abs(clock.sleeps[0] - 0.55) < 1e-9


@pytest.mark.asyncio
async def test_client_requires_context_manager():
    client = RaindropClient(API_URL, "token")
    with pytest.raises(Exception, match="Client not initialized"):
        await client.list_collections()
