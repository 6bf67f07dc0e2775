"""Request pacing for the Raindrop.io API.

Raindrop allows roughly 120 requests per minute per token, so every request
waits for a slot spaced ``min_interval`` seconds after the previous one, and
a 429 response suspends all requests until the server's reset time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL = 0.55
DEFAULT_THROTTLE_SECONDS = 60.0
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"


class RateLimiter:
    """Serializes outbound requests behind a minimum interval and a throttle window.

    One instance is shared by every client an orchestrator creates, so
    foreground and background requests draw from the same budget.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        default_throttle: float = DEFAULT_THROTTLE_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            min_interval: Minimum seconds between two consecutive slots
            default_throttle: Suspension length when the server gives no reset time
            clock: Wall-clock source in epoch seconds (reset headers are epoch based)
            sleep: Async sleep function; tests pass a fake that advances ``clock``
        """
        self.min_interval = min_interval
        self.default_throttle = default_throttle
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_time: float | None = None
        self._suspended_until: float | None = None

    @property
    def last_request_time(self) -> float | None:
        return self._last_request_time

    @property
    def suspended_until(self) -> float | None:
        return self._suspended_until

    @property
    def is_throttled(self) -> bool:
        return self._suspended_until is not None and self._clock() < self._suspended_until

    async def acquire_slot(self) -> float:
        """Wait until a request may be issued, record it and return the slot time."""
        async with self._lock:
            suspended_until = self._suspended_until
            if suspended_until is not None:
                wait_time = suspended_until - self._clock()
                if wait_time > 0:
                    logger.info(
                        "raindrop_rate_limit_wait",
                        extra={"wait_seconds": round(wait_time, 2)},
                    )
                    await self._sleep(wait_time)

            if self._last_request_time is not None:
                elapsed = self._clock() - self._last_request_time
                if elapsed < self.min_interval:
                    await self._sleep(self.min_interval - elapsed)

            self._last_request_time = self._clock()
            return self._last_request_time

    async def register_throttle(self, reset_timestamp: float | None = None) -> None:
        """Suspend requests until ``reset_timestamp`` (epoch seconds) or for the default window."""
        async with self._lock:
            if reset_timestamp is not None:
                self._suspended_until = reset_timestamp
            else:
                self._suspended_until = self._clock() + self.default_throttle
            logger.warning(
                "raindrop_rate_limit_hit",
                extra={
                    "suspended_until": self._suspended_until,
                    "from_header": reset_timestamp is not None,
                },
            )

    async def register_throttle_from_headers(self, headers: Mapping[str, str]) -> None:
        await self.register_throttle(parse_reset_header(headers))

    async def clear_throttle(self) -> None:
        async with self._lock:
            self._suspended_until = None


def parse_reset_header(headers: Mapping[str, str]) -> float | None:
    """Read ``X-RateLimit-Reset`` as epoch seconds, ignoring malformed values."""
    raw = headers.get(RATE_LIMIT_RESET_HEADER)
    if raw is None:
        raw = headers.get(RATE_LIMIT_RESET_HEADER.lower())
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.debug("raindrop_rate_limit_header_invalid", extra={"value": raw})
        return None
