"""Errors raised by the Raindrop.io API client."""

from __future__ import annotations


class RaindropAPIError(Exception):
    """Base exception for Raindrop API client errors."""


class InvalidURLError(RaindropAPIError):
    def __init__(self, url: str) -> None:
        super().__init__("Invalid URL")
        self.url = url


class InvalidResponseError(RaindropAPIError):
    """Transport failure: no HTTP response was received."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__("Invalid response")
        self.detail = detail


class HTTPError(RaindropAPIError):
    """Non-retryable status other than 401/429."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP error: {status_code}")
        self.status_code = status_code


class ServerError(RaindropAPIError):
    """5xx response that kept failing after all retries."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Server error: {status_code} (retries exhausted)")
        self.status_code = status_code


class RateLimitedError(RaindropAPIError):
    def __init__(self) -> None:
        super().__init__("Rate limited by API")


class UnauthorizedError(RaindropAPIError):
    def __init__(self) -> None:
        super().__init__("Invalid or expired API token")


class ResponseDecodeError(RaindropAPIError):
    """Body did not match the expected schema; retrying will not help."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"Could not decode response for {path}")
        self.path = path
        self.detail = detail
