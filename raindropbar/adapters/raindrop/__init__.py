"""Raindrop.io API adapter: paced, retrying HTTP client and response models."""

from raindropbar.adapters.raindrop.client import RaindropClient
from raindropbar.adapters.raindrop.rate_limiter import RateLimiter

__all__ = ["RaindropClient", "RateLimiter"]
