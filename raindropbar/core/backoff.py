"""Exponential backoff with additive jitter for server-error retries."""

from __future__ import annotations

import random


def compute_backoff_delay(
    attempt: int,
    backoff_base: float = 0.5,
    jitter_max: float = 0.3,
    max_delay: float = 10.0,
) -> float:
    """Return the delay before retry number ``attempt`` (0-indexed).

    Delay formula: ``min(backoff_base * 2^attempt + uniform(0, jitter_max), max_delay)``
    """
    base_delay = max(0.0, backoff_base * (2**attempt))
    jitter = random.uniform(0.0, jitter_max) if jitter_max > 0 else 0.0
    return min(base_delay + jitter, max_delay)
