"""Exponential backoff with jitter between retry attempts."""

import random


def calculate_backoff_seconds(
    attempt: int,
    base_delay_ms: float = 100,
    max_delay_ms: float = 5000,
) -> float:
    """
    Calculate the delay before the next attempt.

    The delay doubles per attempt up to ``max_delay_ms`` and is scaled by a
    random factor in [0.7, 1.0).

    Args:
        attempt: Attempt number that just failed (1-based)
        base_delay_ms: Delay after the first attempt
        max_delay_ms: Upper bound before jitter

    Returns:
        Delay in seconds
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    delay_ms = min(base_delay_ms * 2 ** (attempt - 1), max_delay_ms)
    return delay_ms * (0.7 + random.random() * 0.3) / 1000
