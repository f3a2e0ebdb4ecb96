from __future__ import annotations

import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import redis.asyncio as redis

from minisearch_server.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    points: int
    duration_seconds: int
    redis_url: str | None

    @staticmethod
    def from_env() -> "RateLimitConfig":
        """Load rate limit config from environment variables."""
        points = int(os.environ.get("RATE_LIMIT_POINTS", "10"))
        duration_seconds = int(os.environ.get("RATE_LIMIT_DURATION_SECONDS", "10"))
        redis_url = os.environ.get("REDIS_URL") or None
        return RateLimitConfig(
            points=points, duration_seconds=duration_seconds, redis_url=redis_url
        )


class RateLimiter(Protocol):
    async def consume(self, key: str) -> None:
        """Spend one point for ``key``; raise RateLimitExceeded when none are left."""
        ...


class InMemoryRateLimiter:
    def __init__(
        self, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic
    ) -> None:
        """Create an in-memory fixed-window rate limiter."""
        self._limit = config.points
        self._window = config.duration_seconds
        self._clock = clock
        self._counts: dict[str, tuple[int, float]] = {}

    async def consume(self, key: str) -> None:
        """Spend one point for ``key`` in the current window."""
        now = self._clock()
        count, start = self._counts.get(key, (0, now))
        if now - start >= self._window:
            count, start = 0, now
        count += 1
        self._counts[key] = (count, start)
        if count > self._limit:
            raise RateLimitExceeded(key)


class RedisRateLimiter:
    def __init__(self, config: RateLimitConfig) -> None:
        """Create a Redis-backed fixed-window rate limiter."""
        if not config.redis_url:
            raise ValueError("REDIS_URL is required for Redis rate limiting.")
        self._limit = config.points
        self._window = config.duration_seconds
        self._client = redis.Redis.from_url(config.redis_url, decode_responses=True)

    async def consume(self, key: str) -> None:
        """Spend one point for ``key`` in the current window."""
        window_id = int(time.time() // self._window)
        # Tokens are secrets; only their digest goes into Redis
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        redis_key = f"rate:{digest}:{window_id}"
        async with self._client.pipeline() as pipe:
            count, _ = await pipe.incr(redis_key).expire(redis_key, self._window).execute()
        if int(count) > self._limit:
            raise RateLimitExceeded(key)

    async def aclose(self) -> None:
        await self._client.aclose()


def create_rate_limiter(config: RateLimitConfig | None = None) -> RateLimiter:
    """Return the configured rate limiter implementation."""
    config = config or RateLimitConfig.from_env()
    if config.redis_url:
        logger.info("Using Redis rate limiter")
        return RedisRateLimiter(config)
    return InMemoryRateLimiter(config)
