import sys
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from argon2 import PasswordHasher

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:  # pragma: no cover
    sys.path.append(str(PROJECT_ROOT))

from minisearch_server.auth.gate import AccessGate  # noqa: E402
from minisearch_server.auth.rate_limit import InMemoryRateLimiter, RateLimitConfig  # noqa: E402
from minisearch_server.config import (  # noqa: E402
    CircuitBreakerConfig,
    ServerConfig,
    reset_server_config,
)
from minisearch_server.errors import RateLimitExceeded  # noqa: E402
from minisearch_server.resilience.circuit_breaker import CircuitBreaker  # noqa: E402
from minisearch_server.search.searxng import SearchResults, SearxngClient  # noqa: E402
from minisearch_server.state import ServerState  # noqa: E402

VALID_TOKEN = "valid-token"

# Minimal argon2 parameters keep hashing fast in tests
FAST_HASHER = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubVerifier:
    """Token verifier that accepts a fixed set of tokens and counts calls."""

    def __init__(self, valid_tokens: set[str] | None = None) -> None:
        self.valid_tokens = valid_tokens if valid_tokens is not None else {VALID_TOKEN}
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    async def verify(self, token: str, secret: str) -> bool:
        self.calls.append((token, secret))
        if self.error is not None:
            raise self.error
        return token in self.valid_tokens


class StubRateLimiter:
    """Rate limiter that can be told to reject or fail."""

    def __init__(self) -> None:
        self.consumed: list[str] = []
        self.should_reject = False
        self.error: Exception | None = None

    async def consume(self, key: str) -> None:
        self.consumed.append(key)
        if self.error is not None:
            raise self.error
        if self.should_reject:
            raise RateLimitExceeded(key)


@pytest.fixture
def clock() -> FakeClock:
    """Return a fake clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def verifier() -> StubVerifier:
    return StubVerifier()


@pytest.fixture
def rate_limiter() -> StubRateLimiter:
    return StubRateLimiter()


@pytest.fixture
def gate(verifier: StubVerifier, rate_limiter: StubRateLimiter) -> AccessGate:
    """Return a gate backed by stub collaborators."""
    return AccessGate(verifier=verifier, rate_limiter=rate_limiter, secret="secret")


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(
        searxng_url="http://searxng.test",
        inference_base_url=None,
        inference_api_key=None,
        inference_model=None,
        access_keys=("key-one", "key-two"),
        cors_origins=("http://localhost:5173",),
    )


@pytest.fixture
def search_client() -> MagicMock:
    """Return a SearXNG client double with async search and thumbnail methods."""
    client = MagicMock(spec=SearxngClient)
    client.search = AsyncMock(
        return_value=SearchResults(
            text_results=[("Example", "An example page", "https://example.com/")],
            image_results=[
                (
                    "Cat",
                    "https://images.example.com/cat",
                    "https://thumbs.example.com/cat.jpg",
                    "https://images.example.com/cat.jpg",
                )
            ],
        )
    )
    client.fetch_thumbnail = AsyncMock(return_value="data:image/jpeg;base64,Y2F0")
    return client


@pytest.fixture
def server_state(
    server_config: ServerConfig, clock: FakeClock, search_client: MagicMock
) -> ServerState:
    """Return server state with stub verification and an in-memory rate limiter."""
    gate = AccessGate(
        verifier=StubVerifier(),
        rate_limiter=InMemoryRateLimiter(
            RateLimitConfig(points=10, duration_seconds=10, redis_url=None), clock=clock
        ),
        secret="secret",
    )
    breaker = CircuitBreaker(
        CircuitBreakerConfig(failure_threshold=2, reset_timeout_ms=30000, success_threshold=1),
        clock=clock,
    )
    return ServerState(
        config=server_config,
        gate=gate,
        breaker=breaker,
        search_client=search_client,
    )


@pytest.fixture(autouse=True)
def clean_server_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Ensure server env vars do not interfere with tests unless explicitly set."""
    for key in [
        "RATE_LIMIT_POINTS",
        "RATE_LIMIT_DURATION_SECONDS",
        "REDIS_URL",
        "CIRCUIT_FAILURE_THRESHOLD",
        "CIRCUIT_RESET_TIMEOUT_MS",
        "CIRCUIT_SUCCESS_THRESHOLD",
        "SEARXNG_URL",
        "INTERNAL_OPENAI_COMPATIBLE_API_BASE_URL",
        "INTERNAL_OPENAI_COMPATIBLE_API_KEY",
        "INTERNAL_OPENAI_COMPATIBLE_API_MODEL",
        "ACCESS_KEYS",
        "CORS_ORIGINS",
    ]:
        monkeypatch.delenv(key, raising=False)
    reset_server_config()
    yield
    reset_server_config()
