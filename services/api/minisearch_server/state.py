"""Process-wide server state, owned by the FastAPI application."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from minisearch_server.auth.gate import AccessGate
from minisearch_server.auth.hashing import Argon2TokenVerifier
from minisearch_server.auth.rate_limit import RateLimitConfig, create_rate_limiter
from minisearch_server.auth.search_token import get_search_token
from minisearch_server.config import ServerConfig, load_circuit_breaker_config
from minisearch_server.inference.client import InferenceClient
from minisearch_server.resilience.circuit_breaker import CircuitBreaker
from minisearch_server.search.counters import SearchCounters
from minisearch_server.search.searxng import SearxngClient

logger = logging.getLogger(__name__)


@dataclass
class ServerState:
    config: ServerConfig
    gate: AccessGate
    breaker: CircuitBreaker
    search_client: SearxngClient
    inference_client: InferenceClient | None = None
    counters: SearchCounters = field(default_factory=SearchCounters)
    started_at: float = field(default_factory=time.monotonic)

    async def aclose(self) -> None:
        """Close backend HTTP clients."""
        await self.search_client.aclose()
        if self.inference_client is not None:
            await self.inference_client.aclose()
        close_limiter = getattr(self.gate.rate_limiter, "aclose", None)
        if close_limiter is not None:
            await close_limiter()


def build_server_state(config: ServerConfig) -> ServerState:
    """Create the gate, breaker and backend clients from configuration."""
    gate = AccessGate(
        verifier=Argon2TokenVerifier(),
        rate_limiter=create_rate_limiter(RateLimitConfig.from_env()),
        secret=get_search_token(),
    )
    inference_client = None
    if config.inference_base_url and config.inference_api_key:
        inference_client = InferenceClient(config.inference_base_url, config.inference_api_key)
    else:
        logger.info("Inference backend not configured; /inference is disabled")

    return ServerState(
        config=config,
        gate=gate,
        breaker=CircuitBreaker(load_circuit_breaker_config()),
        search_client=SearxngClient(config.searxng_url),
        inference_client=inference_client,
    )
