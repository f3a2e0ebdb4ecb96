"""Server configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from pydantic import BaseModel, Field

DEFAULT_SEARXNG_URL = "http://127.0.0.1:8080"
DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"


class CircuitBreakerConfig(BaseModel):
    """Thresholds for the per-key circuit breaker."""

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures that open a closed circuit",
    )
    reset_timeout_ms: int = Field(
        default=30000,
        ge=0,
        description="Milliseconds an open circuit waits before allowing a trial call",
    )
    success_threshold: int = Field(
        default=3,
        ge=1,
        description="Trial successes needed to close a half-open circuit",
    )

    @property
    def reset_timeout_seconds(self) -> float:
        return self.reset_timeout_ms / 1000


def load_circuit_breaker_config() -> CircuitBreakerConfig:
    """
    Build breaker thresholds from environment variables.

    Unset variables fall back to the model defaults.

    Raises:
        ValueError: If a variable is not an integer
        pydantic.ValidationError: If a value is out of range
    """
    overrides: dict[str, int] = {}
    if failure_threshold := os.environ.get("CIRCUIT_FAILURE_THRESHOLD"):
        overrides["failure_threshold"] = int(failure_threshold)
    if reset_timeout := os.environ.get("CIRCUIT_RESET_TIMEOUT_MS"):
        overrides["reset_timeout_ms"] = int(reset_timeout)
    if success_threshold := os.environ.get("CIRCUIT_SUCCESS_THRESHOLD"):
        overrides["success_threshold"] = int(success_threshold)
    return CircuitBreakerConfig(**overrides)


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class ServerConfig:
    searxng_url: str
    inference_base_url: str | None
    inference_api_key: str | None
    inference_model: str | None
    access_keys: tuple[str, ...]
    cors_origins: tuple[str, ...]

    @property
    def inference_enabled(self) -> bool:
        return bool(self.inference_base_url and self.inference_api_key)

    @staticmethod
    def from_env() -> "ServerConfig":
        """Load server settings from environment variables."""
        return ServerConfig(
            searxng_url=os.environ.get("SEARXNG_URL", DEFAULT_SEARXNG_URL),
            inference_base_url=os.environ.get("INTERNAL_OPENAI_COMPATIBLE_API_BASE_URL")
            or None,
            inference_api_key=os.environ.get("INTERNAL_OPENAI_COMPATIBLE_API_KEY") or None,
            inference_model=os.environ.get("INTERNAL_OPENAI_COMPATIBLE_API_MODEL") or None,
            access_keys=_split_csv(os.environ.get("ACCESS_KEYS", "")),
            cors_origins=_split_csv(os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)),
        )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    """Return the process-wide server configuration."""
    return ServerConfig.from_env()


def reset_server_config() -> None:
    """Clear the cached server configuration (used in tests)."""
    get_server_config.cache_clear()
