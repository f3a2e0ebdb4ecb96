"""Failure isolation for backend calls."""

from minisearch_server.resilience.backoff import calculate_backoff_seconds
from minisearch_server.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitMetrics,
    CircuitState,
)

__all__ = [
    "CircuitBreaker",
    "CircuitMetrics",
    "CircuitState",
    "calculate_backoff_seconds",
]
