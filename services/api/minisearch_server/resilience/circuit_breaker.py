"""Per-key circuit breaker for calls to search and inference backends.

Each resource key (a backend name or model id) has its own state machine:

- CLOSED: calls pass through; consecutive failures open the circuit
- OPEN: calls fail fast with CircuitOpenError until the reset timeout elapses
- HALF_OPEN: trial calls pass through; enough successes close the circuit,
  a single failure opens it again

The OPEN -> HALF_OPEN transition is evaluated lazily against the clock on
every read, so no timers are scheduled.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import aclosing
from dataclasses import dataclass, replace
from enum import Enum
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from minisearch_server.config import CircuitBreakerConfig
from minisearch_server.errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

FailurePredicate = Callable[[Exception], bool]


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitMetrics:
    """Outcome history for a single circuit key."""

    failures: int = 0
    successes: int = 0
    last_failure_at: float | None = None
    state: CircuitState = CircuitState.CLOSED


class CircuitBreaker:
    """Tracks failures per key and decides whether calls may proceed.

    Example:
        >>> breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=2))
        >>> results = await breaker.execute("searxng", lambda: client.search(query))
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the breaker.

        Args:
            config: Failure/success thresholds and reset timeout
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._metrics: dict[str, CircuitMetrics] = {}
        self._lock = threading.Lock()

    async def execute(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        is_failure: FailurePredicate | None = None,
    ) -> T:
        """Run an operation under the circuit for ``key``.

        Args:
            key: Circuit identifier, e.g. a model name
            operation: Zero-argument callable returning an awaitable
            is_failure: Decides whether a raised exception counts against the
                circuit; by default every exception does. Exceptions it
                rejects are re-raised without touching the circuit.

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the circuit is open; the operation is not called
            Exception: Whatever the operation raised, unchanged
        """
        self._admit(key)

        try:
            result = await operation()
        except Exception as exc:
            if is_failure is None or is_failure(exc):
                self.record_failure(key)
            raise

        self.record_success(key)
        return result

    async def stream(
        self,
        key: str,
        open_stream: Callable[[], AsyncGenerator[T, None]],
        is_failure: FailurePredicate | None = None,
    ) -> AsyncGenerator[T, None]:
        """Relay an async stream under the circuit for ``key``.

        The circuit is checked before the stream is opened. The outcome is
        recorded once the stream is exhausted or raises; a consumer that stops
        early records nothing.

        Raises:
            CircuitOpenError: On the first iteration if the circuit is open
            Exception: Whatever the stream raised, unchanged
        """
        self._admit(key)

        try:
            async with aclosing(open_stream()) as items:
                async for item in items:
                    yield item
        except Exception as exc:
            if is_failure is None or is_failure(exc):
                self.record_failure(key)
            raise

        self.record_success(key)

    def get_state(self, key: str) -> CircuitState:
        """Return the current state of a circuit (CLOSED for unknown keys)."""
        with self._lock:
            metrics = self._metrics.get(key)
            if metrics is None:
                return CircuitState.CLOSED
            return self._effective_state(metrics)

    def get_metrics(self, key: str) -> CircuitMetrics:
        """Return a copy of the metrics for ``key``."""
        with self._lock:
            metrics = self._metrics.get(key)
            if metrics is None:
                return CircuitMetrics()
            return replace(metrics, state=self._effective_state(metrics))

    def snapshot(self) -> dict[str, str]:
        """Return the state of every known circuit keyed by name."""
        with self._lock:
            return {
                key: self._effective_state(metrics).value
                for key, metrics in self._metrics.items()
            }

    def record_success(self, key: str) -> None:
        """Apply the success transition for ``key``."""
        with self._lock:
            metrics = self._get_or_create(key)
            self._refresh(key, metrics)

            if metrics.state is CircuitState.HALF_OPEN:
                metrics.successes += 1
                if metrics.successes >= self.config.success_threshold:
                    self._close(metrics)
                    logger.info("Circuit %s closed after successful trial calls", key)
            elif metrics.state is CircuitState.CLOSED:
                metrics.failures = 0
            # OPEN: late success from a call admitted before the circuit opened

    def record_failure(self, key: str) -> None:
        """Apply the failure transition for ``key``.

        Callers that cancel an in-flight ``execute`` can use this to feed the
        outcome back into the circuit.
        """
        with self._lock:
            metrics = self._get_or_create(key)
            self._refresh(key, metrics)

            metrics.failures += 1
            metrics.successes = 0
            metrics.last_failure_at = self._clock()

            if metrics.state is CircuitState.HALF_OPEN:
                metrics.state = CircuitState.OPEN
                logger.warning("Circuit %s re-opened after failed trial call", key)
            elif (
                metrics.state is CircuitState.CLOSED
                and metrics.failures >= self.config.failure_threshold
            ):
                metrics.state = CircuitState.OPEN
                logger.warning(
                    "Circuit %s opened after %d consecutive failures",
                    key,
                    metrics.failures,
                )

    def reset(self, key: str) -> None:
        """Force ``key`` back to CLOSED with cleared counters."""
        with self._lock:
            metrics = self._metrics.get(key)
            if metrics is not None:
                self._close(metrics)

    def _admit(self, key: str) -> None:
        with self._lock:
            metrics = self._get_or_create(key)
            self._refresh(key, metrics)
            if metrics.state is CircuitState.OPEN:
                raise CircuitOpenError(key)

    def _get_or_create(self, key: str) -> CircuitMetrics:
        metrics = self._metrics.get(key)
        if metrics is None:
            metrics = CircuitMetrics()
            self._metrics[key] = metrics
        return metrics

    def _timeout_elapsed(self, metrics: CircuitMetrics) -> bool:
        if metrics.last_failure_at is None:
            return True
        elapsed = self._clock() - metrics.last_failure_at
        return elapsed >= self.config.reset_timeout_seconds

    def _effective_state(self, metrics: CircuitMetrics) -> CircuitState:
        if metrics.state is CircuitState.OPEN and self._timeout_elapsed(metrics):
            return CircuitState.HALF_OPEN
        return metrics.state

    def _refresh(self, key: str, metrics: CircuitMetrics) -> None:
        """Move an expired OPEN circuit to HALF_OPEN. Caller holds the lock."""
        if metrics.state is CircuitState.OPEN and self._timeout_elapsed(metrics):
            metrics.state = CircuitState.HALF_OPEN
            metrics.successes = 0
            logger.info("Circuit %s half-open, allowing trial calls", key)

    @staticmethod
    def _close(metrics: CircuitMetrics) -> None:
        metrics.failures = 0
        metrics.successes = 0
        metrics.last_failure_at = None
        metrics.state = CircuitState.CLOSED
