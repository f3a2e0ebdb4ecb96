"""Model fallback for streamed chat completions.

A request is tried on up to ``max_attempts`` models. Each model has its own
circuit; models whose circuit is open are skipped, and attempts after a
backend failure are spaced with jittered exponential backoff. A rejection of
the request itself (a non-retryable 4xx) stops the fallback without counting
against the model.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from minisearch_server.errors import CircuitOpenError, StreamInterruptedError
from minisearch_server.inference.client import (
    InferenceClient,
    is_backend_failure,
    select_random_model,
)
from minisearch_server.resilience.backoff import calculate_backoff_seconds
from minisearch_server.resilience.circuit_breaker import CircuitBreaker, CircuitState

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5

# Errors a model stream may raise that move the request to another model
STREAM_ERRORS = (CircuitOpenError, StreamInterruptedError, httpx.HTTPError, ValueError)


@dataclass
class OpenedStream:
    """A model stream that has produced its first chunk (or finished empty)."""

    model: str
    first_chunk: dict[str, Any] | None
    chunks: AsyncGenerator[dict[str, Any], None]


class ModelFallback:
    def __init__(
        self,
        breaker: CircuitBreaker,
        client: InferenceClient,
        payload: dict[str, Any],
        models: Sequence[str],
        fixed_model: bool = False,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """
        Initialize the fallback for one request.

        Args:
            breaker: Breaker keyed by model id
            client: Inference API client
            payload: Chat completion body without ``model``
            models: Candidate model ids
            fixed_model: Only ever try ``models[0]``
            max_attempts: Upper bound on models tried
        """
        self._breaker = breaker
        self._client = client
        self._payload = payload
        self._models = list(models)
        self._fixed_model = fixed_model
        self._max_attempts = max_attempts
        self.attempts = 0
        self.attempted: set[str] = set()
        self.last_model: str | None = None
        self.last_error: Exception | None = None
        self.rejection: httpx.HTTPStatusError | None = None

    @property
    def last_error_message(self) -> str:
        if self.last_error is not None:
            return str(self.last_error)
        if self._models:
            return "All model circuits are open"
        return "Unknown error"

    def _next_model(self) -> str | None:
        if self._fixed_model:
            return None if self.attempted else self._models[0]
        candidates = [
            model
            for model in self._models
            if self._breaker.get_state(model) is not CircuitState.OPEN
        ]
        return select_random_model(candidates, self.attempted)

    def record_error(self, model: str, exc: Exception) -> None:
        """Remember why ``model`` failed; stop if the request itself was rejected."""
        self.last_error = exc
        if isinstance(exc, httpx.HTTPStatusError) and not is_backend_failure(exc):
            self.rejection = exc
            logger.warning("Model %s rejected the request: %s", model, exc)
        elif isinstance(exc, CircuitOpenError):
            logger.warning("Skipping model %s: %s", model, exc)
        else:
            logger.warning("Model %s failed on attempt %d: %s", model, self.attempts, exc)

    async def open(self) -> OpenedStream | None:
        """Open a stream on the next usable model.

        Returns:
            The first model stream that produced output, or None once the
            attempts, the candidate models or the request itself are exhausted
        """
        while self.rejection is None and self.attempts < self._max_attempts:
            model = self._next_model()
            if model is None:
                return None

            if self.attempts and not isinstance(self.last_error, CircuitOpenError):
                await asyncio.sleep(calculate_backoff_seconds(self.attempts))

            self.attempts += 1
            self.attempted.add(model)
            self.last_model = model
            chunks = self._breaker.stream(
                model,
                functools.partial(self._client.stream_chat_completion, model, self._payload),
                is_failure=is_backend_failure,
            )
            try:
                first_chunk = await anext(chunks)
            except StopAsyncIteration:
                return OpenedStream(model=model, first_chunk=None, chunks=chunks)
            except STREAM_ERRORS as exc:
                self.record_error(model, exc)
                continue
            return OpenedStream(model=model, first_chunk=first_chunk, chunks=chunks)

        return None
