"""Exception types shared across the server."""

from __future__ import annotations


class MiniSearchError(Exception):
    """Base class for server errors."""


class CircuitOpenError(MiniSearchError):
    """Raised when a call is rejected because its circuit is open.

    The wrapped operation is never invoked when this is raised.
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Circuit breaker is open for {key}")
        self.key = key


class RateLimitExceeded(MiniSearchError):
    """Raised by a rate limiter when a key has spent its window quota."""

    def __init__(self, key: str) -> None:
        super().__init__("Rate limit exceeded")
        self.key = key


class AccessGateError(MiniSearchError):
    """A token verification or rate limiting collaborator failed unexpectedly."""

    status_code = 500


class StreamInterruptedError(MiniSearchError):
    """Raised when a completion stream closes before its ``[DONE]`` event."""

    def __init__(self, model: str) -> None:
        super().__init__("Stream ended unexpectedly")
        self.model = model
