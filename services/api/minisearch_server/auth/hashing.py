"""Argon2 verification of client tokens against the search token."""

from __future__ import annotations

import asyncio
from typing import Protocol

from argon2 import PasswordHasher, extract_parameters
from argon2.exceptions import InvalidHashError, VerificationError

# Parameters the browser client hashes the search token with
CLIENT_TIME_COST = 16
CLIENT_MEMORY_COST = 512
CLIENT_PARALLELISM = 1
CLIENT_HASH_LEN = 8


def client_password_hasher() -> PasswordHasher:
    """Return a hasher using the browser client's argon2id parameters."""
    return PasswordHasher(
        time_cost=CLIENT_TIME_COST,
        memory_cost=CLIENT_MEMORY_COST,
        parallelism=CLIENT_PARALLELISM,
        hash_len=CLIENT_HASH_LEN,
    )


class TokenVerifier(Protocol):
    async def verify(self, token: str, secret: str) -> bool:
        """Return True if ``token`` is a valid hash of ``secret``."""
        ...


class Argon2TokenVerifier:
    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        """Create a verifier; hashing runs in a worker thread.

        Tokens whose cost parameters exceed ``hasher``'s are rejected without
        being verified, since the client chooses them.
        """
        self._hasher = hasher or client_password_hasher()

    async def verify(self, token: str, secret: str) -> bool:
        """Return True if ``token`` is an encoded argon2 hash of ``secret``."""
        return await asyncio.to_thread(self._verify, token, secret)

    def _within_cost_limits(self, token: str) -> bool:
        parameters = extract_parameters(token)
        return (
            parameters.time_cost <= self._hasher.time_cost
            and parameters.memory_cost <= self._hasher.memory_cost
            and parameters.parallelism <= self._hasher.parallelism
        )

    def _verify(self, token: str, secret: str) -> bool:
        try:
            if not self._within_cost_limits(token):
                return False
            return self._hasher.verify(token, secret)
        except (VerificationError, InvalidHashError, ValueError, KeyError):
            # Mismatch, or the client sent something that is not an argon2 hash
            return False


def hash_search_token(secret: str, hasher: PasswordHasher | None = None) -> str:
    """Return an encoded argon2 hash of the search token, as a client would send it."""
    return (hasher or client_password_hasher()).hash(secret)
