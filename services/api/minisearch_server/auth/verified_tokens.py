"""Memo of tokens that already passed hash verification."""

from __future__ import annotations


class VerifiedTokenCache:
    """Set of verified tokens. Entries live until the process exits."""

    def __init__(self) -> None:
        self._tokens: set[str] = set()

    def __contains__(self, token: object) -> bool:
        return token in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def contains(self, token: str) -> bool:
        """Return True if the token was verified before."""
        return token in self._tokens

    def add(self, token: str) -> None:
        """Remember a token that passed verification."""
        self._tokens.add(token)
