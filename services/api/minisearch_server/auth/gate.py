"""Access gate: search token verification followed by per-token rate limiting."""

from __future__ import annotations

import logging

from minisearch_server.auth.hashing import TokenVerifier
from minisearch_server.auth.rate_limit import RateLimiter
from minisearch_server.auth.types import (
    INVALID_TOKEN,
    MISSING_TOKEN,
    TOO_MANY_REQUESTS,
    AuthorizationResult,
)
from minisearch_server.auth.verified_tokens import VerifiedTokenCache
from minisearch_server.errors import AccessGateError, RateLimitExceeded

logger = logging.getLogger(__name__)


class AccessGate:
    """Admits requests that carry a valid search token and are within quota.

    Tokens that pass argon2 verification once are cached for the lifetime of
    the gate, so later requests with the same token skip the expensive hash.
    Every admitted or rate-limited request spends one rate limit point.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        rate_limiter: RateLimiter,
        secret: str,
        verified_tokens: VerifiedTokenCache | None = None,
    ) -> None:
        """
        Initialize the gate.

        Args:
            verifier: Checks a client token against the secret
            rate_limiter: Per-token request quota
            secret: Expected search token, loaded once at startup
            verified_tokens: Cache of already-verified tokens
        """
        self.verifier = verifier
        self.rate_limiter = rate_limiter
        self.verified_tokens = (
            verified_tokens if verified_tokens is not None else VerifiedTokenCache()
        )
        self._secret = secret

    async def verify_token_and_rate_limit(self, token: str | None) -> AuthorizationResult:
        """
        Decide whether a request with ``token`` may proceed.

        Returns:
            Authorized result, or a rejection with status 400, 401 or 429

        Raises:
            AccessGateError: If the verifier or rate limiter fails for a reason
                other than an exhausted quota
        """
        if not token:
            return AuthorizationResult.rejected(400, MISSING_TOKEN)

        if not self.verified_tokens.contains(token):
            try:
                is_valid = await self.verifier.verify(token, self._secret)
            except Exception as exc:
                logger.error("Token verification failed: %s", exc)
                raise AccessGateError("Token verification failed") from exc

            if not is_valid:
                return AuthorizationResult.rejected(401, INVALID_TOKEN)
            self.verified_tokens.add(token)

        try:
            await self.rate_limiter.consume(token)
        except RateLimitExceeded:
            return AuthorizationResult.rejected(429, TOO_MANY_REQUESTS)
        except Exception as exc:
            logger.error("Rate limiter failed: %s", exc)
            raise AccessGateError("Rate limiter failed") from exc

        return AuthorizationResult.authorized()
