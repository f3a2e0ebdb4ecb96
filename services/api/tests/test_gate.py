"""Tests for the access gate."""

import pytest

from conftest import FAST_HASHER, VALID_TOKEN
from minisearch_server.auth.gate import AccessGate
from minisearch_server.auth.hashing import Argon2TokenVerifier, hash_search_token
from minisearch_server.auth.rate_limit import InMemoryRateLimiter, RateLimitConfig
from minisearch_server.auth.types import AuthorizationResult
from minisearch_server.errors import AccessGateError


class TestAuthorizationResult:
    """Test suite for AuthorizationResult serialization."""

    def test_authorized_to_dict(self):
        """Test that authorized results carry no status or error."""
        assert AuthorizationResult.authorized().to_dict() == {"isAuthorized": True}

    def test_rejected_to_dict(self):
        """Test rejection serialization."""
        result = AuthorizationResult.rejected(429, "Too many requests.")
        assert result.to_dict() == {
            "isAuthorized": False,
            "statusCode": 429,
            "error": "Too many requests.",
        }


class TestVerifyTokenAndRateLimit:
    """Test suite for the admission decision sequence."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, ""])
    async def test_missing_token(self, gate, verifier, rate_limiter, token):
        """Test that absent and empty tokens are rejected with 400."""
        result = await gate.verify_token_and_rate_limit(token)

        assert result.to_dict() == {
            "isAuthorized": False,
            "statusCode": 400,
            "error": "Missing token.",
        }
        assert verifier.calls == []
        assert rate_limiter.consumed == []

    @pytest.mark.asyncio
    async def test_invalid_token_is_not_cached(self, gate, verifier, rate_limiter):
        """Test that a failed verification is retried and still rejected."""
        first = await gate.verify_token_and_rate_limit("invalid-token")
        second = await gate.verify_token_and_rate_limit("invalid-token")

        for result in (first, second):
            assert result.is_authorized is False
            assert result.status_code == 401
            assert result.error == "Invalid token."
        assert len(verifier.calls) == 2
        assert "invalid-token" not in gate.verified_tokens
        assert rate_limiter.consumed == []

    @pytest.mark.asyncio
    async def test_valid_token_is_cached(self, gate, verifier, rate_limiter):
        """Test that a verified token skips hash verification on the next call."""
        first = await gate.verify_token_and_rate_limit(VALID_TOKEN)
        second = await gate.verify_token_and_rate_limit(VALID_TOKEN)

        assert first.to_dict() == {"isAuthorized": True}
        assert second.to_dict() == {"isAuthorized": True}
        assert verifier.calls == [(VALID_TOKEN, "secret")]
        assert VALID_TOKEN in gate.verified_tokens
        assert rate_limiter.consumed == [VALID_TOKEN, VALID_TOKEN]

    @pytest.mark.asyncio
    async def test_rate_limited_after_verification(self, gate, rate_limiter):
        """Test that a valid token over quota is rejected with 429."""
        rate_limiter.should_reject = True

        result = await gate.verify_token_and_rate_limit(VALID_TOKEN)

        assert result.to_dict() == {
            "isAuthorized": False,
            "statusCode": 429,
            "error": "Too many requests.",
        }
        # Verification still succeeded, so the token is remembered
        assert VALID_TOKEN in gate.verified_tokens

    @pytest.mark.asyncio
    async def test_rate_limited_cached_token(self, gate, verifier, rate_limiter):
        """Test that cached tokens still spend rate limit points."""
        await gate.verify_token_and_rate_limit(VALID_TOKEN)
        rate_limiter.should_reject = True

        result = await gate.verify_token_and_rate_limit(VALID_TOKEN)

        assert result.status_code == 429
        assert len(verifier.calls) == 1
        assert len(rate_limiter.consumed) == 2

    @pytest.mark.asyncio
    async def test_verifier_failure_is_a_gate_error(self, gate, verifier):
        """Test that verifier errors are not reported as invalid tokens."""
        verifier.error = RuntimeError("hash backend crashed")

        with pytest.raises(AccessGateError) as exc_info:
            await gate.verify_token_and_rate_limit(VALID_TOKEN)

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert VALID_TOKEN not in gate.verified_tokens

    @pytest.mark.asyncio
    async def test_rate_limiter_failure_is_a_gate_error(self, gate, rate_limiter):
        """Test that rate limiter errors are not reported as 429."""
        rate_limiter.error = ConnectionError("redis unavailable")

        with pytest.raises(AccessGateError) as exc_info:
            await gate.verify_token_and_rate_limit(VALID_TOKEN)

        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_gates_do_not_share_cache(self, verifier, rate_limiter):
        """Test that each gate owns its verified-token cache."""
        first = AccessGate(verifier=verifier, rate_limiter=rate_limiter, secret="secret")
        second = AccessGate(verifier=verifier, rate_limiter=rate_limiter, secret="secret")

        await first.verify_token_and_rate_limit(VALID_TOKEN)
        await second.verify_token_and_rate_limit(VALID_TOKEN)

        assert len(verifier.calls) == 2
        assert len(first.verified_tokens) == 1
        assert len(second.verified_tokens) == 1


class TestGateWithArgon2:
    """Integration of the gate with argon2 verification and in-memory limits."""

    @pytest.fixture
    def argon2_gate(self, clock) -> AccessGate:
        limiter = InMemoryRateLimiter(
            RateLimitConfig(points=2, duration_seconds=10, redis_url=None), clock=clock
        )
        return AccessGate(
            verifier=Argon2TokenVerifier(FAST_HASHER),
            rate_limiter=limiter,
            secret="search-secret",
        )

    @pytest.mark.asyncio
    async def test_hash_of_secret_is_admitted_until_quota(self, argon2_gate, clock):
        """Test a real client token through verification and rate limiting."""
        token = hash_search_token("search-secret", FAST_HASHER)

        assert (await argon2_gate.verify_token_and_rate_limit(token)).is_authorized
        assert (await argon2_gate.verify_token_and_rate_limit(token)).is_authorized
        assert (await argon2_gate.verify_token_and_rate_limit(token)).status_code == 429

        clock.advance(10)
        assert (await argon2_gate.verify_token_and_rate_limit(token)).is_authorized

    @pytest.mark.asyncio
    async def test_hash_of_other_secret_is_rejected(self, argon2_gate):
        """Test that a hash of a different secret is invalid."""
        token = hash_search_token("old-secret", FAST_HASHER)

        result = await argon2_gate.verify_token_and_rate_limit(token)

        assert result.status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token_is_rejected(self, argon2_gate):
        """Test that a value that is not an argon2 hash is invalid, not an error."""
        result = await argon2_gate.verify_token_and_rate_limit("definitely-not-a-hash")

        assert result.status_code == 401
