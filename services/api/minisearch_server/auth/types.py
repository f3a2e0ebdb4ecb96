from __future__ import annotations

from dataclasses import dataclass

MISSING_TOKEN = "Missing token."
INVALID_TOKEN = "Invalid token."
TOO_MANY_REQUESTS = "Too many requests."


@dataclass(frozen=True)
class AuthorizationResult:
    is_authorized: bool
    status_code: int | None = None
    error: str | None = None

    @staticmethod
    def authorized() -> "AuthorizationResult":
        return AuthorizationResult(is_authorized=True)

    @staticmethod
    def rejected(status_code: int, error: str) -> "AuthorizationResult":
        return AuthorizationResult(is_authorized=False, status_code=status_code, error=error)

    def to_dict(self) -> dict[str, object]:
        """Serialize with camelCase keys, omitting fields of authorized results."""
        if self.is_authorized:
            return {"isAuthorized": True}
        return {
            "isAuthorized": False,
            "statusCode": self.status_code,
            "error": self.error,
        }
