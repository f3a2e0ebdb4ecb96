from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from minisearch_server.api.dependencies import get_server_state
from minisearch_server.state import ServerState

router = APIRouter(prefix="/api")


class AccessKeyRequest(BaseModel):
    access_key: str = Field(alias="accessKey")


def is_valid_access_key(candidate: str, access_keys: tuple[str, ...]) -> bool:
    """Return True if ``candidate`` matches one of the configured keys."""
    encoded = candidate.encode("utf-8")
    return any(secrets.compare_digest(encoded, key.encode("utf-8")) for key in access_keys)


@router.post("/validate-access-key")
def validate_access_key(
    body: AccessKeyRequest, state: ServerState = Depends(get_server_state)
) -> dict[str, bool]:
    """Check an access key against the ACCESS_KEYS setting."""
    return {"valid": is_valid_access_key(body.access_key, state.config.access_keys)}
