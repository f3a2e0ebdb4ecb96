from __future__ import annotations

import logging
from typing import cast

from fastapi import Depends, HTTPException, Query, Request

from minisearch_server.api.errors import error_detail
from minisearch_server.auth.gate import AccessGate
from minisearch_server.errors import AccessGateError
from minisearch_server.state import ServerState

logger = logging.getLogger(__name__)


def get_server_state(request: Request) -> ServerState:
    """Return the state container attached to the application."""
    return cast(ServerState, request.app.state.minisearch)


async def authorize_token(gate: AccessGate, token: str | None) -> None:
    """Raise an HTTPException unless the gate admits ``token``."""
    try:
        result = await gate.verify_token_and_rate_limit(token)
    except AccessGateError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail=error_detail("Internal server error"),
        ) from exc

    if not result.is_authorized:
        raise HTTPException(
            status_code=result.status_code or 401,
            detail=error_detail(result.error or "Unauthorized"),
        )


async def require_token(
    token: str | None = Query(None),
    state: ServerState = Depends(get_server_state),
) -> str:
    """Admit the request through the access gate and return its token."""
    await authorize_token(state.gate, token)
    return cast(str, token)
