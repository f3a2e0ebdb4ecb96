from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from minisearch_server.api.dependencies import get_server_state
from minisearch_server.state import ServerState

router = APIRouter()

_UNITS = (("day", 86400), ("hour", 3600), ("minute", 60), ("second", 1))


def format_uptime(seconds: float) -> str:
    """Format a duration like ``1 day 2 hours 5 seconds``."""
    remaining = int(seconds)
    parts: list[str] = []
    for name, size in _UNITS:
        amount, remaining = divmod(remaining, size)
        if amount:
            parts.append(f"{amount} {name}{'' if amount == 1 else 's'}")
    return " ".join(parts) or "0 seconds"


def _average(total: int, sessions: int) -> str:
    return f"{(total / sessions) if sessions else 0:.1f}"


@router.get("/status")
def status(state: ServerState = Depends(get_server_state)) -> dict[str, object]:
    """Return uptime, session and search statistics and circuit states."""
    sessions = len(state.gate.verified_tokens)
    textual = state.counters.textual
    graphical = state.counters.graphical
    return {
        "uptime": format_uptime(time.monotonic() - state.started_at),
        "sessions": sessions,
        "textualSearches": textual,
        "graphicalSearches": graphical,
        "averageTextualSearchesPerSession": _average(textual, sessions),
        "averageGraphicalSearchesPerSession": _average(graphical, sessions),
        "circuits": state.breaker.snapshot(),
    }
