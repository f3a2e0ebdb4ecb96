from __future__ import annotations

from typing import NotRequired, TypedDict


class ErrorDetail(TypedDict):
    error: str
    lastError: NotRequired[str]


def error_detail(message: str, last_error: str | None = None) -> ErrorDetail:
    """Create a standardized error payload."""
    detail: ErrorDetail = {"error": message}
    if last_error is not None:
        detail["lastError"] = last_error
    return detail
