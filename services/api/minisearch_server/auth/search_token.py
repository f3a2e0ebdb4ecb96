"""Server-side search token stored in the system temp directory.

The browser client receives this secret at build time and presents an
argon2 hash of it as its request token.
"""

from __future__ import annotations

import secrets
import tempfile
from pathlib import Path

TOKEN_FILE_NAME = "minisearch-token"


def get_search_token_path() -> Path:
    """Return the path of the search token file."""
    return Path(tempfile.gettempdir()) / TOKEN_FILE_NAME


def regenerate_search_token(path: Path | None = None) -> str:
    """Write a new random search token and return it."""
    token_path = path or get_search_token_path()
    token = secrets.token_urlsafe(16)
    token_path.write_text(token, encoding="utf-8")
    return token


def get_search_token(path: Path | None = None) -> str:
    """Return the current search token, generating one if missing."""
    token_path = path or get_search_token_path()
    if not token_path.exists():
        return regenerate_search_token(token_path)
    return token_path.read_text(encoding="utf-8")
