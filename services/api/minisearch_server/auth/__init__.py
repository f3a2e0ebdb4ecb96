"""Request admission: search token verification and rate limiting."""

from minisearch_server.auth.gate import AccessGate
from minisearch_server.auth.types import AuthorizationResult

__all__ = ["AccessGate", "AuthorizationResult"]
