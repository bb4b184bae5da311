"""Per-request identity helpers.

Identity is resolved once per request (bearer token, or test headers when
TESTING) and stored on ``flask.g``; nothing is persisted in a cookie session.
"""
from __future__ import annotations

from typing import TypedDict

from flask import g


class SessionData(TypedDict):
    user_id: int
    role: str


def persist_identity(user_id: int, role: str) -> None:
    """Attach the caller identity to the current request context."""
    g.identity = SessionData(user_id=int(user_id), role=role)


def get_session() -> SessionData | None:
    ident = getattr(g, "identity", None)
    if not ident or not ident.get("user_id") or not ident.get("role"):
        return None
    return ident


def require_session() -> SessionData:
    data = get_session()
    if data is None:
        raise SessionError("authentication required")
    return data


class SessionError(Exception):
    """Signals a 401 unauthorized due to missing/invalid credentials."""
    def __init__(self, message: str = "authentication required"):
        super().__init__(message)

__all__ = [
    "SessionData",
    "persist_identity",
    "get_session",
    "require_session",
    "SessionError",
]
