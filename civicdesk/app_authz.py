"""Authorization helpers.

require_roles(*roles) raises SessionError (401) when no identity is attached
to the request and AuthzError (403) when the caller's role is not allowed.
require_approved additionally blocks non-admin accounts whose registration
has not been approved.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from .app_sessions import SessionData, SessionError, require_session
from .db import get_session as get_db_session
from .models import User
from .roles import Role, is_admin, to_role

P = ParamSpec("P")
R = TypeVar("R")


class AuthzError(Exception):
    """Signals an authorization (403) failure to be caught by centralized handlers."""

    required: Role | None

    def __init__(self, message: str = "forbidden", required: Role | None = None):
        super().__init__(message)
        self.required = required


def ensure_owner_or_admin(owner_user_id: int, sess: SessionData, message: str = "forbidden") -> None:
    if is_admin(sess["role"]):
        return
    if int(owner_user_id) != int(sess["user_id"]):
        raise AuthzError(message)


def require_roles(*roles: Role) -> Callable[[Callable[P, R]], Callable[P, R]]:
    allowed = [to_role(r) for r in roles]

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            sess = require_session()
            if allowed and to_role(sess["role"]) not in allowed:
                raise AuthzError("forbidden", required=allowed[0])
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def require_approved(fn: Callable[P, R]) -> Callable[P, R]:
    @wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        sess = require_session()
        if is_admin(sess["role"]):
            return fn(*args, **kwargs)
        db = get_db_session()
        try:
            user = db.get(User, sess["user_id"])
            if user is None:
                raise SessionError("unknown user")
            if user.account_status == "deactivated":
                raise AuthzError("Your account is deactivated")
            if user.approval_status != "approved":
                raise AuthzError("Your registration is not yet approved")
        finally:
            db.close()
        return fn(*args, **kwargs)

    return wrapper


__all__ = [
    "require_roles",
    "require_approved",
    "ensure_owner_or_admin",
    "AuthzError",
]
