"""Role vocabulary.

Role: the two account roles stored on users.
ApprovalStatus / AccountStatus: registration and account lifecycle labels.
"""

from __future__ import annotations

from typing import Literal, cast

Role = Literal["user", "admin"]
ApprovalStatus = Literal["pending", "approved", "rejected"]
AccountStatus = Literal["active", "deactivated"]

ROLES: tuple[Role, ...] = ("user", "admin")
APPROVAL_STATUSES: tuple[ApprovalStatus, ...] = ("pending", "approved", "rejected")
ACCOUNT_STATUSES: tuple[AccountStatus, ...] = ("active", "deactivated")


def to_role(value: str | None) -> Role | None:
    v = (value or "").strip().lower()
    if v in ROLES:
        return cast(Role, v)
    return None


def is_admin(role: str | None) -> bool:
    return to_role(role) == "admin"


__all__ = [
    "Role",
    "ApprovalStatus",
    "AccountStatus",
    "ROLES",
    "APPROVAL_STATUSES",
    "ACCOUNT_STATUSES",
    "to_role",
    "is_admin",
]
