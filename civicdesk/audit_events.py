"""Lightweight audit event recorder for security-sensitive actions.

Events live in a bounded process-local buffer; the oldest slice is dropped
when it fills up.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

_AUDIT_BUFFER: list[dict[str, Any]] = []
_MAX_BUFFER = 500


@dataclass
class AuditEvent:
    ts: int
    action: str
    actor_user_id: int | None = None
    meta: dict[str, Any] | None = None


def record_audit_event(action: str, actor_user_id: int | None = None, **meta: Any) -> AuditEvent:
    ev = AuditEvent(int(time.time()), action, actor_user_id, meta or None)
    if len(_AUDIT_BUFFER) >= _MAX_BUFFER:
        del _AUDIT_BUFFER[0: max(50, _MAX_BUFFER // 10)]  # drop oldest slice
    _AUDIT_BUFFER.append(asdict(ev))
    return ev


def list_audit_events(action: str | None = None) -> list[dict[str, Any]]:
    if action is None:
        return list(_AUDIT_BUFFER)
    return [e for e in _AUDIT_BUFFER if e["action"] == action]


def clear_audit_events() -> None:
    _AUDIT_BUFFER.clear()
