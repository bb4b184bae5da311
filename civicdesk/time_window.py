"""Submission window evaluation for request types.

A request type may restrict submissions to a set of weekdays and/or a daily
time span. Days and times are configured in the admin timezone; the span is
resolved to UTC instants on the admin-local date of the submission so that
DST transitions are honoured.

``evaluate_window`` never raises for a rejection: it returns a tagged
``WindowDecision`` and leaves it to the caller to turn a disallowed decision
into an error.
"""
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Literal
from zoneinfo import ZoneInfo

WindowState = Literal["no_restriction", "allowed", "day_disallowed", "time_disallowed"]

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> tuple[int, int]:
    m = _HHMM.match(value.strip())
    if not m:
        raise ValueError(f"invalid time '{value}', expected HH:mm")
    return int(m.group(1)), int(m.group(2))


def parse_days(value: str | Iterable[int] | None) -> frozenset[int] | None:
    """Parse a weekday set (0=Sun..6=Sat) from CSV or an iterable.

    Returns None when nothing is configured. Tokens outside 0..6 are dropped,
    so a value made only of junk yields an empty set that allows no day.
    """
    if value is None:
        return None
    if isinstance(value, str):
        tokens = [t.strip() for t in value.split(",") if t.strip()]
        if not tokens:
            return None
        out = set()
        for t in tokens:
            if t.isdigit() and 0 <= int(t) <= 6:
                out.add(int(t))
        return frozenset(out)
    days = frozenset(int(d) for d in value if 0 <= int(d) <= 6)
    return days or None


def format_days(days: Iterable[int] | None) -> str | None:
    if days is None:
        return None
    ordered = sorted(set(days))
    return ",".join(str(d) for d in ordered) if ordered else None


def weekday_index(moment: datetime) -> int:
    """0=Sun .. 6=Sat for an already localised datetime."""
    return moment.isoweekday() % 7


def _wall(instant: datetime, tz: ZoneInfo) -> datetime:
    return instant.astimezone(tz).replace(tzinfo=None)


def local_to_utc(day: date, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    """Earliest UTC instant whose wall clock in ``tz`` reaches day+hour:minute.

    Ambiguous local times (clocks going back) resolve to the first occurrence.
    Local times skipped by a forward jump resolve to the transition instant,
    found by bisecting the offset function between the two candidate offsets.
    """
    target = datetime.combine(day, time(hour, minute))
    after = target.replace(tzinfo=tz, fold=0).astimezone(UTC)
    if _wall(after, tz) == target:
        return after
    before = target.replace(tzinfo=tz, fold=1).astimezone(UTC)
    lo, hi = int(before.timestamp()), int(after.timestamp())
    if lo > hi:
        lo, hi = hi, lo
    while hi - lo > 1:
        mid = (lo + hi) // 2
        if _wall(datetime.fromtimestamp(mid, UTC), tz) >= target:
            hi = mid
        else:
            lo = mid
    return datetime.fromtimestamp(hi, UTC)


@dataclass(frozen=True)
class WindowRule:
    start: str | None = None
    end: str | None = None
    days: frozenset[int] | None = None

    @classmethod
    def from_fields(cls, start: str | None, end: str | None, days: str | Iterable[int] | None) -> WindowRule:
        return cls(
            start=(start or "").strip() or None,
            end=(end or "").strip() or None,
            days=parse_days(days),
        )

    @property
    def is_unrestricted(self) -> bool:
        return self.start is None and self.end is None and self.days is None

    def describe(self) -> str:
        parts = []
        if self.start or self.end:
            parts.append(f"{self.start or '00:00'}-{self.end or '23:59'}")
        if self.days is not None:
            parts.append("days=[" + ", ".join(DAY_NAMES[d] for d in sorted(self.days)) + "]")
        return " ".join(parts) or "unrestricted"


@dataclass(frozen=True)
class WindowDecision:
    kind: WindowState
    reason: str | None = None

    @property
    def allowed(self) -> bool:
        return self.kind in ("no_restriction", "allowed")


def evaluate_window(rule: WindowRule, now: datetime, tz: ZoneInfo | str, label: str = "Service") -> WindowDecision:
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    if rule.is_unrestricted:
        return WindowDecision("no_restriction")
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local = now.astimezone(zone)
    if rule.days is not None and weekday_index(local) not in rule.days:
        names = ", ".join(DAY_NAMES[d] for d in sorted(rule.days)) or "no day"
        return WindowDecision("day_disallowed", f"{label} request window: allowed only on {names}.")
    today = local.date()
    start_utc = local_to_utc(today, *parse_hhmm(rule.start), zone) if rule.start else None
    end_utc = local_to_utc(today, *parse_hhmm(rule.end), zone) if rule.end else None
    too_early = start_utc is not None and now < start_utc
    too_late = end_utc is not None and now > end_utc
    if too_early or too_late:
        if rule.start and rule.end:
            span = f"between {rule.start} and {rule.end}"
        elif rule.start:
            span = f"after {rule.start}"
        else:
            span = f"before {rule.end}"
        return WindowDecision("time_disallowed", f"{label} request window: allowed only {span}.")
    return WindowDecision("allowed")


__all__ = [
    "WindowState",
    "WindowRule",
    "WindowDecision",
    "DAY_NAMES",
    "parse_hhmm",
    "parse_days",
    "format_days",
    "weekday_index",
    "local_to_utc",
    "evaluate_window",
]
