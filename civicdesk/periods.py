"""UTC calendar ranges used by the duplicate policy and the reports.

All ranges are half-open ``[start, end)`` pairs of aware UTC datetimes.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Literal

DuplicatePeriod = Literal["none", "day", "week", "month"]
ReportPeriod = Literal["today", "week", "month", "custom"]

DUPLICATE_PERIODS: tuple[DuplicatePeriod, ...] = ("none", "day", "week", "month")

PERIOD_LABELS = {"day": "calendar day", "week": "calendar week", "month": "calendar month"}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values (sqlite drops tzinfo) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_midnight(d: date) -> datetime:
    return datetime(d.year, d.month, d.day, tzinfo=UTC)


def normalize_duplicate_period(value: str | None) -> DuplicatePeriod:
    v = (value or "none").strip().lower()
    if v in DUPLICATE_PERIODS:
        return v  # type: ignore[return-value]
    return "none"


def _first_of_next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def duplicate_period_bounds(period: str | None, now: datetime) -> tuple[datetime, datetime] | None:
    """Current calendar period containing ``now``; None when the policy is off.

    Weeks are ISO-8601 weeks starting Monday 00:00 UTC.
    """
    p = normalize_duplicate_period(period)
    if p == "none":
        return None
    today = as_utc(now).date()
    if p == "day":
        start = utc_midnight(today)
        return start, start + timedelta(days=1)
    if p == "week":
        start = utc_midnight(today - timedelta(days=today.weekday()))
        return start, start + timedelta(days=7)
    first = today.replace(day=1)
    return utc_midnight(first), utc_midnight(_first_of_next_month(first))


def parse_iso_date(value: str | None) -> date | None:
    if not value or not _ISO_DATE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class ReportRange:
    period: ReportPeriod
    start: datetime
    end: datetime  # exclusive

    @property
    def from_date(self) -> str:
        return self.start.date().isoformat()

    @property
    def to_date(self) -> str:
        return (self.end - timedelta(days=1)).date().isoformat()

    def previous(self) -> tuple[datetime, datetime]:
        """The equal-length range immediately before this one."""
        span = self.end - self.start
        return self.start - span, self.end - span

    def contains(self, moment: datetime) -> bool:
        m = as_utc(moment)
        return self.start <= m < self.end


def resolve_report_range(
    period: str | None,
    date_from: str | None = None,
    date_to: str | None = None,
    *,
    now: datetime | None = None,
) -> ReportRange:
    """Resolve a dashboard period; unknown periods and bad custom dates fall back to month."""
    p = (period or "month").strip().lower()
    today = as_utc(now or datetime.now(UTC)).date()
    if p == "today":
        start = utc_midnight(today)
        return ReportRange("today", start, start + timedelta(days=1))
    if p == "week":
        start = utc_midnight(today - timedelta(days=today.weekday()))
        return ReportRange("week", start, start + timedelta(days=7))
    if p == "custom":
        a, b = parse_iso_date(date_from), parse_iso_date(date_to)
        if a is not None and b is not None:
            lo, hi = min(a, b), max(a, b)
            return ReportRange("custom", utc_midnight(lo), utc_midnight(hi) + timedelta(days=1))
    first = today.replace(day=1)
    return ReportRange("month", utc_midnight(first), utc_midnight(_first_of_next_month(first)))


def daily_window(days: int | None, *, now: datetime | None = None, default: int = 14) -> list[date]:
    """Consecutive UTC dates ending today; ``days`` clamped to 1..60."""
    n = default if days is None else max(1, min(60, int(days)))
    today = as_utc(now or datetime.now(UTC)).date()
    first = today - timedelta(days=n - 1)
    return [first + timedelta(days=i) for i in range(n)]


__all__ = [
    "DuplicatePeriod",
    "ReportPeriod",
    "DUPLICATE_PERIODS",
    "PERIOD_LABELS",
    "as_utc",
    "utc_midnight",
    "normalize_duplicate_period",
    "duplicate_period_bounds",
    "parse_iso_date",
    "ReportRange",
    "resolve_report_range",
    "daily_window",
]
