"""
Reporting Service – Admin Dashboard

Builds the dashboard report for a UTC period (today, ISO week, calendar
month or a custom inclusive date span). Rows are fetched once per entity and
aggregated in Python so the same code runs on SQLite and PostgreSQL.

Completed and legacy ``done`` statuses count as completed everywhere; pending
and in-progress requests make up the backlog.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .api_types import OPEN_STATUSES, is_completed
from .models import Request, RequestType, ServiceOption, SubSector, User
from .periods import ReportRange, as_utc, resolve_report_range

TANKER_OPTION_SLUG = "order_water_tanker"
AGING_BUCKETS = ("0-1 day", "2-3 days", "4-7 days", "8+ days")
TOP_TYPES = 8
TOP_OPTIONS = 8
TOP_HOUSES = 10
UNKNOWN_SECTOR = "N/A"


@dataclass
class UserRow:
    sub_sector_id: int
    sub_sector_name: str
    house_no: str
    street_no: str
    full_name: str
    mobile_no: str


@dataclass
class RequestRow:
    id: int
    request_number: str | None
    created_at: datetime
    updated_at: datetime
    status: str
    house_no: str
    street_no: str
    sub_sector_id: int
    sub_sector_name: str
    type_name: str
    type_slug: str
    option_label: str | None
    option_slug: str | None
    user_name: str
    mobile_no: str


def pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0


def growth(current: int, previous: int) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100, 1)
    return 100 if current > 0 else 0


def aging_bucket(age_days: float) -> str:
    if age_days <= 1:
        return AGING_BUCKETS[0]
    if age_days <= 3:
        return AGING_BUCKETS[1]
    if age_days <= 7:
        return AGING_BUCKETS[2]
    return AGING_BUCKETS[3]


def _mobile(code: str | None, number: str | None) -> str:
    return f"{code or ''} {number or ''}".strip()


class ReportService:
    """Dashboard aggregation over one Session."""

    def __init__(self, db: Session, *, now: datetime | None = None):
        self.db = db
        self.now = as_utc(now or datetime.now(UTC))

    # ---- row loading ----
    def _users(self, start: datetime, end: datetime) -> list[UserRow]:
        stmt = (
            select(User, SubSector.name)
            .outerjoin(SubSector, SubSector.id == User.sub_sector_id)
            .where(User.created_at >= start, User.created_at < end)
        )
        return [
            UserRow(
                sub_sector_id=u.sub_sector_id or 0,
                sub_sector_name=name or UNKNOWN_SECTOR,
                house_no=u.house_no,
                street_no=(u.street_no or "").strip(),
                full_name=u.full_name,
                mobile_no=_mobile(u.phone_country_code, u.phone_number),
            )
            for u, name in self.db.execute(stmt).all()
        ]

    def _requests(self, start: datetime, end: datetime) -> list[RequestRow]:
        stmt = (
            select(
                Request,
                SubSector.name,
                RequestType.name,
                RequestType.slug,
                ServiceOption.label,
                ServiceOption.slug,
                User.full_name,
                User.phone_country_code,
                User.phone_number,
            )
            .outerjoin(SubSector, SubSector.id == Request.sub_sector_id)
            .outerjoin(RequestType, RequestType.id == Request.request_type_id)
            .outerjoin(ServiceOption, ServiceOption.id == Request.service_option_id)
            .outerjoin(User, User.id == Request.user_id)
            .where(Request.created_at >= start, Request.created_at < end)
        )
        out = []
        for r, ss_name, t_name, t_slug, o_label, o_slug, u_name, u_code, u_number in self.db.execute(stmt).all():
            out.append(
                RequestRow(
                    id=r.id,
                    request_number=r.request_number,
                    created_at=as_utc(r.created_at),
                    updated_at=as_utc(r.updated_at or r.created_at),
                    status=r.status,
                    house_no=r.house_no,
                    street_no=r.street_no,
                    sub_sector_id=r.sub_sector_id or 0,
                    sub_sector_name=ss_name or UNKNOWN_SECTOR,
                    type_name=t_name or "Unknown",
                    type_slug=t_slug or "",
                    option_label=o_label,
                    option_slug=o_slug,
                    user_name=u_name or UNKNOWN_SECTOR,
                    mobile_no=_mobile(u_code, u_number),
                )
            )
        return out

    def _count(self, model: Any, start: datetime, end: datetime) -> int:
        return int(
            self.db.execute(
                select(func.count(model.id)).where(model.created_at >= start, model.created_at < end)
            ).scalar_one()
        )

    # ---- sections ----
    @staticmethod
    def users_by_house(users: list[UserRow]) -> list[dict[str, Any]]:
        per_house = Counter((u.sub_sector_id, u.house_no) for u in users)
        ordered = sorted(users, key=lambda u: (u.sub_sector_name, u.house_no, u.full_name))
        return [
            {
                "subSectorId": u.sub_sector_id,
                "subSectorName": u.sub_sector_name,
                "houseNo": u.house_no,
                "streetNo": u.street_no,
                "userName": u.full_name,
                "cnicNo": None,
                "mobileNo": u.mobile_no,
                "usersInHouse": per_house[(u.sub_sector_id, u.house_no)],
            }
            for u in ordered
        ]

    @staticmethod
    def requests_per_house_date_status(rows: list[RequestRow]) -> list[dict[str, Any]]:
        groups = Counter(
            (r.sub_sector_id, r.sub_sector_name, r.house_no, r.street_no, r.created_at.date().isoformat(), r.status)
            for r in rows
        )
        # date descending, then sector name and house ascending
        keys = sorted(groups, key=lambda k: (k[1], k[2]))
        keys.sort(key=lambda k: k[4], reverse=True)
        return [
            {
                "subSectorId": k[0],
                "subSectorName": k[1],
                "houseNo": k[2],
                "streetNo": k[3],
                "date": k[4],
                "status": k[5],
                "requestCount": groups[k],
            }
            for k in keys
        ]

    @staticmethod
    def _by_sector(items: list[Any], count_key: str) -> list[dict[str, Any]]:
        counts: Counter[tuple[int, str]] = Counter((i.sub_sector_id, i.sub_sector_name) for i in items)
        return [
            {"subSectorId": sid, "subSectorName": name, count_key: n}
            for (sid, name), n in sorted(counts.items(), key=lambda kv: kv[0][1])
        ]

    def tanker_summary(self, rows: list[RequestRow]) -> dict[str, Any]:
        tanker = [r for r in rows if (r.option_slug or "").lower() == TANKER_OPTION_SLUG]
        requested = len(tanker)
        delivered = sum(1 for r in tanker if is_completed(r.status))
        cancelled = sum(1 for r in tanker if r.status == "cancelled")
        per_sector: dict[tuple[int, str], list[int]] = {}
        for r in tanker:
            bucket = per_sector.setdefault((r.sub_sector_id, r.sub_sector_name), [0, 0])
            bucket[0] += 1
            if is_completed(r.status):
                bucket[1] += 1
        return {
            "requested": requested,
            "delivered": delivered,
            "pending": max(0, requested - delivered - cancelled),
            "cancelled": cancelled,
            "bySubSector": [
                {
                    "subSectorId": sid,
                    "subSectorName": name,
                    "requested": req,
                    "delivered": dlv,
                    "pending": max(0, req - dlv),
                }
                for (sid, name), (req, dlv) in sorted(per_sector.items(), key=lambda kv: kv[0][1])
            ],
            "requests": [
                {
                    "requestId": r.id,
                    "requestNumber": r.request_number,
                    "createdAt": r.created_at.isoformat(),
                    "subSectorName": r.sub_sector_name,
                    "houseNo": r.house_no,
                    "streetNo": r.street_no,
                    "serviceOptionLabel": r.option_label or "Water Tanker",
                    "status": r.status,
                    "userName": r.user_name,
                    "mobileNo": r.mobile_no,
                }
                for r in sorted(tanker, key=lambda r: r.created_at, reverse=True)
            ],
        }

    def analytics(self, rows: list[RequestRow], users_by_sector: dict[int, int]) -> dict[str, Any]:
        by_date: dict[str, dict[str, int]] = {}
        by_type: dict[tuple[str, str], int] = {}
        by_option: dict[str, int] = {}
        by_house: dict[tuple[str, str, str], list[int]] = {}
        perf: dict[int, dict[str, Any]] = {}
        mix: dict[int, dict[str, Any]] = {}
        hourly: Counter[int] = Counter()
        aging = dict.fromkeys(AGING_BUCKETS, 0)

        for r in rows:
            done = is_completed(r.status)
            open_ = r.status in OPEN_STATUSES
            day = by_date.setdefault(r.created_at.date().isoformat(), {"total": 0, "completed": 0, "pending": 0})
            day["total"] += 1
            day["completed"] += done
            day["pending"] += open_

            tkey = (r.type_slug, r.type_name)
            by_type[tkey] = by_type.get(tkey, 0) + 1
            label = r.option_label or "General"
            by_option[label] = by_option.get(label, 0) + 1

            house = by_house.setdefault((r.sub_sector_name, r.house_no, r.street_no), [0, 0])
            house[0] += 1
            house[1] += open_

            p = perf.setdefault(
                r.sub_sector_id,
                {"subSectorId": r.sub_sector_id, "subSectorName": r.sub_sector_name, "requestsCount": 0, "completedCount": 0},
            )
            p["requestsCount"] += 1
            p["completedCount"] += done

            m = mix.setdefault(
                r.sub_sector_id,
                {
                    "subSectorId": r.sub_sector_id,
                    "subSectorName": r.sub_sector_name,
                    "totalRequests": 0,
                    "pendingCount": 0,
                    "inProgressCount": 0,
                    "completedCount": 0,
                    "cancelledCount": 0,
                },
            )
            m["totalRequests"] += 1
            m["pendingCount"] += r.status == "pending"
            m["inProgressCount"] += r.status == "in_progress"
            m["completedCount"] += done
            m["cancelledCount"] += r.status == "cancelled"

            hourly[r.created_at.hour] += 1
            if open_:
                age_days = (self.now - r.created_at).total_seconds() / 86400
                aging[aging_bucket(age_days)] += 1

        houses = sorted(by_house.items(), key=lambda kv: -kv[1][0])
        return {
            "dailyTrend": [{"date": d, **v} for d, v in sorted(by_date.items())],
            "topRequestTypes": [
                {"requestTypeName": name, "requestTypeSlug": slug, "requestsCount": n}
                for (slug, name), n in sorted(by_type.items(), key=lambda kv: -kv[1])[:TOP_TYPES]
            ],
            "topServiceOptions": [
                {"serviceOptionLabel": label, "requestsCount": n}
                for label, n in sorted(by_option.items(), key=lambda kv: -kv[1])[:TOP_OPTIONS]
            ],
            "topHouses": [
                {"subSectorName": s, "houseNo": h, "streetNo": st, "totalRequests": t, "pendingRequests": pend}
                for (s, h, st), (t, pend) in houses[:TOP_HOUSES]
            ],
            "subSectorPerformance": sorted(
                (
                    {
                        "subSectorId": p["subSectorId"],
                        "subSectorName": p["subSectorName"],
                        "usersCount": users_by_sector.get(p["subSectorId"], 0),
                        "requestsCount": p["requestsCount"],
                        "completedCount": p["completedCount"],
                        "completionRate": pct(p["completedCount"], p["requestsCount"]),
                    }
                    for p in perf.values()
                ),
                key=lambda p: -p["requestsCount"],
            ),
            "statusMixBySubSector": sorted(
                ({**m, "completionRate": pct(m["completedCount"], m["totalRequests"])} for m in mix.values()),
                key=lambda m: -m["totalRequests"],
            ),
            "agingBuckets": [{"bucket": b, "count": n} for b, n in aging.items()],
            "repeatDemandHouses": [
                {"subSectorName": s, "houseNo": h, "streetNo": st, "totalRequests": t}
                for (s, h, st), (t, _) in houses
                if t >= 2
            ][:TOP_HOUSES],
            "hourlyDemand": [{"hour": h, "count": hourly.get(h, 0)} for h in range(24)],
        }

    # ---- entry point ----
    def dashboard(self, period: str | None = None, date_from: str | None = None, date_to: str | None = None) -> dict[str, Any]:
        rng: ReportRange = resolve_report_range(period, date_from, date_to, now=self.now)
        users = self._users(rng.start, rng.end)
        rows = self._requests(rng.start, rng.end)

        users_by_sector = self._by_sector(users, "usersCount")
        requests_by_sector = self._by_sector(rows, "requestsCount")
        status_counts = Counter(r.status for r in rows)
        total_requests = len(rows)
        completed = sum(1 for r in rows if is_completed(r.status))
        cancelled = status_counts.get("cancelled", 0)
        backlog = sum(1 for r in rows if r.status in OPEN_STATUSES)
        resolution_hours = [
            (r.updated_at - r.created_at).total_seconds() / 3600
            for r in rows
            if is_completed(r.status) and r.updated_at > r.created_at
        ]

        prev_start, prev_end = rng.previous()
        prev_requests = self._count(Request, prev_start, prev_end)
        prev_users = self._count(User, prev_start, prev_end)

        top_by_requests = max(requests_by_sector, key=lambda s: s["requestsCount"], default=None)
        top_by_users = max(users_by_sector, key=lambda s: s["usersCount"], default=None)

        return {
            "filter": {"period": rng.period, "from": rng.from_date, "to": rng.to_date},
            "usersBySubSectorHouse": self.users_by_house(users),
            "requestsPerHouseDateStatus": self.requests_per_house_date_status(rows),
            "usersSummary": {"totalUsers": len(users), "bySubSector": users_by_sector},
            "requestsSummary": {
                "totalRequests": total_requests,
                "bySubSector": requests_by_sector,
                "byStatus": [{"status": s, "requestsCount": n} for s, n in sorted(status_counts.items())],
            },
            "tankerSummary": self.tanker_summary(rows),
            "insights": {
                "completionRate": pct(completed, total_requests),
                "cancellationRate": pct(cancelled, total_requests),
                "backlogCount": backlog,
                "avgResolutionHours": round(sum(resolution_hours) / len(resolution_hours), 1) if resolution_hours else 0,
                "requestsGrowthPercent": growth(total_requests, prev_requests),
                "usersGrowthPercent": growth(len(users), prev_users),
                "topSubSectorByRequests": top_by_requests,
                "topSubSectorByUsers": top_by_users,
            },
            "analytics": self.analytics(rows, {s["subSectorId"]: s["usersCount"] for s in users_by_sector}),
        }


__all__ = ["ReportService", "TANKER_OPTION_SLUG", "AGING_BUCKETS", "pct", "growth", "aging_bucket"]
