"""Request read/maintenance service (submission lives in admission_service)."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from .api_types import (
    COMPLETED_STATUSES,
    REQUEST_STATUSES,
    WRITABLE_STATUSES,
    DailyCount,
    RequestPayload,
    RequestTypeId,
    StatsSummary,
)
from .app_authz import AuthzError
from .app_sessions import SessionData
from .audit_events import record_audit_event
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Request, RequestType, ServiceOption, SubSector, User, utcnow
from .pagination import RangeRequest, range_bounds
from .periods import as_utc, daily_window, parse_iso_date, utc_midnight
from .roles import is_admin
from .serializers import request_payload
from .storage import UploadStore
from .validation import Fields


@dataclass(frozen=True)
class RequestFilters:
    request_type_id: int | None = None
    service_option_id: int | None = None
    status: str | None = None
    date_from: str | None = None
    date_to: str | None = None


def _opt_int(args: Mapping[str, Any], key: str, errors: list[dict[str, str]]) -> int | None:
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        errors.append({"field": key, "message": f"{key} must be an integer"})
        return None


def parse_filters(args: Mapping[str, Any]) -> RequestFilters:
    errors: list[dict[str, str]] = []
    type_id = _opt_int(args, "requestTypeId", errors)
    option_id = _opt_int(args, "requestTypeOptionId", errors)
    status = args.get("status") or None
    if status is not None and status not in REQUEST_STATUSES:
        errors.append({"field": "status", "message": f"status must be one of {', '.join(REQUEST_STATUSES)}"})
    date_from = args.get("dateFrom") or None
    date_to = args.get("dateTo") or None
    for key, value in (("dateFrom", date_from), ("dateTo", date_to)):
        if value is not None and parse_iso_date(value) is None:
            errors.append({"field": key, "message": f"{key} must be YYYY-MM-DD"})
    if errors:
        raise ValidationError(errors)
    return RequestFilters(type_id, option_id, status, date_from, date_to)


def _apply_filters(stmt: Select, f: RequestFilters) -> Select:
    if f.request_type_id is not None:
        stmt = stmt.where(Request.request_type_id == f.request_type_id)
    if f.service_option_id is not None:
        stmt = stmt.where(Request.service_option_id == f.service_option_id)
    if f.status:
        if f.status == "completed":
            stmt = stmt.where(Request.status.in_(COMPLETED_STATUSES))
        else:
            stmt = stmt.where(Request.status == f.status)
    if f.date_from:
        stmt = stmt.where(Request.created_at >= utc_midnight(parse_iso_date(f.date_from)))  # type: ignore[arg-type]
    if f.date_to:
        end = utc_midnight(parse_iso_date(f.date_to)) + timedelta(days=1)  # type: ignore[arg-type]
        stmt = stmt.where(Request.created_at < end)
    return stmt


def _by_id(db: Session, model: Any, ids: Iterable[int | None]) -> dict[int, Any]:
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    return {row.id: row for row in db.execute(select(model).where(model.id.in_(wanted))).scalars()}


def hydrate(db: Session, rows: list[Request], *, with_user: bool = False) -> list[RequestPayload]:
    types = _by_id(db, RequestType, (r.request_type_id for r in rows))
    options = _by_id(db, ServiceOption, (r.service_option_id for r in rows))
    users = _by_id(db, User, (r.user_id for r in rows)) if with_user else {}
    return [
        request_payload(
            r,
            request_type=types.get(r.request_type_id),
            option=options.get(r.service_option_id) if r.service_option_id else None,
            user=users.get(r.user_id),
        )
        for r in rows
    ]


def list_my(db: Session, *, user_id: int) -> list[RequestPayload]:
    rows = list(
        db.execute(
            select(Request).where(Request.user_id == user_id).order_by(Request.created_at.desc(), Request.id.desc())
        ).scalars()
    )
    return hydrate(db, rows)


def list_all(db: Session, *, filters: RequestFilters, rr: RangeRequest) -> tuple[list[RequestPayload], int]:
    base = _apply_filters(select(Request), filters)
    total = db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
    offset, limit = range_bounds(rr)
    stmt = base.order_by(Request.created_at.desc(), Request.id.desc()).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = list(db.execute(stmt).scalars())
    return hydrate(db, rows, with_user=True), int(total)


def _load(db: Session, request_id: int) -> Request:
    r = db.get(Request, request_id)
    if r is None:
        raise NotFoundError("Request not found")
    return r


def get_request(db: Session, *, request_id: int, sess: SessionData) -> RequestPayload:
    r = _load(db, request_id)
    if not is_admin(sess["role"]) and r.user_id != sess["user_id"]:
        raise AuthzError("Cannot view this request")
    return hydrate(db, [r], with_user=True)[0]


def _check_status(value: Any) -> str:
    if value not in WRITABLE_STATUSES:
        raise ValidationError(
            [{"field": "status", "message": f"status must be one of {', '.join(WRITABLE_STATUSES)}"}]
        )
    return value


def update_status(db: Session, *, request_id: int, status: Any, actor_user_id: int) -> RequestPayload:
    new_status = _check_status(status)
    r = _load(db, request_id)
    old = r.status
    r.status = new_status
    r.updated_at = utcnow()
    db.commit()
    record_audit_event("request_status_changed", actor_user_id, request_id=r.id, old=old, new=new_status)
    return hydrate(db, [r])[0]


def update_request(db: Session, *, request_id: int, payload: Mapping[str, Any], actor_user_id: int) -> RequestPayload:
    f = Fields(payload)
    type_id = f.integer("requestTypeId", required=False)
    option_id = f.integer("requestTypeOptionId", required=False)
    sector_id = f.integer("subSectorId", required=False)
    house = f.string("houseNo", required=False, max_len=50)
    street = f.string("streetNo", required=False, max_len=50)
    description = f.string("description", required=False, min_len=0)
    f.raise_if_errors()
    status = _check_status(payload["status"]) if payload.get("status") is not None else None

    r = _load(db, request_id)
    type_changed = False
    if type_id is not None:
        if db.get(RequestType, type_id) is None:
            raise ConflictError("Invalid request type")
        type_changed = type_id != r.request_type_id
        r.request_type_id = type_id
    if "requestTypeOptionId" in payload:
        if option_id is None:
            r.service_option_id = None
        else:
            option = db.execute(
                select(ServiceOption).where(
                    ServiceOption.id == option_id, ServiceOption.request_type_id == r.request_type_id
                )
            ).scalar_one_or_none()
            if option is None:
                raise ConflictError("Invalid service option")
            r.service_option_id = option.id
    elif type_changed and r.service_option_id is not None:
        current = db.get(ServiceOption, r.service_option_id)
        if current is not None and current.request_type_id != r.request_type_id:
            raise ConflictError("Service option does not belong to the new request type")
    if sector_id is not None:
        if db.get(SubSector, sector_id) is None:
            raise ConflictError("Invalid sub sector")
        r.sub_sector_id = sector_id
    if house is not None:
        r.house_no = house
    if street is not None:
        r.street_no = street
    if description is not None:
        r.description = description
    if status is not None:
        r.status = status
    r.updated_at = utcnow()
    db.commit()
    record_audit_event("request_updated", actor_user_id, request_id=r.id, fields=sorted(payload.keys()))
    return hydrate(db, [r])[0]


def delete_request(db: Session, *, request_id: int, sess: SessionData, store: UploadStore | None = None) -> None:
    r = _load(db, request_id)
    if not is_admin(sess["role"]) and r.user_id != sess["user_id"]:
        raise AuthzError("Cannot delete this request")
    image_url = r.issue_image_url
    db.delete(r)
    db.commit()
    if store is not None and image_url:
        store.delete(image_url)
    record_audit_event("request_deleted", sess["user_id"], request_id=request_id)


def stats_summary(db: Session) -> StatsSummary:
    rows = db.execute(
        select(Request.request_type_id, func.count(Request.id)).group_by(Request.request_type_id)
    ).all()
    types = _by_id(db, RequestType, (tid for tid, _ in rows))
    by_type = []
    for type_id, count in rows:
        t = types.get(type_id)
        by_type.append(
            {
                "requestTypeId": RequestTypeId(type_id),
                "name": t.name if t else "Unknown",
                "slug": t.slug if t else "",
                "count": int(count),
            }
        )
    return {"total": sum(b["count"] for b in by_type), "byType": by_type}  # type: ignore[typeddict-item]


def daily_stats(db: Session, *, days: int | None = None, now: datetime | None = None) -> list[DailyCount]:
    dates = daily_window(days, now=now)
    counts = {d: 0 for d in dates}
    start = utc_midnight(dates[0])
    for (created,) in db.execute(select(Request.created_at).where(Request.created_at >= start)):
        key = as_utc(created).date()
        if key in counts:
            counts[key] += 1
    return [{"date": d.isoformat(), "count": c} for d, c in counts.items()]


__all__ = [
    "RequestFilters",
    "parse_filters",
    "hydrate",
    "list_my",
    "list_all",
    "get_request",
    "update_status",
    "update_request",
    "delete_request",
    "stats_summary",
    "daily_stats",
]
