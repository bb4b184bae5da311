"""Request type catalogue: CRUD, restriction validation and icon upload."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .api_types import RequestTypePayload
from .errors import ConflictError, DomainError, NotFoundError
from .models import Request, RequestType, ServiceOption
from .periods import DUPLICATE_PERIODS
from .serializers import request_type_payload
from .storage import ICON_MIMES, MAX_ICON_BYTES, REQUEST_TYPE_ICONS, UploadStore
from .time_window import format_days, parse_hhmm
from .validation import Fields


def list_request_types(db: Session) -> list[RequestTypePayload]:
    rows = db.execute(select(RequestType).order_by(RequestType.display_order, RequestType.id)).scalars()
    return [request_type_payload(t) for t in rows]


def _load(db: Session, type_id: int) -> RequestType:
    t = db.get(RequestType, type_id)
    if t is None:
        raise NotFoundError("Request type not found")
    return t


def get_request_type(db: Session, *, type_id: int) -> RequestTypePayload:
    return request_type_payload(_load(db, type_id))


def _slug_taken(db: Session, slug: str, exclude_id: int | None = None) -> bool:
    stmt = select(RequestType.id).where(RequestType.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(RequestType.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def _restriction_time(f: Fields, key: str) -> tuple[bool, str | None]:
    """(present, normalized) where blank clears the restriction."""
    if not f.present(key):
        return False, None
    raw = f.body.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return True, None
    if not isinstance(raw, str):
        f.error(key, f"{key} must be HH:mm")
        return True, None
    try:
        h, m = parse_hhmm(raw)
    except ValueError:
        f.error(key, f"{key} must be HH:mm")
        return True, None
    return True, f"{h:02d}:{m:02d}"


def _restriction_days(f: Fields) -> tuple[bool, str | None]:
    key = "restrictionDays"
    if not f.present(key):
        return False, None
    raw = f.body.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return True, None
    tokens = raw.split(",") if isinstance(raw, str) else raw if isinstance(raw, list) else None
    if tokens is None:
        f.error(key, "restrictionDays must be a comma separated list of 0..6")
        return True, None
    days = []
    for t in tokens:
        text = str(t).strip()
        if not text.isdigit() or not 0 <= int(text) <= 6:
            f.error(key, "restrictionDays must be a comma separated list of 0..6 (0=Sunday)")
            return True, None
        days.append(int(text))
    return True, format_days(days)


def _apply(t: RequestType, f: Fields, *, creating: bool) -> None:
    name = f.string("name", required=creating, max_len=100)
    slug = f.string("slug", required=creating, max_len=50)
    order = f.integer("displayOrder", required=False)
    has_start, start = _restriction_time(f, "restrictionStartTime")
    has_end, end = _restriction_time(f, "restrictionEndTime")
    has_days, days = _restriction_days(f)
    period = f.choice("duplicateRestrictionPeriod", DUPLICATE_PERIODS, required=False)
    under_construction = f.boolean("underConstruction")
    f.raise_if_errors()
    if name is not None:
        t.name = name
    if slug is not None:
        t.slug = slug
    if order is not None:
        t.display_order = order
    if f.present("iconUrl"):
        t.icon_url = f.body.get("iconUrl") or None
    if has_start:
        t.restriction_start_time = start
    if has_end:
        t.restriction_end_time = end
    if has_days:
        t.restriction_days = days
    if period is not None:
        t.duplicate_restriction_period = period
    if under_construction is not None:
        t.under_construction = under_construction
    if f.present("underConstructionMessage"):
        t.under_construction_message = f.body.get("underConstructionMessage") or None


def create_request_type(db: Session, *, payload: Mapping[str, Any]) -> RequestTypePayload:
    t = RequestType(display_order=0, duplicate_restriction_period="none", under_construction=False)
    _apply(t, Fields(payload), creating=True)
    if _slug_taken(db, t.slug):
        raise ConflictError("Slug already exists")
    db.add(t)
    db.commit()
    return request_type_payload(t)


def update_request_type(db: Session, *, type_id: int, payload: Mapping[str, Any]) -> RequestTypePayload:
    t = _load(db, type_id)
    _apply(t, Fields(payload), creating=False)
    if _slug_taken(db, t.slug, exclude_id=t.id):
        db.rollback()
        raise ConflictError("Slug already exists")
    db.commit()
    return request_type_payload(t)


def delete_request_type(db: Session, *, type_id: int) -> None:
    t = _load(db, type_id)
    in_use = db.execute(select(func.count(Request.id)).where(Request.request_type_id == t.id)).scalar_one()
    if in_use:
        raise ConflictError("Cannot delete: request type has requests")
    db.execute(delete(ServiceOption).where(ServiceOption.request_type_id == t.id))
    db.delete(t)
    db.commit()


def store_icon(store: UploadStore, *, data: bytes, mimetype: str) -> dict[str, str]:
    if len(data) > MAX_ICON_BYTES:
        raise DomainError(413, "file_too_large", "Icon file too large (max 1024KB)")
    ext = ICON_MIMES.get((mimetype or "").lower())
    if ext is None:
        raise DomainError(415, "unsupported_file_type", "Allowed: SVG, PNG, JPEG, WebP, GIF")
    return {"url": store.save_bytes(REQUEST_TYPE_ICONS, data, ext)}


__all__ = [
    "list_request_types",
    "get_request_type",
    "create_request_type",
    "update_request_type",
    "delete_request_type",
    "store_icon",
]
