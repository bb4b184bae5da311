"""Daily bulletin: at most one published file (pdf, csv or excel) per UTC date."""
from __future__ import annotations

import logging
from datetime import UTC, date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from .api_types import BulletinPayload
from .errors import DomainError, NotFoundError, ValidationError
from .models import DailyBulletin
from .periods import parse_iso_date
from .serializers import bulletin_payload
from .storage import DAILY_FILES, UploadStore
from .validation import Fields

log = logging.getLogger("civicdesk.bulletin")

MAX_BULLETIN_BYTES = 10 * 1024 * 1024

# mime -> (file type, stored extension)
BULLETIN_MIMES: dict[str, tuple[str, str]] = {
    "application/pdf": ("pdf", "pdf"),
    "text/csv": ("csv", "csv"),
    "text/plain": ("csv", "csv"),
    "application/vnd.ms-excel": ("excel", "xls"),
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ("excel", "xlsx"),
}


def parse_bulletin_date(raw: str | None) -> date:
    d = parse_iso_date((raw or "").strip()[:10])
    if d is None:
        raise ValidationError([{"field": "date", "message": "date must be YYYY-MM-DD"}])
    return d


def find_by_date(db: Session, day: date) -> BulletinPayload | None:
    b = db.execute(select(DailyBulletin).where(DailyBulletin.date == day)).scalar_one_or_none()
    return bulletin_payload(b) if b is not None else None


def find_today(db: Session, *, now: datetime | None = None) -> BulletinPayload | None:
    return find_by_date(db, (now or datetime.now(UTC)).astimezone(UTC).date())


def list_bulletins(db: Session) -> list[BulletinPayload]:
    rows = db.execute(select(DailyBulletin).order_by(DailyBulletin.date.desc())).scalars()
    return [bulletin_payload(b) for b in rows]


def upsert_bulletin(
    db: Session, *, fields: dict, data: bytes, mimetype: str, store: UploadStore
) -> BulletinPayload:
    f = Fields(fields)
    raw_date = f.string("date")
    title = f.string("title", max_len=255)
    description = f.string("description", required=False, min_len=0, max_len=2000)
    f.raise_if_errors()
    day = parse_bulletin_date(raw_date)
    if len(data) > MAX_BULLETIN_BYTES:
        raise DomainError(413, "file_too_large", "File too large (max 10MB)")
    kind = BULLETIN_MIMES.get((mimetype or "").lower())
    if kind is None:
        raise DomainError(415, "unsupported_file_type", f"File must be PDF, CSV, or Excel. Received: {mimetype}")
    file_type, ext = kind
    url = store.save_bytes(DAILY_FILES, data, ext)
    b = db.execute(select(DailyBulletin).where(DailyBulletin.date == day)).scalar_one_or_none()
    old_url = b.file_path if b is not None else None
    if b is None:
        b = DailyBulletin(date=day)
        db.add(b)
    b.title = title  # type: ignore[assignment]
    b.description = description or None  # type: ignore[assignment]
    b.file_path = url
    b.file_type = file_type
    db.commit()
    if old_url:
        store.delete(old_url)
    log.info("bulletin published date=%s type=%s replaced=%s", day, file_type, bool(old_url))
    return bulletin_payload(b)


def delete_bulletin(db: Session, *, day: date, store: UploadStore) -> None:
    b = db.execute(select(DailyBulletin).where(DailyBulletin.date == day)).scalar_one_or_none()
    if b is None:
        raise NotFoundError("Bulletin not found")
    url = b.file_path
    db.delete(b)
    db.commit()
    store.delete(url)


__all__ = [
    "parse_bulletin_date",
    "find_by_date",
    "find_today",
    "list_bulletins",
    "upsert_bulletin",
    "delete_bulletin",
    "MAX_BULLETIN_BYTES",
]
