from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .api_types import SubSectorPayload
from .errors import ConflictError, NotFoundError
from .models import Request, SubSector, User
from .serializers import sub_sector_payload
from .validation import Fields


def list_sub_sectors(db: Session) -> list[SubSectorPayload]:
    rows = db.execute(select(SubSector).order_by(SubSector.display_order, SubSector.id)).scalars()
    return [sub_sector_payload(s) for s in rows]


def _load(db: Session, sub_sector_id: int) -> SubSector:
    s = db.get(SubSector, sub_sector_id)
    if s is None:
        raise NotFoundError("Sub-sector not found")
    return s


def get_sub_sector(db: Session, *, sub_sector_id: int) -> SubSectorPayload:
    return sub_sector_payload(_load(db, sub_sector_id))


def _code_taken(db: Session, code: str, exclude_id: int | None = None) -> bool:
    stmt = select(SubSector.id).where(SubSector.code == code)
    if exclude_id is not None:
        stmt = stmt.where(SubSector.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def create_sub_sector(db: Session, *, payload: Mapping[str, Any]) -> SubSectorPayload:
    f = Fields(payload)
    name = f.string("name", max_len=50)
    code = f.string("code", max_len=20)
    order = f.integer("displayOrder", required=False)
    f.raise_if_errors()
    if _code_taken(db, code):  # type: ignore[arg-type]
        raise ConflictError("Code already exists")
    s = SubSector(name=name, code=code, display_order=order or 0)
    db.add(s)
    db.commit()
    return sub_sector_payload(s)


def update_sub_sector(db: Session, *, sub_sector_id: int, payload: Mapping[str, Any]) -> SubSectorPayload:
    f = Fields(payload)
    name = f.string("name", required=False, max_len=50)
    code = f.string("code", required=False, max_len=20)
    order = f.integer("displayOrder", required=False)
    f.raise_if_errors()
    s = _load(db, sub_sector_id)
    if code is not None and _code_taken(db, code, exclude_id=s.id):
        raise ConflictError("Code already exists")
    if name is not None:
        s.name = name
    if code is not None:
        s.code = code
    if order is not None:
        s.display_order = order
    db.commit()
    return sub_sector_payload(s)


def delete_sub_sector(db: Session, *, sub_sector_id: int) -> None:
    s = _load(db, sub_sector_id)
    users = db.execute(select(func.count(User.id)).where(User.sub_sector_id == s.id)).scalar_one()
    requests = db.execute(select(func.count(Request.id)).where(Request.sub_sector_id == s.id)).scalar_one()
    if users or requests:
        raise ConflictError("Cannot delete: sub-sector is in use by users or requests")
    db.delete(s)
    db.commit()


__all__ = [
    "list_sub_sectors",
    "get_sub_sector",
    "create_sub_sector",
    "update_sub_sector",
    "delete_sub_sector",
]
