"""Startup seeding for an empty database.

Each step only runs when its table is empty (or, for the admin, when no admin
exists), so calling ``seed_defaults`` on every boot is safe.
"""
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from .models import RequestType, SubSector, User

log = logging.getLogger("civicdesk.seed")

DEFAULT_REQUEST_TYPES: tuple[tuple[str, str], ...] = (
    ("Water", "water"),
    ("Garbage", "garbage"),
    ("Street light", "street_light"),
    ("Road repair", "road_repair"),
    ("Drainage", "drainage"),
    ("Other", "other"),
)


def seed_sub_sectors(db: Session) -> int:
    if db.execute(select(func.count(SubSector.id))).scalar_one():
        return 0
    for i, code in enumerate("ABCDEFGHIJ", start=1):
        db.add(SubSector(name=f"Sector {code}", code=code, display_order=i))
    db.flush()
    return 10


def seed_request_types(db: Session) -> int:
    if db.execute(select(func.count(RequestType.id))).scalar_one():
        return 0
    for i, (name, slug) in enumerate(DEFAULT_REQUEST_TYPES, start=1):
        db.add(RequestType(name=name, slug=slug, display_order=i, duplicate_restriction_period="none"))
    db.flush()
    return len(DEFAULT_REQUEST_TYPES)


def seed_admin(db: Session, *, email: str, password: str) -> User | None:
    if db.execute(select(User.id).where(User.role == "admin").limit(1)).first() is not None:
        return None
    sector = db.execute(select(SubSector).order_by(SubSector.display_order, SubSector.id).limit(1)).scalar_one_or_none()
    if sector is None:
        return None
    admin = User(
        email=email.strip().lower(),
        password_hash=generate_password_hash(password),
        full_name="Admin",
        phone_country_code="+1",
        phone_number="0000000000",
        house_no="-",
        street_no="-",
        sub_sector_id=sector.id,
        role="admin",
        approval_status="approved",
        account_status="active",
    )
    db.add(admin)
    db.flush()
    return admin


def seed_defaults(db: Session, *, admin_email: str, admin_password: str) -> None:
    sectors = seed_sub_sectors(db)
    types = seed_request_types(db)
    admin = seed_admin(db, email=admin_email, password=admin_password)
    db.commit()
    if sectors or types or admin:
        log.info("seeded sub_sectors=%d request_types=%d admin=%s", sectors, types, admin.email if admin else "-")


__all__ = ["seed_defaults", "seed_sub_sectors", "seed_request_types", "seed_admin", "DEFAULT_REQUEST_TYPES"]
