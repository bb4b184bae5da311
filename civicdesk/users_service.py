"""Accounts: registration, profile maintenance and admin user management.

Passwords are stored as werkzeug hashes. ID card and profile pictures arrive
as base64 data URLs and are written through the upload store.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from .api_types import UserPayload
from .audit_events import record_audit_event
from .errors import ConflictError, DomainError, NotFoundError
from .models import Request, SubSector, User
from .pagination import RangeRequest, range_bounds
from .roles import ACCOUNT_STATUSES, APPROVAL_STATUSES, ROLES
from .serializers import user_payload
from .storage import ID_CARDS, PROFILES, DataUrlError, UploadStore
from .validation import EMAIL_PATTERN, Fields

log = logging.getLogger("civicdesk.users")

PHONE_CODE_PATTERN = r"\+?[0-9]{1,4}"
PHONE_NUMBER_PATTERN = r"[0-9]{7,15}"
MIN_PASSWORD_LENGTH = 6


def _profile_fields(f: Fields, *, required: bool) -> dict[str, Any]:
    return {
        "full_name": f.string("fullName", required=required, min_len=2, max_len=100),
        "phone_country_code": f.string(
            "phoneCountryCode",
            required=required,
            pattern=PHONE_CODE_PATTERN,
            message="Phone country code must be valid (e.g. +92, 1)",
        ),
        "phone_number": f.string(
            "phoneNumber", required=required, pattern=PHONE_NUMBER_PATTERN, message="Phone number must be 7-15 digits"
        ),
        "house_no": f.string("houseNo", required=required, max_len=50),
        "street_no": f.string("streetNo", required=required, max_len=50),
        "sub_sector_id": f.integer("subSectorId", required=required),
    }


def _ensure_sub_sector(db: Session, sub_sector_id: int | None) -> None:
    if sub_sector_id is not None and db.get(SubSector, sub_sector_id) is None:
        raise ConflictError("Invalid sub sector")


def _email_taken(db: Session, email: str, exclude_id: int | None = None) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def _save_image(store: UploadStore, folder: str, value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return store.save_data_url(folder, value)
    except DataUrlError as e:
        raise ConflictError(f"Invalid image data URL: {e}") from e


def _load(db: Session, user_id: int) -> User:
    u = db.get(User, user_id)
    if u is None:
        raise NotFoundError("User not found")
    return u


def to_payload(db: Session, u: User) -> UserPayload:
    return user_payload(u, db.get(SubSector, u.sub_sector_id) if u.sub_sector_id else None)


def register_user(
    db: Session, *, payload: Mapping[str, Any], store: UploadStore, auto_approve: bool = True
) -> UserPayload:
    f = Fields(payload)
    email = f.string("email", max_len=200, pattern=EMAIL_PATTERN, message="email must be a valid email address")
    password = f.string("password", min_len=MIN_PASSWORD_LENGTH)
    profile = _profile_fields(f, required=True)
    f.raise_if_errors()
    email = email.lower()  # type: ignore[union-attr]
    if _email_taken(db, email):
        raise ConflictError("Email already registered")
    _ensure_sub_sector(db, profile["sub_sector_id"])
    front = _save_image(store, ID_CARDS, payload.get("idCardFront"))
    back = _save_image(store, ID_CARDS, payload.get("idCardBack"))
    u = User(
        email=email,
        password_hash=generate_password_hash(password),  # type: ignore[arg-type]
        role="user",
        approval_status="approved" if auto_approve else "pending",
        account_status="active",
        id_card_front=front,
        id_card_back=back,
        **profile,
    )
    db.add(u)
    db.commit()
    log.info("registered user_id=%s approval=%s", u.id, u.approval_status)
    record_audit_event("user_registered", u.id, approval_status=u.approval_status)
    return to_payload(db, u)


def authenticate(db: Session, *, email: str, password: str) -> User | None:
    u = db.execute(select(User).where(func.lower(User.email) == email.strip().lower())).scalar_one_or_none()
    if u is None or not check_password_hash(u.password_hash, password):
        return None
    return u


def list_users(db: Session, *, rr: RangeRequest, approval_status: str | None = None) -> tuple[list[UserPayload], int]:
    stmt = select(User)
    if approval_status is not None:
        stmt = stmt.where(User.approval_status == approval_status)
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    offset, limit = range_bounds(rr)
    stmt = stmt.order_by(User.created_at.desc(), User.id.desc()).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    users = list(db.execute(stmt).scalars())
    sectors = {s.id: s for s in db.execute(select(SubSector)).scalars()}
    return [user_payload(u, sectors.get(u.sub_sector_id)) for u in users], int(total)


def users_with_request_count(db: Session) -> list[dict[str, Any]]:
    counts = dict(db.execute(select(Request.user_id, func.count(Request.id)).group_by(Request.user_id)).all())
    users = db.execute(
        select(User).where(User.approval_status == "approved").order_by(User.created_at.desc(), User.id.desc())
    ).scalars()
    return [
        {"id": u.id, "email": u.email, "fullName": u.full_name, "requestCount": int(counts.get(u.id, 0))}
        for u in users
    ]


def get_user(db: Session, *, user_id: int) -> UserPayload:
    return to_payload(db, _load(db, user_id))


def update_me(db: Session, *, user_id: int, payload: Mapping[str, Any], store: UploadStore) -> UserPayload:
    f = Fields(payload)
    profile = _profile_fields(f, required=False)
    f.raise_if_errors()
    u = _load(db, user_id)
    _ensure_sub_sector(db, profile["sub_sector_id"])
    for attr, value in profile.items():
        if value is not None:
            setattr(u, attr, value)
    new_image = _save_image(store, PROFILES, payload.get("profileImage"))
    old_image = u.profile_image
    if new_image:
        u.profile_image = new_image
    db.commit()
    if new_image and old_image:
        store.delete(old_image)
    return to_payload(db, u)


def change_password(db: Session, *, user_id: int, payload: Mapping[str, Any]) -> None:
    f = Fields(payload)
    current = f.string("currentPassword")
    new = f.string("newPassword", min_len=MIN_PASSWORD_LENGTH)
    f.raise_if_errors()
    u = _load(db, user_id)
    if not check_password_hash(u.password_hash, current):  # type: ignore[arg-type]
        raise DomainError(400, "invalid_password", "Current password is incorrect")
    u.password_hash = generate_password_hash(new)  # type: ignore[arg-type]
    u.refresh_token_jti = None
    db.commit()
    record_audit_event("password_changed", u.id)


def deactivate_me(db: Session, *, user_id: int) -> UserPayload:
    u = _load(db, user_id)
    u.account_status = "deactivated"
    u.refresh_token_jti = None
    db.commit()
    record_audit_event("account_deactivated", u.id)
    return to_payload(db, u)


def update_user(db: Session, *, user_id: int, payload: Mapping[str, Any], actor_user_id: int) -> UserPayload:
    f = Fields(payload)
    approval = f.choice("approvalStatus", APPROVAL_STATUSES, required=False)
    account = f.choice("accountStatus", ACCOUNT_STATUSES, required=False)
    role = f.choice("role", ROLES, required=False)
    email = f.string("email", required=False, max_len=200, pattern=EMAIL_PATTERN, message="email must be a valid email address")
    password = f.string("password", required=False, min_len=MIN_PASSWORD_LENGTH)
    profile = _profile_fields(f, required=False)
    f.raise_if_errors()
    u = _load(db, user_id)
    if email is not None:
        if _email_taken(db, email, exclude_id=u.id):
            raise ConflictError("Email already registered")
        u.email = email.lower()
    _ensure_sub_sector(db, profile["sub_sector_id"])
    for attr, value in profile.items():
        if value is not None:
            setattr(u, attr, value)
    if approval is not None:
        u.approval_status = approval
    if account is not None:
        u.account_status = account
    if role is not None:
        u.role = role
    if password is not None:
        u.password_hash = generate_password_hash(password)
        u.refresh_token_jti = None
    db.commit()
    record_audit_event("user_updated", actor_user_id, user_id=u.id, fields=sorted(payload.keys()))
    return to_payload(db, u)


def set_approval(db: Session, *, user_id: int, status: str, actor_user_id: int) -> UserPayload:
    return update_user(db, user_id=user_id, payload={"approvalStatus": status}, actor_user_id=actor_user_id)


def delete_user(db: Session, *, user_id: int, actor_user_id: int, store: UploadStore | None = None) -> None:
    u = _load(db, user_id)
    files = [u.id_card_front, u.id_card_back, u.profile_image]
    files += [url for (url,) in db.execute(select(Request.issue_image_url).where(Request.user_id == u.id)) if url]
    db.execute(delete(Request).where(Request.user_id == u.id))
    db.delete(u)
    db.commit()
    if store is not None:
        for url in files:
            if url:
                store.delete(url)
    record_audit_event("user_deleted", actor_user_id, user_id=user_id)


__all__ = [
    "register_user",
    "authenticate",
    "list_users",
    "users_with_request_count",
    "get_user",
    "update_me",
    "change_password",
    "deactivate_me",
    "update_user",
    "set_approval",
    "delete_user",
    "to_payload",
]
