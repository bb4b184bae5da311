from __future__ import annotations

import time

from flask import Blueprint, current_app, jsonify, request
from flask.typing import ResponseReturnValue

from .api_types import TokenPairResponse
from .app_sessions import SessionError, require_session
from .audit_events import record_audit_event
from .db import get_session
from .errors import DomainError, RateLimitError, ValidationError
from .jwt_utils import (
    DEFAULT_ACCESS_TTL,
    DEFAULT_REFRESH_TTL,
    JWTError,
    decode as jwt_decode,
    issue_token_pair,
    select_signing_secret,
)
from .models import User
from .storage import get_upload_store
from .users_service import authenticate, register_user, to_payload

bp = Blueprint("auth", __name__, url_prefix="/auth")

# In-memory login rate limit store: key -> {failures:int, first:ts, lock_until:ts?}
_RATE_LIMIT_STORE: dict[str, dict[str, float]] = {}

DEFAULT_RATE_LIMIT = {"window_sec": 300, "max_failures": 5, "lock_sec": 600}


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _secrets() -> tuple[str, list[str]]:
    cfg = current_app.config
    return cfg.get("JWT_SECRET") or cfg["SECRET_KEY"], cfg.get("JWT_SECRETS") or []


def _decode_refresh(token: str | None) -> dict:
    if not token:
        raise ValidationError([{"field": "refreshToken", "message": "refreshToken is required"}])
    primary, secrets_list = _secrets()
    cfg = current_app.config
    try:
        payload = jwt_decode(
            token,
            secret=primary,
            secrets_list=secrets_list,
            issuer=cfg.get("JWT_ISSUER"),
            audience=cfg.get("JWT_AUDIENCE"),
            leeway=cfg.get("JWT_LEEWAY_SECONDS", 60),
        )
    except JWTError as e:
        raise SessionError("invalid token") from e
    if payload["type"] != "refresh":
        raise DomainError(400, "wrong_token_type", "Refresh token expected")
    return dict(payload)


def _token_response(db, user: User) -> ResponseReturnValue:
    """Issue a new pair, remember the refresh jti on the user and commit."""
    primary, secrets_list = _secrets()
    cfg = current_app.config
    access_ttl = cfg.get("JWT_ACCESS_TTL", DEFAULT_ACCESS_TTL)
    access, refresh, jti = issue_token_pair(
        user_id=user.id,
        role=user.role,
        secret=select_signing_secret(primary, secrets_list),
        access_ttl=access_ttl,
        refresh_ttl=cfg.get("JWT_REFRESH_TTL", DEFAULT_REFRESH_TTL),
        issuer=cfg.get("JWT_ISSUER", "civicdesk"),
        audience=cfg.get("JWT_AUDIENCE", "api"),
    )
    user.refresh_token_jti = jti
    db.commit()
    body: TokenPairResponse = {
        "accessToken": access,
        "refreshToken": refresh,
        "tokenType": "Bearer",
        "expiresIn": access_ttl,
        "user": to_payload(db, user),
    }
    return jsonify(body)


def _login(*, admin: bool) -> ResponseReturnValue:
    data = _json()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    if not email or not password:
        raise ValidationError([{"field": "email", "message": "email and password are required"}])
    rl = {**DEFAULT_RATE_LIMIT, **(current_app.config.get("AUTH_RATE_LIMIT") or {})}
    now = time.time()
    key = f"{email}:{request.remote_addr or 'na'}"
    rec = _RATE_LIMIT_STORE.get(key)
    if rec:
        lock_until = rec.get("lock_until")
        if lock_until and lock_until > now:
            raise RateLimitError(int(lock_until - now) or 1)
        # slide window
        if now - rec["first"] > rl["window_sec"]:
            rec.update(first=now, failures=0)
            rec.pop("lock_until", None)
    else:
        rec = {"failures": 0, "first": now}
        _RATE_LIMIT_STORE[key] = rec
    db = get_session()
    try:
        user = authenticate(db, email=email, password=password)
        if user is None:
            rec["failures"] += 1
            if rec["failures"] >= rl["max_failures"]:
                rec["lock_until"] = now + rl["lock_sec"]
                record_audit_event("login_locked", email=email)
                raise RateLimitError(int(rl["lock_sec"]))
            raise DomainError(401, "invalid_credentials", "Invalid credentials")
        _RATE_LIMIT_STORE.pop(key, None)
        if admin and user.role != "admin":
            raise DomainError(403, "forbidden", "Admin access only")
        if not admin and user.role != "user":
            raise DomainError(403, "forbidden", "App access only for user role")
        if user.approval_status != "approved":
            raise DomainError(403, "not_approved", "Your registration is not yet approved")
        if user.account_status == "deactivated":
            raise DomainError(403, "account_deactivated", "Your account is deactivated")
        record_audit_event("login", user.id, admin=admin)
        return _token_response(db, user)
    finally:
        db.close()


# --- Routes ---
@bp.post("/register")
def register() -> ResponseReturnValue:
    db = get_session()
    try:
        created = register_user(
            db,
            payload=_json(),
            store=get_upload_store(),
            auto_approve=bool(current_app.config.get("REGISTRATION_AUTO_APPROVE", True)),
        )
    finally:
        db.close()
    return jsonify(created), 201


@bp.post("/login")
def login() -> ResponseReturnValue:
    return _login(admin=False)


@bp.post("/admin-login")
def admin_login() -> ResponseReturnValue:
    return _login(admin=True)


@bp.post("/refresh")
def refresh() -> ResponseReturnValue:
    payload = _decode_refresh(_json().get("refreshToken"))
    db = get_session()
    try:
        user = db.get(User, payload["sub"])
        if user is None or user.refresh_token_jti != payload["jti"]:
            raise SessionError("invalid token")
        if user.account_status == "deactivated":
            raise SessionError("account deactivated")
        # rotate
        return _token_response(db, user)
    finally:
        db.close()


@bp.post("/logout")
def logout() -> ResponseReturnValue:
    payload = _decode_refresh(_json().get("refreshToken"))
    db = get_session()
    try:
        user = db.get(User, payload["sub"])
        if user is not None and user.refresh_token_jti == payload["jti"]:
            user.refresh_token_jti = None
            db.commit()
            record_audit_event("logout", user.id)
    finally:
        db.close()
    return jsonify({"ok": True})


@bp.get("/me")
def me() -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        user = db.get(User, sess["user_id"])
        if user is None:
            raise SessionError("unknown user")
        return jsonify(to_payload(db, user))
    finally:
        db.close()


def reset_rate_limits() -> None:
    _RATE_LIMIT_STORE.clear()
