"""Users API

Public sub-sector lookup for the registration form, self-service profile
endpoints and admin account management.
"""
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import ensure_owner_or_admin, require_roles
from .app_sessions import require_session
from .db import get_session
from .pagination import TOTAL_COUNT_HEADER, make_list_response, parse_range_params
from .storage import get_upload_store
from .sub_sectors_service import list_sub_sectors
from .users_service import (
    change_password,
    deactivate_me,
    delete_user,
    get_user,
    list_users,
    set_approval,
    update_me,
    update_user,
    users_with_request_count,
)

bp = Blueprint("users_api", __name__, url_prefix="/users")


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.get("/sub-sectors")
def sub_sectors() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(list_sub_sectors(db))
    finally:
        db.close()


def _paged(approval_status: str | None) -> ResponseReturnValue:
    rr = parse_range_params(request.args)
    db = get_session()
    try:
        data, total = list_users(db, rr=rr, approval_status=approval_status)
    finally:
        db.close()
    resp = jsonify(make_list_response(data, total))
    resp.headers[TOTAL_COUNT_HEADER] = str(total)
    return resp


@bp.get("")
@require_roles("admin")
def list_all() -> ResponseReturnValue:
    return _paged(request.args.get("approvalStatus") or None)


@bp.get("/pending")
@require_roles("admin")
def pending() -> ResponseReturnValue:
    return _paged("pending")


@bp.get("/with-request-count")
@require_roles("admin")
def with_request_count() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(users_with_request_count(db))
    finally:
        db.close()


@bp.patch("/me")
@require_roles("user", "admin")
def patch_me() -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        return jsonify(update_me(db, user_id=sess["user_id"], payload=_json(), store=get_upload_store()))
    finally:
        db.close()


@bp.post("/me/password")
@require_roles("user", "admin")
def password() -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        change_password(db, user_id=sess["user_id"], payload=_json())
    finally:
        db.close()
    return jsonify({"ok": True})


@bp.post("/me/deactivate")
@require_roles("user", "admin")
def deactivate() -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        return jsonify(deactivate_me(db, user_id=sess["user_id"]))
    finally:
        db.close()


@bp.get("/<int:user_id>")
@require_roles("user", "admin")
def get_one(user_id: int) -> ResponseReturnValue:
    ensure_owner_or_admin(user_id, require_session())
    db = get_session()
    try:
        return jsonify(get_user(db, user_id=user_id))
    finally:
        db.close()


@bp.patch("/<int:user_id>")
@require_roles("admin")
def patch_user(user_id: int) -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        return jsonify(update_user(db, user_id=user_id, payload=_json(), actor_user_id=sess["user_id"]))
    finally:
        db.close()


@bp.patch("/<int:user_id>/approve")
@require_roles("admin")
def approve(user_id: int) -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        return jsonify(set_approval(db, user_id=user_id, status="approved", actor_user_id=sess["user_id"]))
    finally:
        db.close()


@bp.patch("/<int:user_id>/reject")
@require_roles("admin")
def reject(user_id: int) -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        return jsonify(set_approval(db, user_id=user_id, status="rejected", actor_user_id=sess["user_id"]))
    finally:
        db.close()


@bp.delete("/<int:user_id>")
@require_roles("admin")
def remove(user_id: int) -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        delete_user(db, user_id=user_id, actor_user_id=sess["user_id"], store=get_upload_store())
    finally:
        db.close()
    return "", 204
