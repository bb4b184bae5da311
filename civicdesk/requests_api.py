"""Requests API

Residents submit and track their own requests; admins list, edit and report.
Handlers stay thin: parse, open a session, delegate to the services.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask.typing import ResponseReturnValue

from .admission_service import ImageUpload, parse_submission, submit
from .app_authz import require_approved, require_roles
from .app_sessions import require_session
from .db import get_session
from .errors import ValidationError
from .pagination import TOTAL_COUNT_HEADER, make_list_response, parse_range_params
from .report_service import ReportService
from .requests_service import (
    daily_stats,
    delete_request,
    get_request,
    hydrate,
    list_all,
    list_my,
    parse_filters,
    stats_summary,
    update_request,
    update_status,
)
from .storage import get_upload_store

bp = Blueprint("requests_api", __name__, url_prefix="/requests")


def _image_from_request() -> ImageUpload | None:
    storage = request.files.get("issueImage")
    if storage is None or not storage.filename:
        return None
    return ImageUpload(data=storage.read(), mimetype=storage.mimetype or "", filename=storage.filename)


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError([{"field": "body", "message": "JSON object expected"}])
    return data


@bp.post("")
@require_roles("user", "admin")
@require_approved
def create_request() -> ResponseReturnValue:
    sess = require_session()
    values = request.form if (request.form or request.files) else (request.get_json(silent=True) or {})
    sub = parse_submission(values, _image_from_request())
    db = get_session()
    try:
        created = submit(
            db,
            sub,
            user_id=sess["user_id"],
            admin_tz=current_app.config["ADMIN_TIMEZONE"],
            store=get_upload_store(),
            max_image_bytes=current_app.config["MAX_REQUEST_IMAGE_BYTES"],
        )
        payload = hydrate(db, [created])[0]
    finally:
        db.close()
    return jsonify(payload), 201


@bp.get("/my")
@require_roles("user", "admin")
@require_approved
def my_requests() -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        return jsonify(list_my(db, user_id=sess["user_id"]))
    finally:
        db.close()


@bp.get("")
@require_roles("admin")
def list_requests() -> ResponseReturnValue:
    filters = parse_filters(request.args)
    rr = parse_range_params(request.args)
    db = get_session()
    try:
        data, total = list_all(db, filters=filters, rr=rr)
    finally:
        db.close()
    resp = jsonify(make_list_response(data, total))
    resp.headers[TOTAL_COUNT_HEADER] = str(total)
    return resp


@bp.get("/stats/summary")
@require_roles("admin")
def stats() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(stats_summary(db))
    finally:
        db.close()


@bp.get("/stats/daily")
@require_roles("admin")
def stats_daily() -> ResponseReturnValue:
    raw = request.args.get("days")
    try:
        days = int(raw) if raw not in (None, "") else None
    except ValueError:
        days = None
    db = get_session()
    try:
        return jsonify(daily_stats(db, days=days))
    finally:
        db.close()


@bp.get("/reports/dashboard")
@require_roles("admin")
def dashboard() -> ResponseReturnValue:
    db = get_session()
    try:
        report = ReportService(db).dashboard(
            request.args.get("period"), request.args.get("from"), request.args.get("to")
        )
    finally:
        db.close()
    return jsonify(report)


@bp.get("/<int:request_id>")
@require_roles("user", "admin")
@require_approved
def get_one(request_id: int) -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        return jsonify(get_request(db, request_id=request_id, sess=sess))
    finally:
        db.close()


@bp.patch("/<int:request_id>/status")
@require_roles("admin")
def patch_status(request_id: int) -> ResponseReturnValue:
    sess = require_session()
    body = _body()
    db = get_session()
    try:
        return jsonify(update_status(db, request_id=request_id, status=body.get("status"), actor_user_id=sess["user_id"]))
    finally:
        db.close()


@bp.patch("/<int:request_id>")
@require_roles("admin")
def patch_request(request_id: int) -> ResponseReturnValue:
    sess = require_session()
    body = _body()
    db = get_session()
    try:
        return jsonify(update_request(db, request_id=request_id, payload=body, actor_user_id=sess["user_id"]))
    finally:
        db.close()


@bp.delete("/<int:request_id>")
@require_roles("user", "admin")
@require_approved
def remove(request_id: int) -> ResponseReturnValue:
    sess = require_session()
    db = get_session()
    try:
        delete_request(db, request_id=request_id, sess=sess, store=get_upload_store())
    finally:
        db.close()
    return "", 204
