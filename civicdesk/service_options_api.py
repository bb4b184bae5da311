from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import require_roles
from .db import get_session
from .errors import ValidationError
from .service_options_service import (
    create_option,
    delete_option,
    get_option,
    list_for_type,
    list_options,
    store_option_image,
    update_option,
)
from .storage import get_upload_store

bp = Blueprint("service_options_api", __name__, url_prefix="/service-options")


@bp.get("/by-request-type/<int:type_id>")
def by_request_type(type_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(list_for_type(db, type_id=type_id))
    finally:
        db.close()


@bp.get("/<int:option_id>")
def get_one(option_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(get_option(db, option_id=option_id))
    finally:
        db.close()


@bp.get("")
@require_roles("admin")
def list_all() -> ResponseReturnValue:
    raw = request.args.get("requestTypeId")
    if raw not in (None, "") and not str(raw).isdigit():
        raise ValidationError([{"field": "requestTypeId", "message": "requestTypeId must be an integer"}])
    db = get_session()
    try:
        return jsonify(list_options(db, type_id=int(raw) if raw else None))
    finally:
        db.close()


@bp.post("")
@require_roles("admin")
def create() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(create_option(db, payload=request.get_json(silent=True) or {})), 201
    finally:
        db.close()


@bp.patch("/<int:option_id>")
@require_roles("admin")
def update(option_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(update_option(db, option_id=option_id, payload=request.get_json(silent=True) or {}))
    finally:
        db.close()


@bp.delete("/<int:option_id>")
@require_roles("admin")
def delete(option_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        delete_option(db, option_id=option_id)
    finally:
        db.close()
    return "", 204


@bp.post("/upload-image")
@require_roles("admin")
def upload_image() -> ResponseReturnValue:
    storage = request.files.get("file")
    if storage is None or not storage.filename:
        raise ValidationError([{"field": "file", "message": "file field required"}])
    return jsonify(store_option_image(get_upload_store(), data=storage.read(), mimetype=storage.mimetype or "")), 201
