from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import require_roles
from .db import get_session
from .errors import ValidationError
from .request_types_service import (
    create_request_type,
    delete_request_type,
    get_request_type,
    list_request_types,
    store_icon,
    update_request_type,
)
from .storage import get_upload_store

bp = Blueprint("request_types_api", __name__, url_prefix="/request-types")


@bp.get("")
def list_public() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(list_request_types(db))
    finally:
        db.close()


@bp.post("/upload-icon")
@require_roles("admin")
def upload_icon() -> ResponseReturnValue:
    storage = request.files.get("file")
    if storage is None or not storage.filename:
        raise ValidationError([{"field": "file", "message": "file field required"}])
    return jsonify(store_icon(get_upload_store(), data=storage.read(), mimetype=storage.mimetype or "")), 201


@bp.get("/<int:type_id>")
@require_roles("admin")
def get_one(type_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(get_request_type(db, type_id=type_id))
    finally:
        db.close()


@bp.post("")
@require_roles("admin")
def create() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(create_request_type(db, payload=request.get_json(silent=True) or {})), 201
    finally:
        db.close()


@bp.patch("/<int:type_id>")
@require_roles("admin")
def update(type_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(update_request_type(db, type_id=type_id, payload=request.get_json(silent=True) or {}))
    finally:
        db.close()


@bp.delete("/<int:type_id>")
@require_roles("admin")
def delete(type_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        delete_request_type(db, type_id=type_id)
    finally:
        db.close()
    return "", 204
