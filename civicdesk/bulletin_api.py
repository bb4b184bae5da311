from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import require_roles
from .bulletin_service import (
    delete_bulletin,
    find_by_date,
    find_today,
    list_bulletins,
    parse_bulletin_date,
    upsert_bulletin,
)
from .db import get_session
from .errors import ValidationError
from .pagination import make_list_response
from .storage import get_upload_store

bp = Blueprint("bulletin_api", __name__, url_prefix="/daily-bulletin")


@bp.get("/today")
def today() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(find_today(db))
    finally:
        db.close()


@bp.get("/by-date/<string:day>")
def by_date(day: str) -> ResponseReturnValue:
    parsed = parse_bulletin_date(day)
    db = get_session()
    try:
        return jsonify(find_by_date(db, parsed))
    finally:
        db.close()


@bp.get("")
@require_roles("admin")
def list_all() -> ResponseReturnValue:
    db = get_session()
    try:
        data = list_bulletins(db)
    finally:
        db.close()
    return jsonify(make_list_response(data))


@bp.post("")
@require_roles("admin")
def upsert() -> ResponseReturnValue:
    storage = request.files.get("file")
    if storage is None or not storage.filename:
        raise ValidationError([{"field": "file", "message": "file field required"}])
    db = get_session()
    try:
        payload = upsert_bulletin(
            db,
            fields=request.form.to_dict(),
            data=storage.read(),
            mimetype=storage.mimetype or "",
            store=get_upload_store(),
        )
    finally:
        db.close()
    return jsonify(payload), 201


@bp.delete("/<string:day>")
@require_roles("admin")
def remove(day: str) -> ResponseReturnValue:
    parsed = parse_bulletin_date(day)
    db = get_session()
    try:
        delete_bulletin(db, day=parsed, store=get_upload_store())
    finally:
        db.close()
    return "", 204
