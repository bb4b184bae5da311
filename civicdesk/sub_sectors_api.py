from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue

from .app_authz import require_roles
from .db import get_session
from .sub_sectors_service import (
    create_sub_sector,
    delete_sub_sector,
    get_sub_sector,
    list_sub_sectors,
    update_sub_sector,
)

bp = Blueprint("sub_sectors_api", __name__, url_prefix="/sub-sectors")


@bp.get("")
@require_roles("admin")
def list_all() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(list_sub_sectors(db))
    finally:
        db.close()


@bp.get("/<int:sub_sector_id>")
@require_roles("admin")
def get_one(sub_sector_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(get_sub_sector(db, sub_sector_id=sub_sector_id))
    finally:
        db.close()


@bp.post("")
@require_roles("admin")
def create() -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(create_sub_sector(db, payload=request.get_json(silent=True) or {})), 201
    finally:
        db.close()


@bp.patch("/<int:sub_sector_id>")
@require_roles("admin")
def update(sub_sector_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify(update_sub_sector(db, sub_sector_id=sub_sector_id, payload=request.get_json(silent=True) or {}))
    finally:
        db.close()


@bp.delete("/<int:sub_sector_id>")
@require_roles("admin")
def delete(sub_sector_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        delete_sub_sector(db, sub_sector_id=sub_sector_id)
    finally:
        db.close()
    return "", 204
