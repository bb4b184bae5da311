from __future__ import annotations

from typing import Any

from flask import Blueprint
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .db import get_session

bp = Blueprint("health_api", __name__)


@bp.get("/healthz")
def healthz() -> tuple[dict[str, Any], int]:
    # liveness only; no database round-trip
    return {"status": "ok"}, 200


@bp.get("/health")
def health() -> tuple[dict[str, Any], int]:
    db = get_session()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"status": "degraded", "database": "unavailable"}, 503
    finally:
        db.close()
    return {"status": "ok", "database": "ok"}, 200
