"""Flask application factory.

Provides:
 - App factory with configuration override
 - DB engine initialization and optional default seeding
 - Identity resolution (bearer token, or X-User-* headers under TESTING)
 - Request id / timing headers and one unified log line per request
 - Blueprint registration and RFC7807 error handlers
 - Upload store served under /uploads
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, request, send_from_directory
from sqlalchemy import inspect
from werkzeug.wrappers.response import Response

from .app_sessions import get_session as get_identity, persist_identity
from .auth import bp as auth_bp
from .bulletin_api import bp as bulletin_bp
from .config import Config
from .db import get_new_session, init_engine
from .errors import register_error_handlers
from .health_api import bp as health_bp
from .jwt_utils import JWTError, decode as jwt_decode
from .logging_setup import get_request_logger, install_support_log_handler
from .metrics import set_metrics
from .metrics_logging import LoggingMetrics
from .request_types_api import bp as request_types_bp
from .requests_api import bp as requests_bp
from .roles import to_role
from .seed import seed_defaults
from .service_options_api import bp as service_options_bp
from .storage import URL_PREFIX, UploadStore
from .sub_sectors_api import bp as sub_sectors_bp
from .users_api import bp as users_bp

BLUEPRINTS = (
    health_bp,
    auth_bp,
    users_bp,
    sub_sectors_bp,
    request_types_bp,
    service_options_bp,
    requests_bp,
    bulletin_bp,
)


def _identity_from_bearer(app: Flask) -> None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        return
    token = auth_header.split(None, 1)[1].strip()
    cfg = app.config
    try:
        payload = jwt_decode(
            token,
            secret=cfg.get("JWT_SECRET"),
            secrets_list=cfg.get("JWT_SECRETS") or [],
            issuer=cfg.get("JWT_ISSUER"),
            audience=cfg.get("JWT_AUDIENCE"),
            leeway=cfg.get("JWT_LEEWAY_SECONDS", 60),
            max_age=cfg.get("JWT_MAX_AGE_SECONDS"),
        )
    except JWTError as e:
        # protected endpoints answer 401 through require_session
        app.logger.debug("bearer token rejected: %s", e)
        return
    if payload["type"] == "access":
        persist_identity(payload["sub"], payload["role"])


def _identity_from_test_headers() -> None:
    role = to_role(request.headers.get("X-User-Role"))
    if role is None:
        return
    uid = request.headers.get("X-User-Id", "")
    persist_identity(int(uid) if uid.isdigit() else 1, role)


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)

    # --- Configuration ---
    cfg = Config.from_env()
    if config_override:
        known = {k: v for k, v in config_override.items() if hasattr(cfg, k)}
        if known:
            cfg.override(known)
    app.config.update(cfg.to_flask_dict())
    if config_override:
        for k, v in config_override.items():  # direct Flask config keys
            if k.isupper():
                app.config[k] = v

    # --- DB setup ---
    engine = init_engine(cfg.database_url, force=bool(app.config.get("FORCE_DB_REINIT")))

    # --- Uploads ---
    app.extensions["civicdesk.uploads"] = UploadStore(app.config["UPLOAD_DIR"])

    # --- Metrics backend wiring ---
    if app.config.get("METRICS_BACKEND") == "log":
        set_metrics(LoggingMetrics())
        app.logger.info("Metrics backend initialized: log")

    # --- Logging / timing middleware ---
    log = get_request_logger()

    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        if app.config.get("TESTING"):
            _identity_from_test_headers()
        if get_identity() is None:
            _identity_from_bearer(app)

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - getattr(g, "_t0", time.perf_counter())) * 1000)
        rid = getattr(g, "request_id", None) or str(uuid.uuid4())
        resp.headers["X-Request-Id"] = rid
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        ident = get_identity()
        log.info(
            {
                "request_id": rid,
                "user_id": ident["user_id"] if ident else None,
                "role": ident["role"] if ident else None,
                "method": request.method,
                "path": request.path,
                "status": resp.status_code,
                "duration_ms": dur_ms,
            }
        )
        return resp

    # --- Blueprints ---
    for bp in BLUEPRINTS:
        app.register_blueprint(bp)

    @app.get(f"{URL_PREFIX}/<path:filename>")
    def _uploads(filename: str) -> Response:
        return send_from_directory(app.config["UPLOAD_DIR"], filename)

    # --- Error handling ---
    register_error_handlers(app)
    install_support_log_handler()

    # --- Seeding (skipped until the schema exists) ---
    if cfg.seed_defaults and inspect(engine).has_table("users"):
        db = get_new_session()
        try:
            seed_defaults(db, admin_email=cfg.admin_email, admin_password=cfg.admin_password)
        finally:
            db.close()

    return app


__all__ = ["create_app"]
