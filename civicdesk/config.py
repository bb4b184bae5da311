from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_ADMIN_TIMEZONE = "Asia/Karachi"

log = logging.getLogger("civicdesk.config")


def resolve_admin_timezone(raw: str | None) -> str:
    """Return a usable IANA zone name, falling back to the default when unset or unknown."""
    configured = (raw or "").strip()
    if not configured:
        return DEFAULT_ADMIN_TIMEZONE
    try:
        ZoneInfo(configured)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning(
            'Invalid ADMIN_INPUT_TIMEZONE="%s". Using "%s" instead.', configured, DEFAULT_ADMIN_TIMEZONE
        )
        return DEFAULT_ADMIN_TIMEZONE
    return configured


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass
class Config:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///dev.db"
    jwt_secrets: list[str] = field(default_factory=list)  # first element used for signing; all accepted for verification
    jwt_issuer: str = "civicdesk"
    jwt_audience: str = "api"
    jwt_max_age_seconds: int = 43200  # 12h
    jwt_leeway_seconds: int = 60
    admin_timezone: str = DEFAULT_ADMIN_TIMEZONE
    upload_dir: str = "uploads"
    max_request_image_bytes: int = 5 * 1024 * 1024
    admin_email: str = "admin@example.com"
    admin_password: str = "Admin123!"
    seed_defaults: bool = True
    registration_auto_approve: bool = True
    metrics_backend: str = "noop"

    @classmethod
    def from_env(cls) -> Config:
        jwt_multi = os.getenv("JWT_SECRETS", "")
        # JWT_SECRETS allows key rotation: comma-separated secrets; first used for signing.
        jwt_list = [s for s in [j.strip() for j in jwt_multi.split(",")] if s]
        return cls(
            secret_key=os.getenv("SECRET_KEY", "change-me"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///dev.db"),
            jwt_secrets=jwt_list,
            jwt_issuer=os.getenv("JWT_ISSUER", "civicdesk"),
            jwt_audience=os.getenv("JWT_AUDIENCE", "api"),
            jwt_max_age_seconds=int(os.getenv("JWT_MAX_AGE_SECONDS", "43200")),
            jwt_leeway_seconds=int(os.getenv("JWT_LEEWAY_SECONDS", "60")),
            admin_timezone=resolve_admin_timezone(os.getenv("ADMIN_INPUT_TIMEZONE")),
            upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
            max_request_image_bytes=int(os.getenv("MAX_REQUEST_IMAGE_BYTES", str(5 * 1024 * 1024))),
            admin_email=os.getenv("ADMIN_EMAIL", "admin@example.com"),
            admin_password=os.getenv("ADMIN_PASSWORD", "Admin123!"),
            seed_defaults=_flag("SEED_DEFAULTS", "1"),
            registration_auto_approve=_flag("REGISTRATION_AUTO_APPROVE", "1"),
            metrics_backend=os.getenv("METRICS_BACKEND", "noop"),
        )

    def override(self, d: dict):
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)
        # overrides bypass from_env, so re-validate the zone here
        self.admin_timezone = resolve_admin_timezone(self.admin_timezone)

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "JWT_SECRET": self.jwt_secrets[0] if self.jwt_secrets else self.secret_key,
            "JWT_SECRETS": self.jwt_secrets,
            "JWT_ISSUER": self.jwt_issuer,
            "JWT_AUDIENCE": self.jwt_audience,
            "JWT_MAX_AGE_SECONDS": self.jwt_max_age_seconds,
            "JWT_LEEWAY_SECONDS": self.jwt_leeway_seconds,
            "ADMIN_TIMEZONE": self.admin_timezone,
            "UPLOAD_DIR": os.path.abspath(self.upload_dir),
            "MAX_REQUEST_IMAGE_BYTES": self.max_request_image_bytes,
            "ADMIN_EMAIL": self.admin_email,
            "ADMIN_PASSWORD": self.admin_password,
            "SEED_DEFAULTS": self.seed_defaults,
            "REGISTRATION_AUTO_APPROVE": self.registration_auto_approve,
            "METRICS_BACKEND": self.metrics_backend,
            # upload ceiling: largest accepted file plus multipart overhead
            "MAX_CONTENT_LENGTH": 12 * 1024 * 1024,
        }
