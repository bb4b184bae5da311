"""Access/refresh tokens for residents and admins (HS256).

Both tokens carry the same claims: ``sub`` (user id), ``role``, ``type``
(``access`` or ``refresh``), ``jti``, ``iat``, ``exp`` plus ``iss``/``aud``.
Several secrets may be configured; the first signs, all of them verify.
Every rejection is counted as ``security.jwt_rejected{reason}``.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from collections.abc import Callable, Iterable
from typing import Any, Literal, TypedDict

from .metrics import increment
from .roles import ROLES

DEFAULT_ACCESS_TTL = 3600  # 1h
DEFAULT_REFRESH_TTL = 1209600  # 14 days
SKEW_SECS = 30
ISSUER = "civicdesk"
AUDIENCE = "api"

TokenType = Literal["access", "refresh"]
TOKEN_TYPES: tuple[TokenType, ...] = ("access", "refresh")


class JWTError(Exception):
    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or reason)
        self.reason = reason


class TokenClaims(TypedDict):
    sub: int
    role: str
    type: TokenType
    jti: str
    iat: int
    exp: int


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(part: str) -> bytes:
    return base64.urlsafe_b64decode(part + "=" * (-len(part) % 4))


def _mac(signing_input: bytes, secret: str) -> str:
    return _b64(hmac.new(secret.encode(), signing_input, hashlib.sha256).digest())


def _json_part(obj: dict[str, Any]) -> str:
    return _b64(json.dumps(obj, separators=(",", ":")).encode())


def generate_jti() -> str:
    return secrets.token_hex(16)


def encode(claims: dict[str, Any], *, secret: str, ttl: int, kid: str | None = None) -> str:
    """Sign ``claims``; ``iat``/``exp`` are filled in when absent."""
    now = int(time.time())
    body = {"iat": now, "exp": now + ttl, **claims}
    header: dict[str, Any] = {"alg": "HS256", "typ": "JWT"}
    if kid:
        header["kid"] = kid
    signing_input = f"{_json_part(header)}.{_json_part(body)}"
    return f"{signing_input}.{_mac(signing_input.encode(), secret)}"


def _candidates(secret: str | None, secrets_list: Iterable[str] | None) -> list[str]:
    out: list[str] = []
    for s in [secret, *(secrets_list or [])]:
        if s and s not in out:
            out.append(s)
    return out


def _open(token: str, candidates: list[str]) -> dict[str, Any]:
    parts = token.split(".")
    if len(parts) != 3:
        raise JWTError("malformed", "token must have three segments")
    header_b, body_b, sig = parts
    try:
        header = json.loads(_unb64(header_b))
    except ValueError as e:
        raise JWTError("bad_header") from e
    if not isinstance(header, dict) or header.get("alg") != "HS256":
        raise JWTError("alg", "only HS256 tokens are accepted")
    signing_input = f"{header_b}.{body_b}".encode()
    if not any(hmac.compare_digest(_mac(signing_input, s), sig) for s in candidates):
        raise JWTError("bad_signature")
    try:
        body = json.loads(_unb64(body_b))
    except ValueError as e:  # pragma: no cover
        raise JWTError("bad_payload") from e
    if not isinstance(body, dict):  # pragma: no cover
        raise JWTError("bad_payload")
    return body


def _claims(body: dict[str, Any]) -> TokenClaims:
    for key, kind in (("sub", int), ("role", str), ("type", str), ("jti", str), ("iat", int), ("exp", int)):
        value = body.get(key)
        # bool is an int subclass; a boolean sub or iat is never ours
        if not isinstance(value, kind) or isinstance(value, bool):
            raise JWTError(key, f"missing or invalid claim {key}")
    if body["type"] not in TOKEN_TYPES:
        raise JWTError("type", "unknown token type")
    if body["role"] not in ROLES:
        raise JWTError("role", "unknown role")
    return TokenClaims(
        sub=body["sub"], role=body["role"], type=body["type"], jti=body["jti"], iat=body["iat"], exp=body["exp"]
    )


def _audience_matches(value: Any, audience: str) -> bool:
    if isinstance(value, list):
        return audience in value
    return value == audience


def decode(
    token: str,
    *,
    secret: str | None = None,
    secrets_list: list[str] | None = None,
    issuer: str | None = None,
    audience: str | None = None,
    leeway: int = SKEW_SECS,
    max_age: int | None = None,
    is_revoked: Callable[[str], bool] | None = None,
) -> TokenClaims:
    """Verify signature and claims; raise JWTError(reason) on any failure.

    ``max_age`` bounds how long ago an access token may have been issued.
    """
    try:
        body = _open(token, _candidates(secret, secrets_list))
        claims = _claims(body)
        now = int(time.time())
        if now > claims["exp"] + leeway:
            raise JWTError("exp", "token expired")
        if claims["iat"] > now + leeway:
            raise JWTError("iat_future", "token issued in the future")
        if max_age is not None and claims["type"] == "access" and now - claims["iat"] > max_age + leeway:
            raise JWTError("max_age", "token too old")
        if issuer and body.get("iss", ISSUER) != issuer:
            raise JWTError("iss", "unexpected issuer")
        if audience and not _audience_matches(body.get("aud"), audience):
            raise JWTError("aud", "unexpected audience")
        if is_revoked is not None and is_revoked(claims["jti"]):
            raise JWTError("revoked", "token revoked")
    except JWTError as e:
        increment("security.jwt_rejected", {"reason": e.reason})
        raise
    return claims


def issue_token_pair(
    *,
    user_id: int,
    role: str,
    secret: str,
    access_ttl: int = DEFAULT_ACCESS_TTL,
    refresh_ttl: int = DEFAULT_REFRESH_TTL,
    issuer: str = ISSUER,
    audience: str = AUDIENCE,
) -> tuple[str, str, str]:
    """Return (access_token, refresh_token, refresh_jti)."""
    kid = hashlib.sha256(secret.encode()).hexdigest()[:8]
    base = {"sub": user_id, "role": role, "iss": issuer, "aud": audience}
    tokens: dict[str, str] = {}
    refresh_jti = generate_jti()
    for token_type, ttl, jti in (("access", access_ttl, generate_jti()), ("refresh", refresh_ttl, refresh_jti)):
        tokens[token_type] = encode({**base, "type": token_type, "jti": jti}, secret=secret, ttl=ttl, kid=kid)
    return tokens["access"], tokens["refresh"], refresh_jti


def select_signing_secret(primary: str | None, candidates: list[str] | None) -> str:
    """Primary secret if set, else the first non-empty rotation secret."""
    for s in [primary, *(candidates or [])]:
        if s:
            return s
    raise JWTError("no_secret", "no signing secret available")


__all__ = [
    "JWTError",
    "TokenClaims",
    "DEFAULT_ACCESS_TTL",
    "DEFAULT_REFRESH_TTL",
    "encode",
    "decode",
    "issue_token_pair",
    "select_signing_secret",
    "generate_jti",
]
