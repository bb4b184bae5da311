"""Field-level payload checks that collect every problem before raising.

    f = Fields(body)
    name = f.string("name", max_len=100)
    order = f.integer("displayOrder", required=False)
    f.raise_if_errors()   # ValidationError(422) with [{field, message}, ...]
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .errors import ValidationError

_MISSING = object()


class Fields:
    def __init__(self, body: Mapping[str, Any] | None):
        self.body: Mapping[str, Any] = body or {}
        self.errors: list[dict[str, str]] = []

    def error(self, field: str, message: str) -> None:
        self.errors.append({"field": field, "message": message})

    def present(self, key: str) -> bool:
        return key in self.body

    def string(
        self,
        key: str,
        *,
        required: bool = True,
        min_len: int = 1,
        max_len: int | None = None,
        pattern: str | None = None,
        message: str | None = None,
    ) -> str | None:
        raw = self.body.get(key, _MISSING)
        if raw is _MISSING or raw is None:
            if required:
                self.error(key, f"{key} is required")
            return None
        if not isinstance(raw, str):
            self.error(key, f"{key} must be a string")
            return None
        value = raw.strip()
        if len(value) < min_len:
            self.error(key, message or (f"{key} is required" if min_len == 1 else f"{key} must be at least {min_len} characters"))
            return None
        if max_len is not None and len(value) > max_len:
            self.error(key, message or f"{key} must be at most {max_len} characters")
            return None
        if pattern is not None and not re.fullmatch(pattern, value):
            self.error(key, message or f"{key} has an invalid format")
            return None
        return value

    def integer(
        self, key: str, *, required: bool = True, minimum: int | None = None, maximum: int | None = None
    ) -> int | None:
        raw = self.body.get(key, _MISSING)
        if raw is _MISSING or raw is None or raw == "":
            if required:
                self.error(key, f"{key} is required")
            return None
        value: int | None = None
        if isinstance(raw, bool):
            value = None
        elif isinstance(raw, int):
            value = raw
        elif isinstance(raw, str) and re.fullmatch(r"-?\d+", raw.strip()):
            value = int(raw.strip())
        if value is None:
            self.error(key, f"{key} must be an integer")
            return None
        if minimum is not None and value < minimum:
            self.error(key, f"{key} must be >= {minimum}")
            return None
        if maximum is not None and value > maximum:
            self.error(key, f"{key} must be <= {maximum}")
            return None
        return value

    def boolean(self, key: str) -> bool | None:
        raw = self.body.get(key)
        if raw is None:
            return None
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw.lower() in ("true", "false", "1", "0"):
            return raw.lower() in ("true", "1")
        self.error(key, f"{key} must be a boolean")
        return None

    def choice(self, key: str, options: tuple[str, ...], *, required: bool = True) -> str | None:
        raw = self.body.get(key)
        if raw is None:
            if required:
                self.error(key, f"{key} is required")
            return None
        if raw not in options:
            self.error(key, f"{key} must be one of {', '.join(options)}")
            return None
        return raw

    def raise_if_errors(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)


EMAIL_PATTERN = r"[^@\s]+@[^@\s]+\.[^@\s]+"

__all__ = ["Fields", "EMAIL_PATTERN"]
