"""Request number formatting.

Numbers look like ``PREFIX#0001``. The prefix comes from the option's
configured prefix or, failing that, from its label; the sequence itself is
state on the option row and is advanced by the admission service under a row
lock.
"""
from __future__ import annotations

import re

PREFIX_FALLBACK = "SRV"
PREFIX_DERIVED_LENGTH = 6
DEFAULT_PADDING = 4
MIN_PADDING = 1
MAX_PADDING = 12

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def derive_prefix(label: str | None, configured: str | None = None) -> str:
    explicit = (configured or "").strip().upper()
    if explicit:
        return explicit
    derived = _NON_ALNUM.sub("", (label or "").upper())[:PREFIX_DERIVED_LENGTH]
    return derived or PREFIX_FALLBACK


def clamp_padding(padding: int | None) -> int:
    if not padding:
        return DEFAULT_PADDING
    return max(MIN_PADDING, min(MAX_PADDING, int(padding)))


def first_sequence(next_value: int | None) -> int:
    return max(int(next_value or 1), 1)


def format_request_number(prefix: str, seq: int, padding: int) -> str:
    return f"{prefix}#{seq:0{padding}d}"


def sequence_of(number: str | None) -> int | None:
    """Numeric part of a formatted number, or None for legacy/foreign values."""
    if not number or "#" not in number:
        return None
    tail = number.rsplit("#", 1)[1]
    return int(tail) if tail.isdigit() else None


__all__ = [
    "PREFIX_FALLBACK",
    "DEFAULT_PADDING",
    "derive_prefix",
    "clamp_padding",
    "first_sequence",
    "format_request_number",
    "sequence_of",
]
