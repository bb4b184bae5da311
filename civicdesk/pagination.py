from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Generic, TypeVar

from typing_extensions import TypedDict

T = TypeVar("T")

__all__ = [
    "RangeRequest",
    "ListEnvelope",
    "parse_range_params",
    "range_bounds",
    "make_list_response",
    "PaginationError",
    "TOTAL_COUNT_HEADER",
]

# ---- Contracts -----------------------------------------------------------------
# Admin list endpoints page with ``_start`` (inclusive) / ``_end`` (exclusive)
# and report the unpaged total in ``X-Total-Count``.

TOTAL_COUNT_HEADER = "X-Total-Count"


class RangeRequest(TypedDict):
    start: int
    end: int | None


class ListEnvelope(TypedDict, Generic[T]):  # type: ignore[misc]
    data: list[T]
    total: int


class PaginationError(ValueError):
    """Raised when pagination query params are invalid."""


MAX_WINDOW = 500


def _int_param(args: Mapping[str, str | None], name: str) -> int | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise PaginationError(f"invalid {name} parameter") from e
    if value < 0:
        raise PaginationError(f"{name} must be >= 0")
    return value


def parse_range_params(args: Mapping[str, str | None]) -> RangeRequest:
    """Parse ``_start``/``_end`` from a dict-like (e.g. request.args).

    A missing or non-increasing ``_end`` means "no upper bound"; windows wider
    than MAX_WINDOW are capped.
    """
    start = _int_param(args, "_start") or 0
    end = _int_param(args, "_end")
    if end is not None and end <= start:
        end = None
    if end is not None and end - start > MAX_WINDOW:
        end = start + MAX_WINDOW
    return RangeRequest(start=start, end=end)


def range_bounds(rr: RangeRequest) -> tuple[int, int | None]:
    """Return (offset, limit) for a query; limit None means unbounded."""
    if rr["end"] is None:
        return rr["start"], None
    return rr["start"], rr["end"] - rr["start"]


def make_list_response(items: Sequence[T], total: int | None = None) -> ListEnvelope[T]:
    data = list(items)
    return ListEnvelope(data=data, total=len(data) if total is None else total)  # type: ignore[call-arg]
