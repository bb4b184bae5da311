from __future__ import annotations

import pytest

from civicdesk.pagination import MAX_WINDOW, PaginationError, parse_range_params, range_bounds


def test_range_defaults_unbounded():
    rr = parse_range_params({})
    assert rr == {"start": 0, "end": None}
    assert range_bounds(rr) == (0, None)


def test_range_window():
    rr = parse_range_params({"_start": "10", "_end": "25"})
    assert range_bounds(rr) == (10, 15)


def test_range_non_increasing_end_is_ignored():
    assert parse_range_params({"_start": "5", "_end": "5"})["end"] is None


def test_range_caps_window():
    rr = parse_range_params({"_start": "0", "_end": "100000"})
    assert rr["end"] == MAX_WINDOW


@pytest.mark.parametrize("args", [{"_start": "-1"}, {"_end": "x"}, {"_start": "1.5"}])
def test_range_invalid(args):
    with pytest.raises(PaginationError):
        parse_range_params(args)
