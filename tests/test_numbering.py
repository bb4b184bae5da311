from civicdesk.numbering import (
    PREFIX_FALLBACK,
    clamp_padding,
    derive_prefix,
    first_sequence,
    format_request_number,
    sequence_of,
)


def test_configured_prefix_wins_and_is_uppercased():
    assert derive_prefix("Water Tanker", " wt ") == "WT"


def test_prefix_derived_from_label():
    assert derive_prefix("Water Tanker") == "WATERT"
    assert derive_prefix("e-Bill #2") == "EBILL2"


def test_prefix_fallback_when_label_has_no_alnum():
    assert derive_prefix("--- !!") == PREFIX_FALLBACK
    assert derive_prefix(None) == PREFIX_FALLBACK


def test_padding_clamped():
    assert clamp_padding(None) == 4
    assert clamp_padding(0) == 4
    assert clamp_padding(20) == 12
    assert clamp_padding(-3) == 1
    assert clamp_padding(6) == 6


def test_first_sequence_never_below_one():
    assert first_sequence(None) == 1
    assert first_sequence(0) == 1
    assert first_sequence(-5) == 1
    assert first_sequence(17) == 17


def test_format_request_number():
    assert format_request_number("WT", 1, 4) == "WT#0001"
    assert format_request_number("WT", 12345, 4) == "WT#12345"
    assert format_request_number("SRV", 7, 1) == "SRV#7"


def test_sequence_of():
    assert sequence_of("WT#0042") == 42
    assert sequence_of("legacy-17") is None
    assert sequence_of(None) is None
    assert sequence_of("WT#abc") is None
