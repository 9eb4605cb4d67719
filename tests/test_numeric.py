import pytest
from hypothesis import given
from hypothesis import strategies as st

from api3_mcp.errors import FormatError
from api3_mcp.numeric import (
    DecimalValue,
    compound_bps,
    format_thousands,
    parse_decimals,
    percentage_change,
    to_decimal_string,
    to_decimal_value,
    to_padded_decimal_string,
    to_raw_integer,
)


@given(st.integers(min_value=-(2**255), max_value=2**256 - 1), st.integers(min_value=0, max_value=36))
def test_decimal_string_round_trip(raw: int, decimals: int):
    assert to_raw_integer(to_decimal_string(raw, decimals), decimals) == raw


@given(st.integers(min_value=0, max_value=2**256 - 1), st.integers(min_value=1, max_value=36))
def test_padded_string_keeps_every_digit(raw: int, decimals: int):
    text = to_padded_decimal_string(raw, decimals)
    assert len(text.split(".")[1]) == decimals
    assert to_raw_integer(text, decimals) == raw


@pytest.mark.parametrize(
    "raw, decimals, expected",
    [
        (10**18, 18, "1"),
        (5 * 10**17, 18, "0.5"),
        (0, 18, "0"),
        (1, 18, "0.000000000000000001"),
        (-15 * 10**17, 18, "-1.5"),
        (123456, 0, "123456"),
        ("0x0de0b6b3a7640000", 18, "1"),
    ],
)
def test_to_decimal_string(raw, decimals, expected):
    assert to_decimal_string(raw, decimals) == expected


def test_padded_variant():
    assert to_padded_decimal_string(5 * 10**17, 18) == "0." + "5" + "0" * 17
    assert to_padded_decimal_string(1234, 2) == "12.34"
    assert to_padded_decimal_string(0, 0) == "0"


def test_extra_fraction_digits_are_truncated():
    assert to_raw_integer("1.23456", 2) == 123
    assert to_raw_integer("-0.999", 2) == -99


@pytest.mark.parametrize("text", ["", "abc", "1.2.3", "1e18", "--1", "."])
def test_malformed_decimal_rejected(text):
    with pytest.raises(FormatError):
        to_decimal_value(text, 18)


def test_negative_decimals_rejected():
    with pytest.raises(FormatError):
        to_decimal_string(1, -1)
    with pytest.raises(FormatError):
        to_raw_integer("1", -3)


def test_negative_zero_prints_without_sign():
    assert str(DecimalValue(0, "000", negative=True)) == "0"
    assert to_raw_integer("-0.0", 18) == 0


def test_parse_decimals():
    assert parse_decimals(None) == 18
    assert parse_decimals("6") == 6
    assert parse_decimals(8) == 8
    with pytest.raises(FormatError):
        parse_decimals("six")
    with pytest.raises(FormatError):
        parse_decimals(True)


def test_format_thousands():
    assert format_thousands("1234567.5") == "1,234,567.5"
    assert format_thousands("-1000") == "-1,000"


@pytest.mark.parametrize(
    "old, new, expected",
    [
        (100, 110, "10.00"),
        (100, 90, "-10.00"),
        (3, 4, "33.33"),
        (3, 2, "-33.33"),
        (0, 5, "0"),
    ],
)
def test_percentage_change(old, new, expected):
    assert percentage_change(old, new) == expected


def test_compound_bps_daily():
    assert compound_bps(0) == 0
    assert compound_bps(1250) == 1331
    assert to_padded_decimal_string(compound_bps(1250), 2) == "13.31"


@given(st.integers(min_value=0, max_value=10**6))
def test_compound_bps_never_below_simple_rate(rate):
    assert compound_bps(rate) >= rate
    assert compound_bps(rate) <= compound_bps(rate + 1)


def test_compound_bps_rejects_bad_input():
    with pytest.raises(FormatError):
        compound_bps(-1)
    with pytest.raises(FormatError):
        compound_bps(100, periods=0)
