"""
Fixed-point conversions between on-chain integers and decimal strings.

All arithmetic is done on Python ints; no float or Decimal rounding is
involved in either direction.
"""

import re
from dataclasses import dataclass
from typing import Any, Union

from .errors import FormatError

DEFAULT_DECIMALS = 18

_DECIMAL_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")

IntLike = Union[int, str]


def _as_int(value: IntLike, field: str = "value") -> int:
    if isinstance(value, bool):
        raise FormatError(f"{field} must be an integer.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        candidate = value.strip()
        if re.fullmatch(r"[+-]?\d+", candidate):
            return int(candidate, 10)
        if re.fullmatch(r"0x[0-9a-fA-F]+", candidate):
            return int(candidate, 16)
    raise FormatError(f"{field} must be an integer.")


def _check_decimals(decimals: int) -> int:
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise FormatError("decimals must be a non-negative integer.")
    return decimals


@dataclass(frozen=True)
class DecimalValue:
    """A fixed-point quantity: signed integer part plus exactly ``decimals`` digits."""

    integer_part: int
    fractional_digits: str
    negative: bool = False

    @property
    def decimals(self) -> int:
        return len(self.fractional_digits)

    @classmethod
    def from_raw(cls, raw: IntLike, decimals: int) -> "DecimalValue":
        value = _as_int(raw)
        scale = 10 ** _check_decimals(decimals)
        whole, frac = divmod(abs(value), scale)
        digits = str(frac).rjust(decimals, "0") if decimals else ""
        return cls(integer_part=whole, fractional_digits=digits, negative=value < 0)

    def to_raw(self) -> int:
        magnitude = int(f"{self.integer_part}{self.fractional_digits}")
        return -magnitude if self.negative else magnitude

    def padded(self) -> str:
        sign = "-" if self.negative else ""
        if not self.fractional_digits:
            return f"{sign}{self.integer_part}"
        return f"{sign}{self.integer_part}.{self.fractional_digits}"

    def __str__(self) -> str:
        trimmed = self.fractional_digits.rstrip("0")
        sign = "-" if self.negative and (self.integer_part or trimmed) else ""
        if not trimmed:
            return f"{sign}{self.integer_part}"
        return f"{sign}{self.integer_part}.{trimmed}"


def to_decimal_string(raw: IntLike, decimals: int = DEFAULT_DECIMALS) -> str:
    """Format ``raw`` scaled down by ``10**decimals``, trimming trailing zeros."""
    return str(DecimalValue.from_raw(raw, decimals))


def to_padded_decimal_string(raw: IntLike, decimals: int = DEFAULT_DECIMALS) -> str:
    """Like :func:`to_decimal_string` but keeps all ``decimals`` fractional digits."""
    return DecimalValue.from_raw(raw, decimals).padded()


def to_decimal_value(text: str, decimals: int = DEFAULT_DECIMALS) -> DecimalValue:
    """Parse a decimal string; fractional digits beyond ``decimals`` are dropped."""
    _check_decimals(decimals)
    if not isinstance(text, str):
        text = str(text)
    candidate = text.strip()
    if not _DECIMAL_RE.fullmatch(candidate):
        raise FormatError(f"'{text}' is not a decimal number.")

    negative = candidate.startswith("-")
    if candidate[0] in "+-":
        candidate = candidate[1:]
    whole, _, frac = candidate.partition(".")
    digits = frac.ljust(decimals, "0")[:decimals]
    return DecimalValue(integer_part=int(whole or "0"), fractional_digits=digits, negative=negative)


def to_raw_integer(text: str, decimals: int = DEFAULT_DECIMALS) -> int:
    """Inverse of :func:`to_decimal_string`."""
    return to_decimal_value(text, decimals).to_raw()


def parse_decimals(value: Any, default: int = DEFAULT_DECIMALS) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise FormatError("decimals must be a non-negative integer.")
    if isinstance(value, int):
        ivalue = value
    elif isinstance(value, str) and value.strip().lstrip("+").isdecimal():
        ivalue = int(value.strip())
    else:
        raise FormatError("decimals must be a non-negative integer.")
    return _check_decimals(ivalue)


def format_thousands(text: str) -> str:
    negative = text.startswith("-")
    body = text[1:] if negative else text
    if "." in body:
        whole, frac = body.split(".", 1)
        formatted = f"{int(whole or 0):,}.{frac}"
    else:
        formatted = f"{int(body or 0):,}"
    return f"-{formatted}" if negative else formatted


def percentage_change(old: IntLike, new: IntLike) -> str:
    """Percent change with two decimals, computed in basis points."""
    old_value = _as_int(old, "old")
    new_value = _as_int(new, "new")
    if old_value == 0:
        return "0"
    diff = (new_value - old_value) * 10000
    # truncate toward zero
    bps = abs(diff) // abs(old_value)
    if (diff < 0) != (old_value < 0):
        bps = -bps
    return to_padded_decimal_string(bps, 2)


def compound_bps(rate_bps: IntLike, periods: int = 365, precision: int = 18) -> int:
    """
    Effective rate, in basis points, of a yearly ``rate_bps`` compounded
    ``periods`` times. Each step is truncated at ``precision`` digits.
    """
    rate = _as_int(rate_bps, "rate")
    if rate < 0:
        raise FormatError("rate must be non-negative.")
    if isinstance(periods, bool) or not isinstance(periods, int) or periods <= 0:
        raise FormatError("periods must be a positive integer.")
    scale = 10**precision
    step = scale + rate * scale // (10000 * periods)
    acc = scale
    for _ in range(periods):
        acc = acc * step // scale
    return (acc - scale) * 10000 // scale
