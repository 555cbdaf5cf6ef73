"""Fixed-point arithmetic on WAD / RAY / RAD scaled integers.

Scales:
    WAD: 18 decimal places (token amounts, debt)
    RAY: 27 decimal places (prices, rates, collateralization ratios)
    RAD: 45 decimal places (WAD * RAY products, debt floor)

Everything here works on Python ints. Decimal strings are converted digit by
digit so no binary floating point is ever involved. Division truncates toward
zero, which is what the protocol contracts do: a value computed here lands on
the same side of a threshold as the on-chain check.
"""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Union

from .errors import InvalidNumberFormat

WAD = 10**18
RAY = 10**27
RAD = 10**45

SCALE_DIGITS: dict[str, int] = {"WAD": 18, "RAY": 27, "RAD": 45}

Scale = Union[str, int]
Numeric = Union[str, int, Decimal]

_DECIMAL_RE = re.compile(r"^([+-]?)(\d*)(?:\.(\d*))?$")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")


def scale_digits(scale: Scale) -> int:
    """Return the number of decimal places for a named or numeric scale."""
    if isinstance(scale, bool):
        raise ValueError(f"Unknown fixed-point scale: {scale!r}")
    if isinstance(scale, int):
        if scale < 0:
            raise ValueError(f"Scale digits must be non-negative, got {scale}")
        return scale
    try:
        return SCALE_DIGITS[scale.upper()]
    except (KeyError, AttributeError):
        raise ValueError(f"Unknown fixed-point scale: {scale!r}") from None


def scale_factor(scale: Scale) -> int:
    """Return 10 ** digits for the given scale."""
    return 10 ** scale_digits(scale)


def _decimal_text(value: Numeric) -> str:
    if isinstance(value, bool) or value is None:
        raise InvalidNumberFormat(value, "expected a decimal string, int or Decimal")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidNumberFormat(value, "not finite")
        return format(value, "f")
    if isinstance(value, str):
        text = value.strip()
        if "e" in text or "E" in text:
            # Exponent notation, e.g. "1E-7" from an indexer BigDecimal.
            try:
                parsed = Decimal(text)
            except ArithmeticError:
                raise InvalidNumberFormat(value) from None
            if not parsed.is_finite():
                raise InvalidNumberFormat(value, "not finite")
            return format(parsed, "f")
        return text
    raise InvalidNumberFormat(value, f"unsupported type {type(value).__name__}")


def to_fixed_int(value: Numeric, scale: Scale) -> int:
    """Convert a human decimal value into a scaled integer.

    Digits beyond the scale's precision are dropped (truncation toward zero),
    matching integer truncation on-chain.

    Examples:
        to_fixed_int("1.05", "RAY") -> 1050000000000000000000000000
        to_fixed_int("0.1234567890123456789", "WAD") -> 123456789012345678
    """
    digits = scale_digits(scale)
    if isinstance(value, int) and not isinstance(value, bool):
        return value * 10**digits

    text = _decimal_text(value)
    match = _DECIMAL_RE.match(text)
    if not match:
        raise InvalidNumberFormat(value)
    sign, whole, frac = match.group(1), match.group(2), match.group(3) or ""
    if not whole and not frac:
        raise InvalidNumberFormat(value)

    frac = frac[:digits].ljust(digits, "0")
    result = int((whole or "0") + frac)
    return -result if sign == "-" else result


def to_fixed_string(value: Numeric, scale: Scale) -> str:
    """String form of :func:`to_fixed_int`."""
    return str(to_fixed_int(value, scale))


def parse_fixed_int(value: str | int) -> int:
    """Parse an already-scaled integer (e.g. a raw contract uint256 string)."""
    if isinstance(value, bool):
        raise InvalidNumberFormat(value, "expected an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    raise InvalidNumberFormat(value, "expected an integer")


def from_fixed_string(value: str | int, scale: Scale) -> str:
    """Render a scaled integer as an exact decimal string.

    Trailing fractional zeros are stripped: ``from_fixed_string(10500 * WAD, "WAD")``
    gives ``"10500"`` and ``from_fixed_string(15 * 10**26, "RAY")`` gives ``"1.5"``.
    """
    digits = scale_digits(scale)
    n = parse_fixed_int(value)
    negative = n < 0
    whole, frac = divmod(abs(n), 10**digits)
    frac_text = str(frac).rjust(digits, "0").rstrip("0") if digits else ""
    text = f"{whole}.{frac_text}" if frac_text else str(whole)
    return f"-{text}" if negative else text


def to_decimal(value: int, scale: Scale) -> Decimal:
    """Exact Decimal for a scaled integer."""
    return Decimal(from_fixed_string(value, scale))


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def scaled_multiply(a: int, b: int, scale: Scale) -> int:
    """Multiply two scaled integers and divide out ``scale``.

    ``scaled_multiply(debt_wad, rate_ray, "RAY")`` yields a WAD.
    """
    return _trunc_div(a * b, scale_factor(scale))


def scaled_divide(a: int, b: int, scale: Scale) -> int:
    """Divide two scaled integers, multiplying ``a`` by ``scale`` first.

    Raises ZeroDivisionError when ``b`` is zero; callers check the divisor and
    substitute their own sentinel before getting here.
    """
    if b == 0:
        raise ZeroDivisionError("scaled_divide by zero")
    return _trunc_div(a * scale_factor(scale), b)


def rebase(value: int, from_scale: Scale, to_scale: Scale) -> int:
    """Move a scaled integer to another scale, truncating lost digits."""
    src, dst = scale_digits(from_scale), scale_digits(to_scale)
    if dst >= src:
        return value * 10 ** (dst - src)
    return _trunc_div(value, 10 ** (src - dst))
