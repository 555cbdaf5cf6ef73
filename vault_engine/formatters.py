"""Display formatting for scaled integers and summary statistics."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Union

from .fixed_point import to_decimal

UNAVAILABLE = "--"

STYLE_DECIMAL = "decimal"
STYLE_PERCENT = "percent"
STYLE_CURRENCY = "currency"

_PRECISION = 90


def format_decimal(value: Union[Decimal, int, str], decimals: int = 2, *, grouping: bool = True) -> str:
    """Round half-up to ``decimals`` places, with thousands separators.

    Examples:
        format_decimal(Decimal("1234.565")) -> "1,234.57"
        format_decimal(Decimal("199.995"), grouping=False) -> "200.00"
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        quantum = Decimal(1).scaleb(-decimals)
        rounded = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
        if rounded == 0:
            rounded = abs(rounded)
        spec = f",.{decimals}f" if grouping else f".{decimals}f"
        return format(rounded, spec)


def format_amount(value_wad: int, decimals: int = 4) -> str:
    """Format a WAD amount, e.g. ``10500 * WAD`` -> ``"10,500.0000"``."""
    return format_decimal(to_decimal(value_wad, "WAD"), decimals)


def format_price(value_ray: int, decimals: int = 4) -> str:
    return format_decimal(to_decimal(value_ray, "RAY"), decimals)


def format_ratio(ratio_ray: int, decimals: int = 2) -> str:
    """Format a RAY-scaled percentage without grouping or a percent sign."""
    return format_decimal(to_decimal(ratio_ray, "RAY"), decimals, grouping=False)


def format_percent(fraction: Decimal, decimals: int = 2) -> str:
    """Format a fraction as a percentage: ``Decimal("1.5")`` -> ``"150.00%"``."""
    return f"{format_decimal(fraction * 100, decimals)}%"


def format_currency(value: Decimal, decimals: int = 2) -> str:
    text = format_decimal(value, decimals)
    if text.startswith("-"):
        return f"-${text[1:]}"
    return f"${text}"


def unavailable(style: str = STYLE_DECIMAL) -> str:
    """The "unavailable" sentinel for a display style."""
    if style == STYLE_PERCENT:
        return f"{UNAVAILABLE}%"
    if style == STYLE_CURRENCY:
        return f"${UNAVAILABLE}"
    return UNAVAILABLE


def format_summary_value(raw: Decimal | None, style: str = STYLE_DECIMAL, decimals: int = 2) -> str:
    if raw is None:
        return unavailable(style)
    if style == STYLE_PERCENT:
        return format_percent(raw, decimals)
    if style == STYLE_CURRENCY:
        return format_currency(raw, decimals)
    return format_decimal(raw, decimals)
