"""Risk tiering: collateralization ratio + safety ratio -> RiskState.

Tiers, with ``s`` the collateral type's safety ratio in percent:

    ratio == ∞                  NO_DEBT
    0 < ratio < s               LIQUIDATION
    ratio >= s * 2.2            LOW
    s * 1.5 <= ratio < s * 2.2  MEDIUM
    s <= ratio < s * 1.5        HIGH
    anything else               UNKNOWN

The 2.2 and 1.5 multipliers are policy, carried by :class:`RiskPolicy` and
overridable from config.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum, IntEnum
from typing import Union

from .errors import RiskClassificationError

INFINITE_RATIO = "∞"
SAFEST_MULTIPLIER = Decimal("2.2")
MID_MULTIPLIER = Decimal("1.5")

_INFINITY_TOKENS = frozenset({INFINITE_RATIO, "inf", "infinity", "+inf", "+infinity"})

Ratio = Union[str, int, float, Decimal]


class RiskState(IntEnum):
    """Ordering is for sort stability only; use :data:`SEVERITY` for urgency."""

    UNKNOWN = 0
    NO_DEBT = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    LIQUIDATION = 5


class Status(str, Enum):
    NO_DEBT = "NO_DEBT"
    SAFE = "SAFE"
    OKAY = "OKAY"
    UNSAFE = "UNSAFE"
    DANGER = "DANGER"
    UNKNOWN = "UNKNOWN"


RISK_STATE_TO_STATUS: dict[RiskState, Status] = {
    RiskState.NO_DEBT: Status.NO_DEBT,
    RiskState.LOW: Status.SAFE,
    RiskState.MEDIUM: Status.OKAY,
    RiskState.HIGH: Status.UNSAFE,
    RiskState.LIQUIDATION: Status.DANGER,
    RiskState.UNKNOWN: Status.UNKNOWN,
}

# Higher is more urgent. NO_DEBT and LOW share the bottom rung.
SEVERITY: dict[RiskState, int] = {
    RiskState.UNKNOWN: -1,
    RiskState.NO_DEBT: 0,
    RiskState.LOW: 0,
    RiskState.MEDIUM: 1,
    RiskState.HIGH: 2,
    RiskState.LIQUIDATION: 3,
}

_LABELS: dict[RiskState, str] = {
    RiskState.LOW: "Low",
    RiskState.MEDIUM: "Medium",
    RiskState.HIGH: "High",
    RiskState.LIQUIDATION: "Liquidation",
}


@dataclass(frozen=True)
class RiskPolicy:
    safest_multiplier: Decimal = SAFEST_MULTIPLIER
    mid_multiplier: Decimal = MID_MULTIPLIER

    @classmethod
    def from_config(cls, risk_config) -> RiskPolicy:
        return cls(
            safest_multiplier=Decimal(str(risk_config.safest_multiplier)),
            mid_multiplier=Decimal(str(risk_config.mid_multiplier)),
        )


DEFAULT_POLICY = RiskPolicy()


def _to_decimal(value: Ratio) -> Decimal | None:
    """Parse a ratio; ``Decimal("Infinity")`` for ∞, ``None`` when malformed.

    Non-finite numbers other than +∞ are a caller bug and raise.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in _INFINITY_TOKENS:
            return Decimal("Infinity")
        try:
            parsed = Decimal(text.replace(",", ""))
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    if isinstance(value, float):
        if math.isinf(value) and value > 0:
            return Decimal("Infinity")
        if not math.isfinite(value):
            raise RiskClassificationError(f"Cannot classify non-finite ratio {value!r}")
        return Decimal(repr(value))
    if isinstance(value, Decimal):
        if value.is_infinite() and value > 0:
            return value
        if not value.is_finite():
            raise RiskClassificationError(f"Cannot classify non-finite ratio {value!r}")
        return value
    if isinstance(value, int):
        return Decimal(value)
    raise RiskClassificationError(f"Unsupported ratio type {type(value).__name__}")


def classify(
    collateral_ratio: Ratio,
    safety_c_ratio_percent: Ratio,
    policy: RiskPolicy = DEFAULT_POLICY,
) -> RiskState:
    """Map a collateralization ratio (percent) to a risk tier.

    Examples:
        classify("∞", 120) -> NO_DEBT
        classify("200.00", 120) -> MEDIUM
        classify("110", 120) -> LIQUIDATION
    """
    ratio = _to_decimal(collateral_ratio)
    if ratio is None:
        return RiskState.UNKNOWN
    if ratio.is_infinite():
        return RiskState.NO_DEBT

    try:
        safety = _to_decimal(safety_c_ratio_percent)
    except RiskClassificationError:
        return RiskState.UNKNOWN
    if safety is None or safety.is_infinite() or safety <= 0:
        return RiskState.UNKNOWN
    if ratio <= 0:
        return RiskState.UNKNOWN

    with localcontext() as ctx:
        ctx.prec = 80
        safest = safety * policy.safest_multiplier
        mid = safety * policy.mid_multiplier

    if ratio < safety:
        return RiskState.LIQUIDATION
    if ratio >= safest:
        return RiskState.LOW
    if ratio >= mid:
        return RiskState.MEDIUM
    return RiskState.HIGH


def classify_with_fraction(
    collateral_ratio: Ratio,
    safety_c_ratio: Ratio,
    policy: RiskPolicy = DEFAULT_POLICY,
) -> RiskState:
    """Same as :func:`classify` with the safety ratio given as a fraction (1.2 = 120%)."""
    try:
        safety = _to_decimal(safety_c_ratio)
    except RiskClassificationError:
        return RiskState.UNKNOWN
    if safety is None or safety.is_infinite():
        return RiskState.UNKNOWN
    return classify(collateral_ratio, safety * 100, policy)


def risk_state_to_status(state: RiskState) -> Status:
    return RISK_STATE_TO_STATUS[state]


def risk_state_label(state: RiskState) -> str:
    return _LABELS.get(state, "")
