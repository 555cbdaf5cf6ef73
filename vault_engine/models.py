"""Data models: all frozen (immutable).

Amounts are scaled integers: WAD for token amounts and debt, RAY for prices,
rates and ratios, RAD for the debt floor. Human decimal strings only exist at
the parser boundary and in formatted output.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from .fixed_point import RAY
from .formatters import format_amount, format_price
from .risk import RiskState, Status


class VaultSource(str, Enum):
    """Where a vault record came from."""

    CONTRACT = "contract"
    INDEXER = "indexer"
    LOCAL = "local"


class StatSource(str, Enum):
    """Which tier of a fallback chain produced a summary statistic."""

    CONTRACT = "contract"
    INDEXER = "indexer"
    ESTIMATE = "estimate"
    UNAVAILABLE = "unavailable"


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

INVALID_NUMBER = "invalid_number"
NEGATIVE_VALUE = "negative_value"
MISSING_FIELD = "missing_field"
MISSING_COLLATERAL_PARAMS = "missing_collateral_params"
SOURCE_UNAVAILABLE = "source_unavailable"
FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal problem found while processing an input snapshot."""

    code: str
    message: str
    vault_id: Optional[str] = None
    field: Optional[str] = None
    source: Optional[str] = None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollateralTypeParams:
    """Risk and pricing parameters of one collateral type."""

    id: str
    accumulated_rate: int = RAY
    safety_price: int = 0
    liquidation_price: int = 0
    safety_c_ratio: int = 0
    liquidation_c_ratio: int = 0
    debt_floor: int = 0  # RAD
    debt_ceiling: int = 0
    current_price: int = 0
    liquidation_penalty: int = 0
    annualized_stability_fee: int = 0
    total_collateral_locked: Optional[int] = None
    debt_amount: Optional[int] = None


@dataclass(frozen=True)
class VaultRecord:
    """One vault as reported by a single source, before any derivation."""

    id: str
    collateral_type: str
    collateral: int
    debt: int
    owner: str = ""
    handler: str = ""
    free_collateral: int = 0
    created_at: Optional[int] = None
    modified_at: Optional[int] = None
    source: VaultSource = VaultSource.INDEXER


ACTIVITY_MODIFY = "modify"
ACTIVITY_CONFISCATE = "confiscate"


@dataclass(frozen=True)
class VaultActivity:
    """One collateral/debt change of a vault. Deltas are signed WAD."""

    id: str
    kind: str
    delta_collateral: int
    delta_debt: int
    created_at: Optional[int] = None


@dataclass(frozen=True)
class SystemReading:
    """System-wide figures reported by one source. ``None`` means not reported."""

    source: StatSource
    global_debt: Optional[int] = None
    global_debt_ceiling: Optional[int] = None
    erc20_supply: Optional[int] = None
    redemption_price: Optional[int] = None
    redemption_rate: Optional[int] = None  # per-second, RAY
    annualized_redemption_rate: Optional[int] = None  # RAY, 1.0 means 0%
    system_surplus: Optional[int] = None
    debt_available_to_settle: Optional[int] = None
    active_vault_count: Optional[int] = None


# ---------------------------------------------------------------------------
# Derived
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VaultMetrics:
    total_debt: int
    collateral_ratio: str
    liquidation_price: int
    available_debt: int
    # Percent at RAY precision; None for the "∞" and "N/A" sentinels.
    collateral_ratio_ray: Optional[int] = None


@dataclass(frozen=True)
class Vault:
    """A fully derived vault handed to presentation layers."""

    record: VaultRecord
    collateral_name: str
    metrics: VaultMetrics
    risk_state: RiskState
    status: Status
    params: Optional[CollateralTypeParams] = None

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def collateral_ratio(self) -> str:
        return self.metrics.collateral_ratio

    @property
    def total_debt(self) -> int:
        return self.metrics.total_debt

    @property
    def liquidation_price(self) -> int:
        return self.metrics.liquidation_price

    @property
    def available_debt(self) -> int:
        return self.metrics.available_debt

    def summary(self, amount_decimals: int = 4, price_decimals: int = 4) -> dict[str, str]:
        """Display strings for every derived field."""
        return {
            "id": self.record.id,
            "collateral": f"{format_amount(self.record.collateral, amount_decimals)} {self.collateral_name}",
            "debt": format_amount(self.record.debt, amount_decimals),
            "total_debt": format_amount(self.metrics.total_debt, amount_decimals),
            "collateral_ratio": self.metrics.collateral_ratio,
            "liquidation_price": format_price(self.metrics.liquidation_price, price_decimals),
            "available_debt": format_amount(self.metrics.available_debt, amount_decimals),
            "risk_state": self.risk_state.name,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class SummaryValue:
    """One summary statistic: exact value, display string and provenance."""

    raw: Optional[Decimal]
    formatted: str
    source: StatSource

    @property
    def available(self) -> bool:
        return self.source is not StatSource.UNAVAILABLE


@dataclass(frozen=True)
class CollateralStat:
    """Aggregate figures for one non-deprecated collateral type."""

    collateral_type: str
    symbol: str
    locked_amount: SummaryValue
    locked_value: SummaryValue
    debt_amount: SummaryValue
    debt_value: SummaryValue
    ratio: SummaryValue
    ceiling_percent: SummaryValue


@dataclass(frozen=True)
class SystemSnapshot:
    total_collateral_locked: SummaryValue
    total_debt: SummaryValue
    global_c_ratio: SummaryValue
    active_vault_count: SummaryValue
    erc20_supply: SummaryValue
    system_surplus: SummaryValue
    debt_available_to_settle: SummaryValue
    redemption_price: SummaryValue
    redemption_rate: SummaryValue
    global_debt_ceiling: SummaryValue
    global_debt_utilization: SummaryValue
    collateral_stats: dict[str, CollateralStat] = field(default_factory=dict)
