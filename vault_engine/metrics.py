"""Vault metrics: pure integer formulas, no I/O.

Units:
    collateral, debt, total debt, available debt   WAD
    prices, rates, c-ratios                        RAY
    collateral ratio                               percent, RAY precision

Every division is guarded; a zero divisor yields a sentinel, never an
exception or a non-finite value.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from .cache import MetricsCache
from .errors import MissingCollateralParams
from .fixed_point import RAY, scaled_multiply, to_decimal
from .formatters import format_ratio
from .models import (
    MISSING_COLLATERAL_PARAMS,
    CollateralTypeParams,
    Diagnostic,
    Vault,
    VaultMetrics,
    VaultRecord,
)
from .parser import collateral_symbol
from .risk import (
    DEFAULT_POLICY,
    INFINITE_RATIO,
    RiskPolicy,
    RiskState,
    classify,
    risk_state_to_status,
)

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
ZERO_RATIO = "0"


# ---------------------------------------------------------------------------
# Core formulas
# ---------------------------------------------------------------------------


def total_debt(debt: int, accumulated_rate: int) -> int:
    """Principal times accumulated rate, rebased to WAD."""
    return scaled_multiply(debt, accumulated_rate, "RAY")


def collateral_ratio_ray(
    collateral: int,
    total_debt_wad: int,
    liquidation_price: int,
    liquidation_c_ratio: int,
) -> Optional[int]:
    """``collateral * liquidationPrice * liquidationCRatio / totalDebt * 100`` at RAY precision.

    Returns None when total debt is zero.
    """
    if total_debt_wad <= 0:
        return None
    numerator = collateral * liquidation_price * liquidation_c_ratio * 100
    return numerator // (total_debt_wad * RAY)


def collateral_ratio(
    collateral: int,
    debt: int,
    total_debt_wad: int,
    liquidation_price: int,
    liquidation_c_ratio: int,
    decimals: int = 2,
) -> str:
    """Collateralization ratio as a percent string.

    ``"∞"`` when there is no debt, ``"0"`` when there is debt but no collateral,
    ``"N/A"`` when debt exists but its total could not be computed.
    """
    if debt == 0:
        return INFINITE_RATIO
    if total_debt_wad <= 0:
        return NOT_AVAILABLE
    if collateral == 0:
        return ZERO_RATIO
    ratio = collateral_ratio_ray(collateral, total_debt_wad, liquidation_price, liquidation_c_ratio)
    return format_ratio(ratio, decimals)


def liquidation_price(
    collateral: int,
    total_debt_wad: int,
    liquidation_c_ratio: int,
    redemption_price: int,
) -> int:
    """Collateral price (RAY) at which the vault becomes liquidatable."""
    if collateral == 0 or total_debt_wad == 0:
        return 0
    return total_debt_wad * liquidation_c_ratio * redemption_price // (collateral * RAY)


def available_debt(
    collateral: int,
    debt: int,
    safety_price: int,
    accumulated_rate: int,
    added_collateral: int = 0,
) -> int:
    """Additional debt (WAD) that can be drawn; never negative.

    ``added_collateral`` is a pending deposit counted on top of the locked amount.
    """
    if safety_price <= 0 or accumulated_rate <= 0:
        return 0
    max_debt = (collateral + added_collateral) * safety_price // RAY
    owed = debt * accumulated_rate // RAY
    return max(0, max_debt - owed)


def interest_owed(debt: int, accumulated_rate: int) -> int:
    """Stability fees accrued on top of the principal."""
    return scaled_multiply(debt, accumulated_rate - RAY, "RAY")


def minimum_allowable_collateral(total_debt_wad: int, liquidation_price: int) -> Optional[int]:
    """Smallest collateral amount (WAD) that keeps the debt above liquidation.

    0 without debt, None (display "N/A") when the liquidation price is zero.
    """
    if total_debt_wad == 0:
        return 0
    if liquidation_price <= 0:
        return None
    return total_debt_wad * RAY // liquidation_price


def vault_is_safe(collateral: int, total_debt_wad: int, safety_price: int) -> bool:
    return total_debt_wad <= collateral * safety_price // RAY


def max_debt_with_interest(safety_price: int, collateral: int, accumulated_rate: int) -> int:
    return collateral * safety_price * accumulated_rate // RAY // RAY


# ---------------------------------------------------------------------------
# Vault valuation
# ---------------------------------------------------------------------------


def compute_vault_metrics(
    collateral: int,
    debt: int,
    params: CollateralTypeParams,
    redemption_price: int,
    ratio_decimals: int = 2,
) -> VaultMetrics:
    owed = total_debt(debt, params.accumulated_rate)
    ratio_text = collateral_ratio(
        collateral, debt, owed, params.liquidation_price, params.liquidation_c_ratio, ratio_decimals,
    )
    exact = None
    if ratio_text not in (INFINITE_RATIO, NOT_AVAILABLE):
        exact = collateral_ratio_ray(collateral, owed, params.liquidation_price, params.liquidation_c_ratio)
    return VaultMetrics(
        total_debt=owed,
        collateral_ratio=ratio_text,
        liquidation_price=liquidation_price(
            collateral, owed, params.liquidation_c_ratio, redemption_price,
        ),
        available_debt=available_debt(
            collateral, debt, params.safety_price, params.accumulated_rate,
        ),
        collateral_ratio_ray=exact,
    )


def safety_c_ratio_percent(params: CollateralTypeParams) -> Decimal:
    """Safety c-ratio as an exact Decimal percent (1.2 RAY -> 120)."""
    return to_decimal(params.safety_c_ratio, "RAY") * 100


def classify_metrics(
    metrics: VaultMetrics,
    params: CollateralTypeParams,
    policy: RiskPolicy = DEFAULT_POLICY,
) -> RiskState:
    """Classify on the exact ratio, not the rounded display string."""
    if metrics.collateral_ratio_ray is None:
        return classify(metrics.collateral_ratio, safety_c_ratio_percent(params), policy)
    return classify(
        to_decimal(metrics.collateral_ratio_ray, "RAY"), safety_c_ratio_percent(params), policy,
    )


def value_vault(
    record: VaultRecord,
    params_map: Mapping[str, CollateralTypeParams],
    redemption_price: int = RAY,
    *,
    policy: RiskPolicy = DEFAULT_POLICY,
    aliases: Optional[Mapping[str, str]] = None,
    ratio_decimals: int = 2,
    diagnostics: Optional[list[Diagnostic]] = None,
) -> Vault:
    """Derive metrics and risk for one vault.

    A vault whose collateral type has no params is kept with UNKNOWN risk and
    zeroed metrics (or NO_DEBT / "∞" when it carries no debt).
    """
    name = collateral_symbol(record.collateral_type, aliases)
    params = params_map.get(record.collateral_type)

    if params is None:
        message = str(MissingCollateralParams(record.collateral_type))
        logger.warning("Vault %s: %s", record.id, message)
        if diagnostics is not None:
            diagnostics.append(
                Diagnostic(
                    code=MISSING_COLLATERAL_PARAMS,
                    message=message,
                    vault_id=record.id,
                    field="collateralType",
                    source=record.source.value,
                )
            )
        if record.debt == 0:
            state = RiskState.NO_DEBT
            ratio_text = INFINITE_RATIO
        else:
            state = RiskState.UNKNOWN
            ratio_text = NOT_AVAILABLE
        return Vault(
            record=record,
            collateral_name=name,
            metrics=VaultMetrics(
                total_debt=0, collateral_ratio=ratio_text, liquidation_price=0, available_debt=0,
            ),
            risk_state=state,
            status=risk_state_to_status(state),
        )

    metrics = compute_vault_metrics(
        record.collateral, record.debt, params, redemption_price, ratio_decimals,
    )
    state = classify_metrics(metrics, params, policy)
    return Vault(
        record=record,
        collateral_name=name,
        metrics=metrics,
        risk_state=state,
        status=risk_state_to_status(state),
        params=params,
    )


def value_vaults(
    records: Iterable[VaultRecord],
    params_map: Mapping[str, CollateralTypeParams],
    redemption_price: int = RAY,
    *,
    policy: RiskPolicy = DEFAULT_POLICY,
    aliases: Optional[Mapping[str, str]] = None,
    ratio_decimals: int = 2,
    diagnostics: Optional[list[Diagnostic]] = None,
    cache: Optional[MetricsCache] = None,
) -> list[Vault]:
    """Value every record, reusing cached results when the inputs are unchanged."""
    if cache is not None:
        cache.sync(params_map, redemption_price, policy, ratio_decimals, aliases)

    vaults: list[Vault] = []
    for record in records:
        cached = cache.get(record) if cache is not None else None
        if cached is not None and cached.params is not None:
            vaults.append(cached)
            continue
        vault = value_vault(
            record,
            params_map,
            redemption_price,
            policy=policy,
            aliases=aliases,
            ratio_decimals=ratio_decimals,
            diagnostics=diagnostics,
        )
        if cache is not None:
            cache.put(vault)
        vaults.append(vault)
    if cache is not None:
        cache.retain(v.id for v in vaults)
    return vaults
