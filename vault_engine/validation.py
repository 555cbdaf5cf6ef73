"""Checks for a proposed vault edit (deposit/borrow, withdraw/repay, create).

Everything is passed in: the current vault, balances, ceilings and params. The
first violated rule is reported, in this order:

    1. amount checks for the action (zero amount, balances, owed debt)
    2. debt floor
    3. safety collateralization ratio
    4. global debt ceiling
    5. per-vault debt ceiling (exceeded)
    6. create-only checks (no collateral, minimum mint), otherwise
       per-vault debt ceiling (reached)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .fixed_point import RAY, WAD, to_decimal
from .metrics import classify_metrics, compute_vault_metrics, safety_c_ratio_percent, vault_is_safe
from .models import CollateralTypeParams, VaultMetrics, VaultRecord
from .risk import DEFAULT_POLICY, RiskPolicy, RiskState

logger = logging.getLogger(__name__)


class VaultAction(Enum):
    DEPOSIT_BORROW = "deposit_borrow"
    WITHDRAW_REPAY = "withdraw_repay"
    CREATE = "create"
    INFO = "info"


class VaultInfoError(Enum):
    ZERO_AMOUNT = "zero_amount"
    INSUFFICIENT_COLLATERAL = "insufficient_collateral"
    INSUFFICIENT_COIN = "insufficient_coin"
    WITHDRAW_EXCEEDS_COLLATERAL = "withdraw_exceeds_collateral"
    REPAY_EXCEEDS_OWED = "repay_exceeds_owed"
    DEBT_TOTAL = "debt_total"
    COLLATERAL_RATIO = "collateral_ratio"
    GLOBAL_DEBT_CEILING = "global_debt_ceiling"
    INDIVIDUAL_DEBT_CEILING = "individual_debt_ceiling"
    MINIMUM_MINT = "minimum_mint"


VAULT_INFO_ERRORS: dict[VaultInfoError, str] = {
    VaultInfoError.ZERO_AMOUNT: "Please enter a non-zero amount of collateral and/or {coin}",
    VaultInfoError.INSUFFICIENT_COLLATERAL: "Insufficient collateral balance",
    VaultInfoError.INSUFFICIENT_COIN: "Insufficient {coin} balance",
    VaultInfoError.WITHDRAW_EXCEEDS_COLLATERAL: "Withdraw amount cannot exceed collateral balance",
    VaultInfoError.REPAY_EXCEEDS_OWED: "Repay amount cannot exceed {coin} debt balance",
    VaultInfoError.DEBT_TOTAL: "The minimum amount of debt per vault is {floor} {coin}",
    VaultInfoError.COLLATERAL_RATIO: (
        "Too much debt, which would bring vault below {safety}% collateralization ratio"
    ),
    VaultInfoError.GLOBAL_DEBT_CEILING: "Cannot exceed global debt ceiling",
    VaultInfoError.INDIVIDUAL_DEBT_CEILING: "Individual vault can't have more than {ceiling} {coin} of debt",
    VaultInfoError.MINIMUM_MINT: "You must mint at least 1 {coin} to create a Vault",
}


@dataclass(frozen=True)
class VaultChange:
    """A proposed edit. ``collateral_delta`` is the deposit or withdraw amount,
    ``debt_delta`` the borrow or repay amount in stablecoin (both WAD, >= 0)."""

    action: VaultAction
    collateral_delta: int = 0
    debt_delta: int = 0


@dataclass(frozen=True)
class SimulatedVault:
    collateral: int
    debt: int
    metrics: VaultMetrics
    is_safe: bool
    risk_state: RiskState


@dataclass(frozen=True)
class ValidationIssue:
    error: VaultInfoError
    message: str


def _principal(amount: int, accumulated_rate: int) -> int:
    """Stablecoin amount -> raw principal at the current accumulated rate."""
    if accumulated_rate <= 0:
        return 0
    return amount * RAY // accumulated_rate


def simulate_vault_change(
    current: Optional[VaultRecord],
    change: VaultChange,
    params: CollateralTypeParams,
    redemption_price: int = RAY,
    policy: RiskPolicy = DEFAULT_POLICY,
) -> SimulatedVault:
    """Resulting collateral, principal and metrics after applying ``change``."""
    collateral = current.collateral if current is not None else 0
    debt = current.debt if current is not None else 0
    principal_delta = _principal(change.debt_delta, params.accumulated_rate)

    if change.action in (VaultAction.DEPOSIT_BORROW, VaultAction.CREATE):
        collateral += change.collateral_delta
        debt += principal_delta
    elif change.action is VaultAction.WITHDRAW_REPAY:
        collateral = max(0, collateral - change.collateral_delta)
        debt = max(0, debt - principal_delta)

    metrics = compute_vault_metrics(collateral, debt, params, redemption_price)
    return SimulatedVault(
        collateral=collateral,
        debt=debt,
        metrics=metrics,
        is_safe=vault_is_safe(collateral, metrics.total_debt, params.safety_price),
        risk_state=classify_metrics(metrics, params, policy),
    )


def _issue(error: VaultInfoError, coin: str, **fields: object) -> ValidationIssue:
    message = VAULT_INFO_ERRORS[error].format(coin=coin, **fields)
    logger.debug("Vault change rejected: %s", message)
    return ValidationIssue(error=error, message=message)


def _whole(value: int, scale: str) -> str:
    return str(math.ceil(to_decimal(value, scale)))


def validate_vault_change(
    change: VaultChange,
    simulated: SimulatedVault,
    params: CollateralTypeParams,
    *,
    collateral_available: int,
    debt_available: int,
    coin_balance: int = 0,
    global_debt_ceiling: Optional[int] = None,
    per_vault_debt_ceiling: Optional[int] = None,
    coin_symbol: str = "HAI",
) -> Optional[ValidationIssue]:
    """First rule the change violates, or None.

    ``collateral_available`` is the wallet balance for deposits and the locked
    collateral for withdrawals; ``debt_available`` is the borrowable amount for
    borrows and the owed amount for repayments.
    """
    left, right = change.collateral_delta, change.debt_delta
    coin = coin_symbol

    if change.action is VaultAction.DEPOSIT_BORROW:
        if left == 0 and right == 0:
            return _issue(VaultInfoError.ZERO_AMOUNT, coin)
        if left > collateral_available:
            return _issue(VaultInfoError.INSUFFICIENT_COLLATERAL, coin)
        if right > debt_available:
            return _issue(VaultInfoError.INSUFFICIENT_COIN, coin)
    elif change.action is VaultAction.WITHDRAW_REPAY:
        if left == 0 and right == 0:
            return _issue(VaultInfoError.ZERO_AMOUNT, coin)
        if left > collateral_available:
            return _issue(VaultInfoError.WITHDRAW_EXCEEDS_COLLATERAL, coin)
        if right > debt_available:
            return _issue(VaultInfoError.REPAY_EXCEEDS_OWED, coin)
        if right > 0 and right > coin_balance:
            return _issue(VaultInfoError.INSUFFICIENT_COIN, coin)

    total = simulated.metrics.total_debt
    # Debt floor is RAD; compare at RAD scale.
    if params.debt_floor and total > 0 and total * RAY < params.debt_floor:
        return _issue(VaultInfoError.DEBT_TOTAL, coin, floor=_whole(params.debt_floor, "RAD"))

    if not simulated.is_safe:
        safety = safety_c_ratio_percent(params)
        return _issue(VaultInfoError.COLLATERAL_RATIO, coin, safety=f"{safety.normalize():f}")

    if global_debt_ceiling is not None and total > global_debt_ceiling:
        return _issue(VaultInfoError.GLOBAL_DEBT_CEILING, coin)

    if per_vault_debt_ceiling is not None and total > per_vault_debt_ceiling:
        return _issue(
            VaultInfoError.INDIVIDUAL_DEBT_CEILING, coin, ceiling=_whole(per_vault_debt_ceiling, "WAD"),
        )

    if change.action is VaultAction.CREATE:
        if left == 0:
            return _issue(VaultInfoError.ZERO_AMOUNT, coin)
        if 0 < right < WAD:
            return _issue(VaultInfoError.MINIMUM_MINT, coin)
    elif per_vault_debt_ceiling and total >= per_vault_debt_ceiling:
        return _issue(
            VaultInfoError.INDIVIDUAL_DEBT_CEILING, coin, ceiling=_whole(per_vault_debt_ceiling, "WAD"),
        )

    return None
