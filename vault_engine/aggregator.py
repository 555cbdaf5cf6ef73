"""System-wide summary statistics with per-statistic fallback chains.

Each statistic resolves independently through

    contract reading -> indexer reading -> estimate from known vaults -> "--"

skipping tiers that do not apply to it. Deprecated collateral types are
removed from params and vaults before anything is folded.
"""
from __future__ import annotations

import logging
from decimal import Decimal, localcontext
from typing import Iterable, Mapping, Optional, Sequence

from .fixed_point import RAY, to_decimal
from .formatters import STYLE_CURRENCY, STYLE_DECIMAL, STYLE_PERCENT, format_summary_value
from .models import (
    SOURCE_UNAVAILABLE,
    CollateralStat,
    CollateralTypeParams,
    Diagnostic,
    StatSource,
    SummaryValue,
    SystemReading,
    SystemSnapshot,
    Vault,
)
from .parser import collateral_symbol

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Higher is weaker; a statistic combined from several inputs takes the weakest source.
_SOURCE_RANK = {
    StatSource.CONTRACT: 0,
    StatSource.INDEXER: 1,
    StatSource.ESTIMATE: 2,
    StatSource.UNAVAILABLE: 3,
}

_PRECISION = 90


def _weakest(*sources: StatSource) -> StatSource:
    return max(sources, key=_SOURCE_RANK.__getitem__)


def _value(raw: Optional[Decimal], source: StatSource, style: str = STYLE_DECIMAL, decimals: int = 2) -> SummaryValue:
    if raw is None or source is StatSource.UNAVAILABLE:
        return SummaryValue(raw=None, formatted=format_summary_value(None, style), source=StatSource.UNAVAILABLE)
    return SummaryValue(raw=raw, formatted=format_summary_value(raw, style, decimals), source=source)


def _unavailable(style: str = STYLE_DECIMAL) -> SummaryValue:
    return _value(None, StatSource.UNAVAILABLE, style)


def _fraction(numerator: int, denominator: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(numerator) / Decimal(denominator)


def _pick(
    readings: Sequence[Optional[SystemReading]],
    attr: str,
) -> tuple[Optional[int], StatSource]:
    """First reported value of ``attr`` across readings in priority order."""
    for reading in readings:
        if reading is None:
            continue
        value = getattr(reading, attr)
        if value is not None:
            return value, reading.source
    return None, StatSource.UNAVAILABLE


def resolve_redemption_price(
    contract: Optional[SystemReading] = None,
    indexer: Optional[SystemReading] = None,
) -> tuple[int, StatSource]:
    """Redemption price (RAY) for computation; RAY (1.0) when no source reports one."""
    value, source = _pick((contract, indexer), "redemption_price")
    if value is None or value <= 0:
        return RAY, StatSource.UNAVAILABLE
    return value, source


def annualize_redemption_rate(per_second_rate: int) -> Decimal:
    """Compound a per-second RAY rate over a 365-day year; returns the yearly
    change as a fraction (0.05 = +5%)."""
    with localcontext() as ctx:
        ctx.prec = 60
        per_second = to_decimal(per_second_rate, "RAY")
        return per_second ** SECONDS_PER_YEAR - 1


def _active(
    params_map: Mapping[str, CollateralTypeParams],
    vaults: Iterable[Vault],
    deprecated: Iterable[str],
) -> tuple[dict[str, CollateralTypeParams], list[Vault]]:
    excluded = {d.upper() for d in deprecated}
    active_params = {cid: p for cid, p in params_map.items() if cid.upper() not in excluded}
    active_vaults = [v for v in vaults if v.record.collateral_type.upper() not in excluded]
    return active_params, active_vaults


def _locked(params: CollateralTypeParams, vaults: list[Vault]) -> tuple[int, StatSource]:
    """Locked amount (WAD) of one collateral type: indexer total, else vault sum."""
    if params.total_collateral_locked is not None:
        return params.total_collateral_locked, StatSource.INDEXER
    return sum(v.record.collateral for v in vaults), StatSource.ESTIMATE


def _collateral_stat(
    params: CollateralTypeParams,
    vaults: list[Vault],
    redemption_price: int,
    aliases: Optional[Mapping[str, str]],
) -> CollateralStat:
    locked, locked_source = _locked(params, vaults)
    if params.debt_amount is not None:
        debt, debt_source = params.debt_amount, StatSource.INDEXER
    else:
        debt, debt_source = sum(v.metrics.total_debt for v in vaults), StatSource.ESTIMATE

    locked_value = locked * params.current_price // RAY
    debt_value = debt * redemption_price // RAY
    combined = _weakest(locked_source, debt_source)

    if debt_value > 0:
        ratio = _value(_fraction(locked_value, debt_value), combined, STYLE_PERCENT)
    else:
        ratio = _value(Decimal(0), combined, STYLE_PERCENT)
    if params.debt_ceiling > 0:
        ceiling = _value(_fraction(debt, params.debt_ceiling), debt_source, STYLE_PERCENT)
    else:
        ceiling = _unavailable(STYLE_PERCENT)

    return CollateralStat(
        collateral_type=params.id,
        symbol=collateral_symbol(params.id, aliases),
        locked_amount=_value(to_decimal(locked, "WAD"), locked_source, decimals=4),
        locked_value=_value(to_decimal(locked_value, "WAD"), locked_source, STYLE_CURRENCY),
        debt_amount=_value(to_decimal(debt, "WAD"), debt_source, decimals=4),
        debt_value=_value(to_decimal(debt_value, "WAD"), debt_source, STYLE_CURRENCY),
        ratio=ratio,
        ceiling_percent=ceiling,
    )


def aggregate_system(
    params_map: Mapping[str, CollateralTypeParams],
    *,
    contract: Optional[SystemReading] = None,
    indexer: Optional[SystemReading] = None,
    vaults: Optional[Iterable[Vault]] = None,
    deprecated: Iterable[str] = (),
    aliases: Optional[Mapping[str, str]] = None,
    diagnostics: Optional[list[Diagnostic]] = None,
    price_decimals: int = 4,
) -> SystemSnapshot:
    """Fold params, system readings and valued vaults into a :class:`SystemSnapshot`."""
    active_params, active_vaults = _active(params_map, vaults or (), deprecated)
    readings = (contract, indexer)
    redemption_price, rp_source = resolve_redemption_price(contract, indexer)

    for name, reading in (("contract", contract), ("indexer", indexer)):
        if reading is not None:
            continue
        logger.warning("No %s system reading, its statistics fall back", name)
        if diagnostics is not None:
            diagnostics.append(
                Diagnostic(code=SOURCE_UNAVAILABLE, message=f"No {name} system reading", source=name)
            )

    by_type: dict[str, list[Vault]] = {}
    for vault in active_vaults:
        by_type.setdefault(vault.record.collateral_type, []).append(vault)

    stats = {
        cid: _collateral_stat(params, by_type.get(cid, []), redemption_price, aliases)
        for cid, params in sorted(active_params.items())
    }

    # Vault-summed figures, only over vaults whose params are known.
    priced = [v for v in active_vaults if v.record.collateral_type in active_params]
    vault_collateral_value = sum(
        v.record.collateral * active_params[v.record.collateral_type].current_price // RAY for v in priced
    )
    vault_debt = sum(v.metrics.total_debt for v in active_vaults)
    have_vaults = bool(active_vaults)

    # Total collateral locked: every active type, each from its own best source.
    locked = {cid: _locked(params, by_type.get(cid, [])) for cid, params in active_params.items()}
    if any(source is StatSource.INDEXER for _, source in locked.values()) or priced:
        tcl = sum(amount * active_params[cid].current_price // RAY for cid, (amount, _) in locked.items())
        tcl_source = _weakest(*(source for _, source in locked.values()))
    else:
        tcl, tcl_source = None, StatSource.UNAVAILABLE

    # Global debt
    global_debt, debt_source = _pick(readings, "global_debt")
    if global_debt is None and have_vaults:
        global_debt, debt_source = vault_debt, StatSource.ESTIMATE

    # Global collateralization ratio
    if tcl_source is StatSource.INDEXER and debt_source in (StatSource.CONTRACT, StatSource.INDEXER):
        c_ratio = _ratio(tcl, global_debt, redemption_price, _weakest(tcl_source, debt_source))
    elif priced:
        c_ratio = _ratio(vault_collateral_value, vault_debt, redemption_price, StatSource.ESTIMATE)
    else:
        c_ratio = _unavailable(STYLE_PERCENT)

    # Active vault count
    count, count_source = _pick(readings, "active_vault_count")
    if count is None and have_vaults:
        count = sum(1 for v in active_vaults if v.record.debt > 0)
        count_source = StatSource.ESTIMATE

    # Global debt ceiling and utilisation
    ceiling, ceiling_source = _pick(readings, "global_debt_ceiling")
    if ceiling is None and active_params:
        ceiling, ceiling_source = sum(p.debt_ceiling for p in active_params.values()), StatSource.ESTIMATE
    if global_debt is not None and ceiling:
        utilization = _value(
            _fraction(global_debt, ceiling), _weakest(debt_source, ceiling_source), STYLE_PERCENT,
        )
    else:
        utilization = _unavailable(STYLE_PERCENT)

    erc20, erc20_source = _pick(readings, "erc20_supply")
    surplus, surplus_source = _pick(readings, "system_surplus")
    settle, settle_source = _pick(readings, "debt_available_to_settle")

    snapshot = SystemSnapshot(
        total_collateral_locked=_wad_value(tcl, tcl_source, STYLE_CURRENCY),
        total_debt=_wad_value(global_debt, debt_source),
        global_c_ratio=c_ratio,
        active_vault_count=_value(
            Decimal(count) if count is not None else None, count_source, decimals=0,
        ),
        erc20_supply=_wad_value(erc20, erc20_source),
        system_surplus=_wad_value(surplus, surplus_source),
        debt_available_to_settle=_wad_value(settle, settle_source),
        redemption_price=_value(
            to_decimal(redemption_price, "RAY") if rp_source is not StatSource.UNAVAILABLE else None,
            rp_source,
            STYLE_CURRENCY,
            price_decimals,
        ),
        redemption_rate=_redemption_rate(readings),
        global_debt_ceiling=_wad_value(ceiling, ceiling_source),
        global_debt_utilization=utilization,
        collateral_stats=stats,
    )
    logger.debug(
        "System snapshot: TCL=%s debt=%s cRatio=%s vaults=%s",
        snapshot.total_collateral_locked.formatted,
        snapshot.total_debt.formatted,
        snapshot.global_c_ratio.formatted,
        snapshot.active_vault_count.formatted,
    )
    return snapshot


def _wad_value(value: Optional[int], source: StatSource, style: str = STYLE_DECIMAL) -> SummaryValue:
    if value is None:
        return _unavailable(style)
    return _value(to_decimal(value, "WAD"), source, style)


def _ratio(collateral_value: int, debt: int, redemption_price: int, source: StatSource) -> SummaryValue:
    """``collateral value / (debt * redemption price)``; "0%" when there is no debt."""
    debt_value = debt * redemption_price // RAY
    if debt_value == 0:
        return _value(Decimal(0), source, STYLE_PERCENT)
    return _value(_fraction(collateral_value, debt_value), source, STYLE_PERCENT)


def _redemption_rate(readings: Sequence[Optional[SystemReading]]) -> SummaryValue:
    """Annualised redemption rate as a fraction, from either rate form a source reports."""
    for reading in readings:
        if reading is None:
            continue
        if reading.redemption_rate is not None and reading.redemption_rate > 0:
            return _value(annualize_redemption_rate(reading.redemption_rate), reading.source, STYLE_PERCENT)
        if reading.annualized_redemption_rate is not None:
            annual = to_decimal(reading.annualized_redemption_rate, "RAY") - 1
            return _value(annual, reading.source, STYLE_PERCENT)
    return _unavailable(STYLE_PERCENT)
