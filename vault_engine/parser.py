"""Pure parsing of untrusted source records into typed models, no I/O.

Two record shapes are accepted for vaults:

    indexer:  {"safeId": "12", "collateralType": {"id": "WETH"},
               "owner": {"address": "0x.."}, "collateral": "10.5", "debt": "1000",
               "safeHandler": "0x..", "createdAt": "1700000000", "modifiedAt": "..."}
    contract: {"vaultId": "12", "collateralType": "0x5745544800..00" (bytes32),
               "collateral": "10.5", "debt": "1000", "vaultHandler": "0x.."}

Numeric values are human decimal strings. A value that does not parse, or is
negative, is replaced by 0 and reported as a :class:`Diagnostic`.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from .errors import InvalidNumberFormat
from .fixed_point import RAY, Scale, to_fixed_int
from .models import (
    ACTIVITY_CONFISCATE,
    ACTIVITY_MODIFY,
    INVALID_NUMBER,
    MISSING_FIELD,
    NEGATIVE_VALUE,
    CollateralTypeParams,
    Diagnostic,
    StatSource,
    SystemReading,
    VaultActivity,
    VaultRecord,
    VaultSource,
)

logger = logging.getLogger(__name__)

_BYTES32_HEX_LEN = 64


def _report(
    diagnostics: Optional[list[Diagnostic]],
    code: str,
    message: str,
    *,
    vault_id: Optional[str] = None,
    field: Optional[str] = None,
    source: Optional[str] = None,
) -> None:
    logger.warning("%s (vault=%s field=%s source=%s)", message, vault_id, field, source)
    if diagnostics is not None:
        diagnostics.append(
            Diagnostic(code=code, message=message, vault_id=vault_id, field=field, source=source)
        )


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-None value."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def decode_bytes32(value: str) -> str:
    """Decode a 0x-prefixed bytes32 hex string to its ASCII name.

    Examples:
        "0x5745544800000000000000000000000000000000000000000000000000000000" -> "WETH"
    """
    hex_part = value[2:] if value.lower().startswith("0x") else value
    if len(hex_part) != _BYTES32_HEX_LEN:
        raise ValueError(f"Not a bytes32 value: {value!r}")
    data = bytes.fromhex(hex_part).rstrip(b"\x00")
    if b"\x00" in data:
        raise ValueError(f"bytes32 value is not a null-terminated string: {value!r}")
    return data.decode("ascii")


def normalize_collateral_type(value: Any) -> str:
    """Canonical collateral id: decoded from bytes32 if needed, upper-cased.

    Accepts a plain string, a bytes32 hex string or an indexer ``{"id": ...}`` object.
    Returns "" when no id can be found.
    """
    if isinstance(value, Mapping):
        value = value.get("id")
    if not isinstance(value, str):
        return ""
    text = value.strip()
    if text.lower().startswith("0x"):
        try:
            text = decode_bytes32(text)
        except (ValueError, UnicodeDecodeError):
            pass
    return text.upper()


def collateral_symbol(collateral_type: str, aliases: Optional[Mapping[str, str]] = None) -> str:
    """Display symbol for a collateral id, e.g. ``"WETH"`` -> ``"ETH"``."""
    return (aliases or {}).get(collateral_type, collateral_type)


def _address(value: Any) -> str:
    if isinstance(value, Mapping):
        value = value.get("address") or value.get("id")
    return str(value) if value is not None else ""


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def parse_amount(
    value: Any,
    scale: Scale,
    *,
    field: str,
    vault_id: Optional[str] = None,
    source: Optional[str] = None,
    diagnostics: Optional[list[Diagnostic]] = None,
    default: int = 0,
) -> int:
    """Parse a human decimal into a scaled integer; bad or negative input gives 0."""
    if value is None:
        return default
    try:
        parsed = to_fixed_int(value, scale)
    except InvalidNumberFormat as e:
        _report(diagnostics, INVALID_NUMBER, str(e), vault_id=vault_id, field=field, source=source)
        return 0
    if parsed < 0:
        _report(
            diagnostics,
            NEGATIVE_VALUE,
            f"Negative value {value!r} not allowed",
            vault_id=vault_id,
            field=field,
            source=source,
        )
        return 0
    return parsed


def _optional_amount(
    value: Any,
    scale: Scale,
    *,
    field: str,
    source: Optional[str],
    diagnostics: Optional[list[Diagnostic]],
) -> Optional[int]:
    """Like :func:`parse_amount`, but a bad value counts as not reported."""
    if value is None:
        return None
    try:
        parsed = to_fixed_int(value, scale)
    except InvalidNumberFormat as e:
        _report(diagnostics, INVALID_NUMBER, str(e), field=field, source=source)
        return None
    if parsed < 0:
        _report(diagnostics, NEGATIVE_VALUE, f"Negative value {value!r} not allowed", field=field, source=source)
        return None
    return parsed


def parse_timestamp(value: Any) -> Optional[int]:
    """Epoch seconds from an int, a numeric string or an ISO-8601 string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        try:
            return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp())
        except ValueError:
            return None
    return None


def _parse_count(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


# ---------------------------------------------------------------------------
# Vault records
# ---------------------------------------------------------------------------


def parse_vault_record(
    raw: Mapping[str, Any],
    source: VaultSource,
    diagnostics: Optional[list[Diagnostic]] = None,
) -> Optional[VaultRecord]:
    """Build a :class:`VaultRecord`, or None if identity or debt is missing."""
    vault_id = _first(raw, "safeId", "vaultId", "id")
    vault_id = str(vault_id).strip() if vault_id is not None else ""
    if not vault_id:
        _report(diagnostics, MISSING_FIELD, "Vault record has no id", field="id", source=source.value)
        return None

    collateral_type = normalize_collateral_type(raw.get("collateralType"))
    if not collateral_type:
        _report(
            diagnostics,
            MISSING_FIELD,
            "Vault record has no collateral type",
            vault_id=vault_id,
            field="collateralType",
            source=source.value,
        )
        return None

    if raw.get("debt") is None:
        _report(
            diagnostics,
            MISSING_FIELD,
            "Vault record has no debt",
            vault_id=vault_id,
            field="debt",
            source=source.value,
        )
        return None

    def amount(key: str) -> int:
        return parse_amount(
            raw.get(key), "WAD", field=key, vault_id=vault_id, source=source.value, diagnostics=diagnostics,
        )

    return VaultRecord(
        id=vault_id,
        collateral_type=collateral_type,
        collateral=amount("collateral"),
        debt=amount("debt"),
        owner=_address(raw.get("owner")),
        handler=_address(_first(raw, "safeHandler", "vaultHandler", "handler")),
        free_collateral=amount("freeCollateral"),
        created_at=parse_timestamp(raw.get("createdAt")),
        modified_at=parse_timestamp(_first(raw, "modifiedAt", "blockTimestamp")),
        source=source,
    )


def _signed_amount(value: Any, field: str, vault_id: str, diagnostics: Optional[list[Diagnostic]]) -> int:
    if value is None:
        return 0
    try:
        return to_fixed_int(value, "WAD")
    except InvalidNumberFormat as e:
        _report(diagnostics, INVALID_NUMBER, str(e), vault_id=vault_id, field=field, source="indexer")
        return 0


def parse_vault_activity(
    vault_id: str,
    modifications: Iterable[Mapping[str, Any]] = (),
    confiscations: Iterable[Mapping[str, Any]] = (),
    diagnostics: Optional[list[Diagnostic]] = None,
) -> tuple[VaultActivity, ...]:
    """Merge a vault's modify and confiscate events, newest first.

    Events without a timestamp sort last.
    """
    events: list[VaultActivity] = []
    for kind, entries in ((ACTIVITY_MODIFY, modifications), (ACTIVITY_CONFISCATE, confiscations)):
        for raw in entries:
            collateral = _signed_amount(raw.get("deltaCollateral"), "deltaCollateral", vault_id, diagnostics)
            debt = _signed_amount(raw.get("deltaDebt"), "deltaDebt", vault_id, diagnostics)
            events.append(
                VaultActivity(
                    id=str(raw.get("id", "")),
                    kind=kind,
                    delta_collateral=collateral,
                    delta_debt=debt,
                    created_at=parse_timestamp(raw.get("createdAt")),
                )
            )
    events.sort(key=lambda e: (e.created_at is not None, e.created_at or 0, e.kind, e.id), reverse=True)
    return tuple(events)


# ---------------------------------------------------------------------------
# Collateral params
# ---------------------------------------------------------------------------


def parse_collateral_params(
    raw: Mapping[str, Any],
    diagnostics: Optional[list[Diagnostic]] = None,
    collateral_id: Optional[str] = None,
) -> Optional[CollateralTypeParams]:
    """Build :class:`CollateralTypeParams` from an indexer-shaped record.

    Prices may be nested under ``currentPrice`` (``value``, ``liquidationPrice``,
    ``safetyPrice``) or given flat.
    """
    cid = normalize_collateral_type(collateral_id or _first(raw, "id", "collateralType"))
    if not cid:
        _report(diagnostics, MISSING_FIELD, "Collateral params have no id", field="id")
        return None

    price = raw.get("currentPrice")
    if isinstance(price, Mapping):
        spot = price.get("value")
        liquidation = _first(price, "liquidationPrice") or raw.get("liquidationPrice")
        safety = _first(price, "safetyPrice") or raw.get("safetyPrice")
    else:
        spot = price
        liquidation = raw.get("liquidationPrice")
        safety = raw.get("safetyPrice")

    def amount(value: Any, scale: Scale, key: str, default: int = 0) -> int:
        return parse_amount(value, scale, field=key, source=cid, diagnostics=diagnostics, default=default)

    locked = _first(raw, "totalCollateralLockedInSafes", "totalCollateralLocked")
    debt_amount = raw.get("debtAmount")

    return CollateralTypeParams(
        id=cid,
        accumulated_rate=amount(raw.get("accumulatedRate"), "RAY", "accumulatedRate", default=RAY),
        safety_price=amount(safety, "RAY", "safetyPrice"),
        liquidation_price=amount(liquidation, "RAY", "liquidationPrice"),
        safety_c_ratio=amount(raw.get("safetyCRatio"), "RAY", "safetyCRatio"),
        liquidation_c_ratio=amount(raw.get("liquidationCRatio"), "RAY", "liquidationCRatio"),
        debt_floor=amount(raw.get("debtFloor"), "RAD", "debtFloor"),
        debt_ceiling=amount(raw.get("debtCeiling"), "WAD", "debtCeiling"),
        current_price=amount(spot, "RAY", "currentPrice"),
        liquidation_penalty=amount(raw.get("liquidationPenalty"), "WAD", "liquidationPenalty"),
        annualized_stability_fee=amount(
            _first(raw, "totalAnnualizedStabilityFee", "annualizedStabilityFee"), "RAY", "totalAnnualizedStabilityFee",
        ),
        total_collateral_locked=(
            amount(locked, "WAD", "totalCollateralLocked") if locked is not None else None
        ),
        debt_amount=amount(debt_amount, "WAD", "debtAmount") if debt_amount is not None else None,
    )


def parse_collateral_params_map(
    raws: Union[Mapping[str, Mapping[str, Any]], Iterable[Mapping[str, Any]]],
    diagnostics: Optional[list[Diagnostic]] = None,
) -> dict[str, CollateralTypeParams]:
    """Parse a list of params records, or a mapping of collateral id -> record."""
    if isinstance(raws, Mapping):
        items = [(key, raw) for key, raw in raws.items()]
    else:
        items = [(None, raw) for raw in raws]

    params_map: dict[str, CollateralTypeParams] = {}
    for key, raw in items:
        params = parse_collateral_params(raw, diagnostics, collateral_id=key)
        if params is not None:
            params_map[params.id] = params
    return params_map


# ---------------------------------------------------------------------------
# System readings
# ---------------------------------------------------------------------------


def parse_system_reading(
    raw: Mapping[str, Any],
    source: StatSource,
    diagnostics: Optional[list[Diagnostic]] = None,
) -> SystemReading:
    """Parse system-wide figures from a contract read or an indexer system state.

    Indexer results wrapped as ``{"systemStates": [{...}]}`` are unwrapped. A
    figure that fails to parse is treated as not reported.
    """
    states = raw.get("systemStates")
    if isinstance(states, list):
        raw = states[0] if states else {}

    redemption = raw.get("currentRedemptionPrice")
    redemption = redemption if isinstance(redemption, Mapping) else {}
    rate = raw.get("currentRedemptionRate")
    rate = rate if isinstance(rate, Mapping) else {}

    def amount(value: Any, scale: Scale, key: str) -> Optional[int]:
        return _optional_amount(value, scale, field=key, source=source.value, diagnostics=diagnostics)

    return SystemReading(
        source=source,
        global_debt=amount(raw.get("globalDebt"), "WAD", "globalDebt"),
        global_debt_ceiling=amount(raw.get("globalDebtCeiling"), "WAD", "globalDebtCeiling"),
        erc20_supply=amount(_first(raw, "erc20Supply", "erc20CoinTotalSupply"), "WAD", "erc20Supply"),
        redemption_price=amount(
            _first(raw, "redemptionPrice") or redemption.get("value"), "RAY", "redemptionPrice",
        ),
        redemption_rate=amount(
            _first(raw, "redemptionRate") or redemption.get("redemptionRate"), "RAY", "redemptionRate",
        ),
        annualized_redemption_rate=amount(
            _first(raw, "annualizedRedemptionRate") or rate.get("annualizedRate"),
            "RAY",
            "annualizedRedemptionRate",
        ),
        system_surplus=amount(_first(raw, "systemSurplus", "surplusInTreasury"), "WAD", "systemSurplus"),
        debt_available_to_settle=amount(raw.get("debtAvailableToSettle"), "WAD", "debtAvailableToSettle"),
        active_vault_count=_parse_count(_first(raw, "activeVaultCount", "totalActiveSafeCount")),
    )
