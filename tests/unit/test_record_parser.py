"""Unit tests for the record parser: pure functions, no I/O."""
from __future__ import annotations

import pytest

from vault_engine.fixed_point import RAD, RAY, WAD, to_fixed_int
from vault_engine.models import (
    ACTIVITY_CONFISCATE,
    ACTIVITY_MODIFY,
    INVALID_NUMBER,
    MISSING_FIELD,
    NEGATIVE_VALUE,
    Diagnostic,
    StatSource,
    VaultSource,
)
from vault_engine.parser import (
    collateral_symbol,
    decode_bytes32,
    normalize_collateral_type,
    parse_amount,
    parse_collateral_params,
    parse_collateral_params_map,
    parse_system_reading,
    parse_timestamp,
    parse_vault_activity,
    parse_vault_record,
)

WETH_BYTES32 = "0x" + b"WETH".hex() + "00" * 28


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class TestDecodeBytes32:
    def test_decodes_name(self) -> None:
        assert decode_bytes32(WETH_BYTES32) == "WETH"

    def test_wrong_length_raises(self) -> None:
        with pytest.raises(ValueError):
            decode_bytes32("0x5745")


class TestNormalizeCollateralType:
    def test_plain_string_upper_cased(self) -> None:
        assert normalize_collateral_type("weth") == "WETH"

    def test_indexer_object(self) -> None:
        assert normalize_collateral_type({"id": "wstETH"}) == "WSTETH"

    def test_bytes32(self) -> None:
        assert normalize_collateral_type(WETH_BYTES32) == "WETH"

    def test_short_hex_left_as_is(self) -> None:
        assert normalize_collateral_type("0xabc") == "0XABC"

    def test_missing(self) -> None:
        assert normalize_collateral_type(None) == ""
        assert normalize_collateral_type({}) == ""


class TestCollateralSymbol:
    def test_alias(self) -> None:
        assert collateral_symbol("WETH", {"WETH": "ETH"}) == "ETH"

    def test_no_alias(self) -> None:
        assert collateral_symbol("RETH", {"WETH": "ETH"}) == "RETH"
        assert collateral_symbol("RETH") == "RETH"


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


class TestParseAmount:
    def test_valid(self) -> None:
        assert parse_amount("1.5", "WAD", field="collateral") == 15 * WAD // 10

    def test_none_gives_default(self) -> None:
        assert parse_amount(None, "RAY", field="rate", default=RAY) == RAY

    def test_invalid_becomes_zero_with_diagnostic(self) -> None:
        diagnostics: list[Diagnostic] = []
        assert parse_amount("lots", "WAD", field="debt", vault_id="4", diagnostics=diagnostics) == 0
        assert len(diagnostics) == 1
        assert diagnostics[0].code == INVALID_NUMBER
        assert diagnostics[0].field == "debt"
        assert diagnostics[0].vault_id == "4"

    def test_negative_becomes_zero_with_diagnostic(self) -> None:
        diagnostics: list[Diagnostic] = []
        assert parse_amount("-3", "WAD", field="debt", diagnostics=diagnostics) == 0
        assert diagnostics[0].code == NEGATIVE_VALUE


class TestParseTimestamp:
    def test_numeric_string(self) -> None:
        assert parse_timestamp("1700000000") == 1700000000

    def test_int(self) -> None:
        assert parse_timestamp(5) == 5

    def test_iso_string(self) -> None:
        assert parse_timestamp("1970-01-01T00:01:00.000Z") == 60

    def test_garbage(self) -> None:
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None


# ---------------------------------------------------------------------------
# Vault records
# ---------------------------------------------------------------------------


class TestParseVaultRecord:
    def test_indexer_shape(self, raw_indexer_vaults: list[dict]) -> None:
        record = parse_vault_record(raw_indexer_vaults[0], VaultSource.INDEXER)
        assert record is not None
        assert record.id == "1"
        assert record.collateral_type == "WETH"
        assert record.collateral == 10 * WAD
        assert record.debt == 10000 * WAD
        assert record.owner == "0xOWNER"
        assert record.handler == "0xHANDLER1"
        assert record.created_at == 1700000000
        assert record.modified_at == 1700000100
        assert record.source is VaultSource.INDEXER

    def test_contract_shape(self) -> None:
        raw = {
            "vaultId": "12",
            "collateralType": WETH_BYTES32,
            "collateral": "1.25",
            "freeCollateral": "0.5",
            "debt": "300",
            "vaultHandler": "0xH",
        }
        record = parse_vault_record(raw, VaultSource.CONTRACT)
        assert record is not None
        assert record.id == "12"
        assert record.collateral_type == "WETH"
        assert record.free_collateral == WAD // 2
        assert record.handler == "0xH"
        assert record.modified_at is None

    def test_missing_debt_excluded(self) -> None:
        diagnostics: list[Diagnostic] = []
        raw = {"safeId": "5", "collateralType": {"id": "WETH"}, "collateral": "1"}
        assert parse_vault_record(raw, VaultSource.INDEXER, diagnostics) is None
        assert diagnostics[0].code == MISSING_FIELD
        assert diagnostics[0].field == "debt"
        assert diagnostics[0].vault_id == "5"

    def test_missing_collateral_type_excluded(self) -> None:
        diagnostics: list[Diagnostic] = []
        raw = {"safeId": "5", "collateral": "1", "debt": "1"}
        assert parse_vault_record(raw, VaultSource.INDEXER, diagnostics) is None
        assert diagnostics[0].field == "collateralType"

    def test_missing_id_excluded(self) -> None:
        diagnostics: list[Diagnostic] = []
        raw = {"collateralType": "WETH", "collateral": "1", "debt": "1"}
        assert parse_vault_record(raw, VaultSource.LOCAL, diagnostics) is None
        assert diagnostics[0].field == "id"
        assert diagnostics[0].source == "local"

    def test_bad_number_kept_as_zero(self) -> None:
        diagnostics: list[Diagnostic] = []
        raw = {"safeId": "5", "collateralType": "WETH", "collateral": "NaN", "debt": "10"}
        record = parse_vault_record(raw, VaultSource.INDEXER, diagnostics)
        assert record is not None
        assert record.collateral == 0
        assert record.debt == 10 * WAD
        assert [d.code for d in diagnostics] == [INVALID_NUMBER]


class TestParseVaultActivity:
    def test_merged_newest_first(self) -> None:
        modifications = [
            {"id": "m1", "deltaCollateral": "10", "deltaDebt": "5000", "createdAt": "1700000100"},
            {"id": "m2", "deltaCollateral": "0", "deltaDebt": "-1000", "createdAt": "1700000300"},
        ]
        confiscations = [{"id": "c1", "deltaCollateral": "-10", "deltaDebt": "-4000", "createdAt": "1700000200"}]
        events = parse_vault_activity("1", modifications, confiscations)
        assert [e.id for e in events] == ["m2", "c1", "m1"]
        assert [e.kind for e in events] == [ACTIVITY_MODIFY, ACTIVITY_CONFISCATE, ACTIVITY_MODIFY]
        assert events[0].delta_debt == -1000 * WAD
        assert events[1].delta_collateral == -10 * WAD

    def test_missing_timestamp_sorts_last(self) -> None:
        events = parse_vault_activity("1", [{"id": "a", "deltaDebt": "1"}, {"id": "b", "createdAt": "5"}])
        assert [e.id for e in events] == ["b", "a"]
        assert events[0].delta_debt == 0

    def test_bad_delta_reported(self) -> None:
        diagnostics: list[Diagnostic] = []
        events = parse_vault_activity("9", [{"id": "m", "deltaDebt": "lots"}], diagnostics=diagnostics)
        assert events[0].delta_debt == 0
        assert [(d.code, d.vault_id, d.field) for d in diagnostics] == [(INVALID_NUMBER, "9", "deltaDebt")]

    def test_empty(self) -> None:
        assert parse_vault_activity("1") == ()


# ---------------------------------------------------------------------------
# Collateral params
# ---------------------------------------------------------------------------


class TestParseCollateralParams:
    def test_nested_prices(self, raw_params: dict[str, dict]) -> None:
        params = parse_collateral_params(raw_params["WETH"], collateral_id="WETH")
        assert params is not None
        assert params.id == "WETH"
        assert params.accumulated_rate == to_fixed_int("1.05", "RAY")
        assert params.current_price == 2100 * RAY
        assert params.liquidation_price == 1400 * RAY
        assert params.safety_price == 1750 * RAY
        assert params.safety_c_ratio == to_fixed_int("1.2", "RAY")
        assert params.debt_floor == 1000 * RAD
        assert params.debt_ceiling == 1000000 * WAD
        assert params.liquidation_penalty == to_fixed_int("1.1", "WAD")
        assert params.total_collateral_locked is None
        assert params.debt_amount is None

    def test_defaults(self) -> None:
        params = parse_collateral_params({"id": "reth"})
        assert params is not None
        assert params.id == "RETH"
        assert params.accumulated_rate == RAY
        assert params.liquidation_price == 0

    def test_flat_prices_and_totals(self) -> None:
        params = parse_collateral_params(
            {
                "collateralType": {"id": "WETH"},
                "currentPrice": "2000",
                "liquidationPrice": "1300",
                "safetyPrice": "1600",
                "totalCollateralLockedInSafes": "50",
                "debtAmount": "25000",
            }
        )
        assert params is not None
        assert params.current_price == 2000 * RAY
        assert params.liquidation_price == 1300 * RAY
        assert params.safety_price == 1600 * RAY
        assert params.total_collateral_locked == 50 * WAD
        assert params.debt_amount == 25000 * WAD

    def test_no_id(self) -> None:
        diagnostics: list[Diagnostic] = []
        assert parse_collateral_params({"accumulatedRate": "1"}, diagnostics) is None
        assert diagnostics[0].code == MISSING_FIELD


class TestParseCollateralParamsMap:
    def test_mapping_input(self, raw_params: dict[str, dict]) -> None:
        params_map = parse_collateral_params_map(raw_params)
        assert list(params_map) == ["WETH"]

    def test_list_input(self) -> None:
        params_map = parse_collateral_params_map([{"id": "weth"}, {"id": "reth"}, {}])
        assert sorted(params_map) == ["RETH", "WETH"]


# ---------------------------------------------------------------------------
# System readings
# ---------------------------------------------------------------------------


class TestParseSystemReading:
    def test_indexer_shape(self, raw_indexer_system: dict) -> None:
        reading = parse_system_reading(raw_indexer_system, StatSource.INDEXER)
        assert reading.source is StatSource.INDEXER
        assert reading.global_debt == 15750 * WAD
        assert reading.system_surplus == to_fixed_int("1234.5", "WAD")
        assert reading.active_vault_count == 2
        assert reading.redemption_price == RAY
        assert reading.annualized_redemption_rate == to_fixed_int("1.05", "RAY")
        assert reading.erc20_supply == 15000 * WAD
        assert reading.redemption_rate is None
        assert reading.global_debt_ceiling is None

    def test_contract_shape(self) -> None:
        reading = parse_system_reading(
            {
                "globalDebt": "100",
                "globalDebtCeiling": "1000",
                "erc20Supply": "90",
                "redemptionPrice": "1.02",
                "redemptionRate": "1.000000001",
                "surplusInTreasury": "5",
            },
            StatSource.CONTRACT,
        )
        assert reading.global_debt_ceiling == 1000 * WAD
        assert reading.erc20_supply == 90 * WAD
        assert reading.redemption_price == to_fixed_int("1.02", "RAY")
        assert reading.redemption_rate == to_fixed_int("1.000000001", "RAY")
        assert reading.system_surplus == 5 * WAD

    def test_empty_system_states(self) -> None:
        reading = parse_system_reading({"systemStates": []}, StatSource.INDEXER)
        assert reading.global_debt is None

    def test_bad_value_counts_as_not_reported(self) -> None:
        diagnostics: list[Diagnostic] = []
        reading = parse_system_reading({"globalDebt": "??"}, StatSource.CONTRACT, diagnostics)
        assert reading.global_debt is None
        assert diagnostics[0].code == INVALID_NUMBER
        assert diagnostics[0].source == "contract"
