"""Shared test fixtures and sample data.

Collateral fixture WETH (all numbers chosen so every formula lands exactly):
    spot 2100, liquidation price 1400 (2100 / 1.5), safety price 1750 (2100 / 1.2)
    accumulated rate 1.05, liquidation c-ratio 1.5, safety c-ratio 1.2 (120%)
so a vault with 10 WETH and 10000 debt owes 10500 and sits at exactly 200.00%.
"""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from vault_engine.config import (
    AppConfig,
    CollateralsConfig,
    DisplayConfig,
    ReconcilerConfig,
    RiskConfig,
)
from vault_engine.fixed_point import RAY, to_fixed_int
from vault_engine.models import CollateralTypeParams, VaultRecord, VaultSource


def wad(value: str) -> int:
    return to_fixed_int(value, "WAD")


def ray(value: str) -> int:
    return to_fixed_int(value, "RAY")


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        log_level="DEBUG",
        risk=RiskConfig(safest_multiplier=2.2, mid_multiplier=1.5),
        collaterals=CollateralsConfig(deprecated=("OLD",), aliases={"WETH": "ETH"}),
        reconciler=ReconcilerConfig(source_precedence=("contract", "indexer", "local")),
        display=DisplayConfig(ratio_decimals=2, price_decimals=4, amount_decimals=4),
    )


SAMPLE_YAML = textwrap.dedent("""\
    log_level: DEBUG
    risk:
      safest_multiplier: 2.5
      mid_multiplier: 1.6
    collaterals:
      deprecated: [old, legacy]
      aliases: {weth: ETH}
    reconciler:
      source_precedence: [indexer, contract, local]
    display:
      ratio_decimals: 1
      price_decimals: 2
      amount_decimals: 3
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def weth_params() -> CollateralTypeParams:
    return CollateralTypeParams(
        id="WETH",
        accumulated_rate=ray("1.05"),
        safety_price=ray("1750"),
        liquidation_price=ray("1400"),
        safety_c_ratio=ray("1.2"),
        liquidation_c_ratio=ray("1.5"),
        debt_floor=to_fixed_int("1000", "RAD"),
        debt_ceiling=wad("1000000"),
        current_price=ray("2100"),
    )


@pytest.fixture()
def params_map(weth_params: CollateralTypeParams) -> dict[str, CollateralTypeParams]:
    return {"WETH": weth_params}


@pytest.fixture()
def medium_record() -> VaultRecord:
    return VaultRecord(
        id="1",
        collateral_type="WETH",
        collateral=wad("10"),
        debt=wad("10000"),
        owner="0xOWNER",
        modified_at=100,
        source=VaultSource.INDEXER,
    )


@pytest.fixture()
def redemption_price() -> int:
    return RAY


# ---------------------------------------------------------------------------
# Raw collaborator payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def raw_params() -> dict[str, dict]:
    """Indexer-shaped collateral params keyed by collateral id."""
    return {
        "WETH": {
            "accumulatedRate": "1.05",
            "currentPrice": {"value": "2100", "liquidationPrice": "1400", "safetyPrice": "1750"},
            "safetyCRatio": "1.2",
            "liquidationCRatio": "1.5",
            "debtFloor": "1000",
            "debtCeiling": "1000000",
            "liquidationPenalty": "1.1",
            "totalAnnualizedStabilityFee": "1.02",
        },
    }


@pytest.fixture()
def raw_indexer_vaults() -> list[dict]:
    return [
        {
            "safeId": "1",
            "collateralType": {"id": "WETH"},
            "owner": {"address": "0xOWNER"},
            "collateral": "10",
            "debt": "10000",
            "safeHandler": "0xHANDLER1",
            "createdAt": "1700000000",
            "modifiedAt": "1700000100",
        },
        {
            "safeId": "2",
            "collateralType": {"id": "WETH"},
            "owner": {"address": "0xOTHER"},
            "collateral": "20",
            "debt": "5000",
            "safeHandler": "0xHANDLER2",
            "createdAt": "1700000000",
            "modifiedAt": "1700000200",
        },
        {
            "safeId": "3",
            "collateralType": {"id": "WETH"},
            "owner": {"address": "0xOWNER"},
            "collateral": "5",
            "debt": "0",
            "createdAt": "1700000000",
            "modifiedAt": "1700000300",
        },
    ]


@pytest.fixture()
def raw_indexer_system() -> dict:
    return {
        "systemStates": [
            {
                "globalDebt": "15750",
                "systemSurplus": "1234.5",
                "totalActiveSafeCount": "2",
                "currentRedemptionPrice": {"value": "1"},
                "currentRedemptionRate": {"annualizedRate": "1.05"},
                "erc20CoinTotalSupply": "15000",
            }
        ]
    }
