"""Unit tests for multi-source vault reconciliation."""
from __future__ import annotations

import itertools

import pytest

from vault_engine.fixed_point import WAD
from vault_engine.models import MISSING_FIELD, VaultRecord, VaultSource
from vault_engine.reconciler import Reconciler, SourcedRecords, reconcile


def _record(
    vault_id: str,
    source: VaultSource,
    *,
    debt: int = 100 * WAD,
    modified_at: int | None = None,
) -> VaultRecord:
    return VaultRecord(
        id=vault_id,
        collateral_type="WETH",
        collateral=WAD,
        debt=debt,
        modified_at=modified_at,
        source=source,
    )


class TestReconcile:
    def test_fresher_record_wins(self) -> None:
        old = _record("1", VaultSource.CONTRACT, debt=100 * WAD, modified_at=10)
        new = _record("1", VaultSource.LOCAL, debt=200 * WAD, modified_at=20)
        result = reconcile(
            [SourcedRecords(VaultSource.CONTRACT, [old]), SourcedRecords(VaultSource.LOCAL, [new])]
        )
        assert result.vaults == (new,)

    def test_precedence_breaks_equal_freshness(self) -> None:
        contract = _record("1", VaultSource.CONTRACT, debt=100 * WAD, modified_at=10)
        indexer = _record("1", VaultSource.INDEXER, debt=200 * WAD, modified_at=10)
        result = reconcile(
            [SourcedRecords(VaultSource.INDEXER, [indexer]), SourcedRecords(VaultSource.CONTRACT, [contract])]
        )
        assert result.vaults[0].source is VaultSource.CONTRACT

    def test_precedence_when_markers_absent(self) -> None:
        local = _record("1", VaultSource.LOCAL, debt=100 * WAD)
        indexer = _record("1", VaultSource.INDEXER, debt=200 * WAD)
        result = reconcile(
            [SourcedRecords(VaultSource.LOCAL, [local]), SourcedRecords(VaultSource.INDEXER, [indexer])]
        )
        assert result.vaults[0].debt == 200 * WAD

    def test_marker_beats_precedence_when_both_present(self) -> None:
        contract = _record("1", VaultSource.CONTRACT, modified_at=4)
        local = _record("1", VaultSource.LOCAL, debt=300 * WAD, modified_at=5)
        result = reconcile(
            [SourcedRecords(VaultSource.CONTRACT, [contract]), SourcedRecords(VaultSource.LOCAL, [local])]
        )
        assert result.vaults[0].debt == 300 * WAD

    def test_contract_without_marker_beats_indexer_with_marker(self) -> None:
        contract = _record("1", VaultSource.CONTRACT, debt=120 * WAD)
        indexer = _record("1", VaultSource.INDEXER, debt=100 * WAD, modified_at=1700000000)
        for sets in (
            [SourcedRecords(VaultSource.CONTRACT, [contract]), SourcedRecords(VaultSource.INDEXER, [indexer])],
            [SourcedRecords(VaultSource.INDEXER, [indexer]), SourcedRecords(VaultSource.CONTRACT, [contract])],
        ):
            result = reconcile(sets)
            assert result.vaults[0].source is VaultSource.CONTRACT
            assert result.vaults[0].debt == 120 * WAD

    def test_unmarked_contract_beats_marked_local(self) -> None:
        contract = _record("1", VaultSource.CONTRACT)
        local = _record("1", VaultSource.LOCAL, debt=300 * WAD, modified_at=5)
        result = reconcile(
            [SourcedRecords(VaultSource.LOCAL, [local]), SourcedRecords(VaultSource.CONTRACT, [contract])]
        )
        assert result.vaults[0].source is VaultSource.CONTRACT

    def test_marker_orders_same_source_when_another_lacks_one(self) -> None:
        old = _record("1", VaultSource.INDEXER, debt=100 * WAD, modified_at=10)
        new = _record("1", VaultSource.INDEXER, debt=200 * WAD, modified_at=20)
        local = _record("1", VaultSource.LOCAL, debt=300 * WAD)
        sets = [
            SourcedRecords(VaultSource.INDEXER, [old, new]),
            SourcedRecords(VaultSource.LOCAL, [local]),
        ]
        assert reconcile(sets).vaults == (new,)

    def test_custom_precedence(self) -> None:
        contract = _record("1", VaultSource.CONTRACT, debt=100 * WAD)
        local = _record("1", VaultSource.LOCAL, debt=300 * WAD)
        sets = [SourcedRecords(VaultSource.CONTRACT, [contract]), SourcedRecords(VaultSource.LOCAL, [local])]
        result = Reconciler(["local", "indexer", "contract"]).reconcile(sets)
        assert result.vaults[0].source is VaultSource.LOCAL

    def test_order_independent(self) -> None:
        sets = [
            SourcedRecords(VaultSource.CONTRACT, [_record("1", VaultSource.CONTRACT, modified_at=7)]),
            SourcedRecords(VaultSource.INDEXER, [_record("1", VaultSource.INDEXER, debt=5 * WAD, modified_at=7)]),
            SourcedRecords(VaultSource.LOCAL, [_record("2", VaultSource.LOCAL)]),
            SourcedRecords(VaultSource.LOCAL, [_record("2", VaultSource.LOCAL, debt=9 * WAD)]),
            SourcedRecords(VaultSource.CONTRACT, [_record("3", VaultSource.CONTRACT)]),
            SourcedRecords(VaultSource.INDEXER, [_record("3", VaultSource.INDEXER, debt=1 * WAD, modified_at=3)]),
            SourcedRecords(VaultSource.LOCAL, [_record("3", VaultSource.LOCAL, debt=2 * WAD, modified_at=9)]),
        ]
        results = {reconcile(list(perm)).vaults for perm in itertools.permutations(sets)}
        assert len(results) == 1

    def test_one_entry_per_id_sorted_numerically(self) -> None:
        records = [_record(i, VaultSource.INDEXER) for i in ("10", "2", "abc", "1", "2")]
        result = reconcile([SourcedRecords(VaultSource.INDEXER, records)])
        assert [v.id for v in result.vaults] == ["1", "2", "10", "abc"]

    def test_source_is_stamped_from_record_set(self) -> None:
        record = _record("1", VaultSource.LOCAL)
        result = reconcile([SourcedRecords(VaultSource.CONTRACT, [record])])
        assert result.vaults[0].source is VaultSource.CONTRACT

    def test_empty_input(self) -> None:
        assert reconcile([]).vaults == ()


class TestReconcileRawRecords:
    def test_parses_raw_mappings(self, raw_indexer_vaults: list[dict]) -> None:
        result = reconcile([SourcedRecords(VaultSource.INDEXER, raw_indexer_vaults)])
        assert [v.id for v in result.vaults] == ["1", "2", "3"]
        assert result.by_id()["2"].collateral == 20 * WAD
        assert result.diagnostics == ()

    def test_raw_contract_record_beats_stale_indexer(self, raw_indexer_vaults: list[dict]) -> None:
        contract = {
            "vaultId": "1",
            "collateralType": "WETH",
            "collateral": "12",
            "debt": "10000",
            "blockTimestamp": "1700000500",
        }
        result = reconcile(
            [
                SourcedRecords(VaultSource.INDEXER, raw_indexer_vaults),
                SourcedRecords(VaultSource.CONTRACT, [contract]),
            ]
        )
        assert result.by_id()["1"].collateral == 12 * WAD
        assert result.by_id()["1"].source is VaultSource.CONTRACT

    def test_unusable_record_excluded_with_diagnostic(self) -> None:
        raw = [
            {"safeId": "1", "collateralType": "WETH", "collateral": "1"},
            {"safeId": "2", "collateralType": "WETH", "collateral": "1", "debt": "5"},
        ]
        result = reconcile([SourcedRecords(VaultSource.INDEXER, raw)])
        assert [v.id for v in result.vaults] == ["2"]
        assert [d.code for d in result.diagnostics] == [MISSING_FIELD]

    def test_unknown_source_in_precedence_raises(self) -> None:
        with pytest.raises(ValueError):
            Reconciler(["contract", "oracle"])
