"""Merge vault records from several sources into one freshest-wins list.

For the same vault id, freshness markers (``modified_at``) decide only when
every candidate carries one. If any candidate lacks a marker, source precedence
decides first (contract > indexer > local by default) and markers only order
records from the same source. Any remaining tie is broken on record content, so
the result never depends on the order the inputs arrived in.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from .models import Diagnostic, VaultRecord, VaultSource
from .parser import parse_vault_record

logger = logging.getLogger(__name__)

DEFAULT_PRECEDENCE: tuple[VaultSource, ...] = (
    VaultSource.CONTRACT,
    VaultSource.INDEXER,
    VaultSource.LOCAL,
)

RawVault = Union[VaultRecord, Mapping[str, Any]]


@dataclass(frozen=True)
class SourcedRecords:
    """One fetched record set and the source it came from."""

    source: VaultSource
    records: Sequence[RawVault] = ()


@dataclass(frozen=True)
class ReconcileResult:
    vaults: tuple[VaultRecord, ...]
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)

    def by_id(self) -> dict[str, VaultRecord]:
        return {vault.id: vault for vault in self.vaults}


def _id_sort_key(vault_id: str) -> tuple:
    """Numeric ids in numeric order first, then everything else lexically."""
    if vault_id.isdigit():
        return (0, int(vault_id), vault_id)
    return (1, 0, vault_id)


class Reconciler:
    """Stateless merger; holds only the configured source precedence."""

    def __init__(self, precedence: Sequence[Union[VaultSource, str]] = DEFAULT_PRECEDENCE) -> None:
        order = [VaultSource(p) for p in precedence]
        # Earlier in the precedence list means more authoritative.
        self._rank = {src: len(order) - i for i, src in enumerate(order)}

    def _tiebreak(self, record: VaultRecord) -> tuple:
        return (
            record.created_at if record.created_at is not None else -1,
            record.debt,
            record.collateral,
            record.free_collateral,
            record.collateral_type,
            record.owner,
            record.handler,
            record.source.value,
        )

    def _marker_first(self, record: VaultRecord) -> tuple:
        return (record.modified_at, self._rank.get(record.source, 0)) + self._tiebreak(record)

    def _precedence_first(self, record: VaultRecord) -> tuple:
        modified = record.modified_at if record.modified_at is not None else -1
        return (self._rank.get(record.source, 0), modified) + self._tiebreak(record)

    def _pick(self, candidates: list[VaultRecord]) -> VaultRecord:
        if len(candidates) == 1:
            return candidates[0]
        # Markers from different sources are only comparable when all are present.
        if all(c.modified_at is not None for c in candidates):
            return max(candidates, key=self._marker_first)
        return max(candidates, key=self._precedence_first)

    def _normalize(
        self,
        raw: RawVault,
        source: VaultSource,
        diagnostics: list[Diagnostic],
    ) -> Optional[VaultRecord]:
        if isinstance(raw, VaultRecord):
            if raw.source is source:
                return raw
            return dataclasses.replace(raw, source=source)
        return parse_vault_record(raw, source, diagnostics)

    def reconcile(self, record_sets: Iterable[SourcedRecords]) -> ReconcileResult:
        """Single pass grouping candidates by vault id, then one winner per id."""
        diagnostics: list[Diagnostic] = []
        candidates: dict[str, list[VaultRecord]] = {}
        seen = excluded = 0

        for record_set in record_sets:
            for raw in record_set.records:
                record = self._normalize(raw, record_set.source, diagnostics)
                if record is None:
                    excluded += 1
                    continue
                seen += 1
                candidates.setdefault(record.id, []).append(record)

        vaults = tuple(self._pick(candidates[key]) for key in sorted(candidates, key=_id_sort_key))
        logger.debug(
            "Reconciled %d records into %d vaults (%d excluded)",
            seen,
            len(vaults),
            excluded,
        )
        return ReconcileResult(vaults=vaults, diagnostics=tuple(diagnostics))


def reconcile(
    record_sets: Iterable[SourcedRecords],
    precedence: Sequence[Union[VaultSource, str]] = DEFAULT_PRECEDENCE,
) -> ReconcileResult:
    return Reconciler(precedence).reconcile(record_sets)
