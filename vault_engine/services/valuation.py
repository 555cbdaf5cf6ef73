"""Valuation orchestration: fetch from collaborators, then evaluate.

``evaluate`` is the pure pipeline:

    parse -> reconcile -> calculate -> classify -> aggregate

``VaultValuationService.refresh`` gathers collaborator inputs concurrently and
runs ``evaluate`` over whatever arrived. It owns no timers; callers decide
when to refresh.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from ..aggregator import aggregate_system, resolve_redemption_price
from ..cache import MetricsCache
from ..config import AppConfig, default_config
from ..interfaces.params_feed import CollateralParamsFeed
from ..interfaces.system_feed import SystemStateFeed
from ..interfaces.vault_feed import VaultFeed
from ..metrics import value_vaults
from ..models import (
    FETCH_FAILED,
    CollateralTypeParams,
    Diagnostic,
    StatSource,
    SystemReading,
    SystemSnapshot,
    Vault,
)
from ..parser import parse_collateral_params_map, parse_system_reading
from ..reconciler import Reconciler, SourcedRecords
from ..risk import RiskPolicy

logger = logging.getLogger(__name__)

RawParams = Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]
RawReading = Union[SystemReading, Mapping[str, Any], None]


@dataclass(frozen=True)
class ValuationResult:
    vaults: tuple[Vault, ...]
    snapshot: SystemSnapshot
    diagnostics: tuple[Diagnostic, ...]
    redemption_price: int


def _params_map(raw_params: RawParams, diagnostics: list[Diagnostic]) -> dict[str, CollateralTypeParams]:
    if isinstance(raw_params, Mapping) and all(
        isinstance(p, CollateralTypeParams) for p in raw_params.values()
    ):
        return dict(raw_params)
    return parse_collateral_params_map(raw_params, diagnostics)


def _reading(raw: RawReading, source: StatSource, diagnostics: list[Diagnostic]) -> Optional[SystemReading]:
    if raw is None or isinstance(raw, SystemReading):
        return raw
    return parse_system_reading(raw, source, diagnostics)


def evaluate(
    vault_sets: Iterable[SourcedRecords],
    raw_params: RawParams,
    *,
    contract: RawReading = None,
    indexer: RawReading = None,
    config: Optional[AppConfig] = None,
    cache: Optional[MetricsCache] = None,
    diagnostics: Optional[Sequence[Diagnostic]] = None,
) -> ValuationResult:
    """Run the full valuation over one input snapshot.

    Args:
        vault_sets: Raw or parsed vault records, one set per source.
        raw_params: Collateral params, raw (list or id -> record) or parsed.
        contract: System reading from direct contract calls, if any.
        indexer: System reading from the indexer, if any.
        config: Valuation settings; built-in defaults when omitted.
        cache: Optional metrics cache reused across calls.
        diagnostics: Diagnostics already collected upstream (e.g. fetch failures).
    """
    cfg = config or default_config()
    collected: list[Diagnostic] = list(diagnostics or ())

    params_map = _params_map(raw_params, collected)
    contract_reading = _reading(contract, StatSource.CONTRACT, collected)
    indexer_reading = _reading(indexer, StatSource.INDEXER, collected)

    reconciled = Reconciler(cfg.reconciler.source_precedence).reconcile(vault_sets)
    collected.extend(reconciled.diagnostics)

    redemption_price, _ = resolve_redemption_price(contract_reading, indexer_reading)
    vaults = value_vaults(
        reconciled.vaults,
        params_map,
        redemption_price,
        policy=RiskPolicy.from_config(cfg.risk),
        aliases=cfg.collaterals.aliases,
        ratio_decimals=cfg.display.ratio_decimals,
        diagnostics=collected,
        cache=cache,
    )
    snapshot = aggregate_system(
        params_map,
        contract=contract_reading,
        indexer=indexer_reading,
        vaults=vaults,
        deprecated=cfg.collaterals.deprecated,
        aliases=cfg.collaterals.aliases,
        diagnostics=collected,
        price_decimals=cfg.display.price_decimals,
    )
    return ValuationResult(
        vaults=tuple(vaults),
        snapshot=snapshot,
        diagnostics=tuple(collected),
        redemption_price=redemption_price,
    )


class VaultValuationService:
    """Fetches collaborator inputs and keeps the latest valuation."""

    def __init__(
        self,
        config: AppConfig,
        vault_feeds: Sequence[VaultFeed],
        params_feed: CollateralParamsFeed,
        system_feeds: Sequence[SystemStateFeed] = (),
    ) -> None:
        self._config = config
        self._vault_feeds = list(vault_feeds)
        self._params_feed = params_feed
        self._system_feeds = list(system_feeds)
        self._cache = MetricsCache()
        self._started = 0
        self._latest: Optional[ValuationResult] = None
        self._latest_generation = 0

    @property
    def latest(self) -> Optional[ValuationResult]:
        """Result of the most recently started refresh that has completed."""
        return self._latest

    @staticmethod
    def _failure(name: str, error: BaseException) -> Diagnostic:
        logger.error("Fetch from %s failed: %s", name, error)
        return Diagnostic(code=FETCH_FAILED, message=f"{type(error).__name__}: {error}", source=name)

    async def refresh(self) -> ValuationResult:
        """Fetch all inputs concurrently and re-evaluate.

        A failing collaborator is reported as a ``fetch_failed`` diagnostic and
        its input treated as absent. A result is only published if no later
        refresh has already published one.
        """
        self._started += 1
        generation = self._started

        results = await asyncio.gather(
            self._params_feed.fetch_collateral_params(),
            *(feed.fetch_vaults() for feed in self._vault_feeds),
            *(feed.fetch_system_state() for feed in self._system_feeds),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        diagnostics: list[Diagnostic] = []
        params_result, rest = results[0], results[1:]
        vault_results = rest[: len(self._vault_feeds)]
        system_results = rest[len(self._vault_feeds):]

        raw_params: RawParams = {}
        if isinstance(params_result, Exception):
            diagnostics.append(self._failure("collateral_params", params_result))
        else:
            raw_params = params_result

        vault_sets: list[SourcedRecords] = []
        for feed, result in zip(self._vault_feeds, vault_results):
            if isinstance(result, Exception):
                diagnostics.append(self._failure(feed.source.value, result))
                continue
            vault_sets.append(SourcedRecords(source=feed.source, records=tuple(result)))

        readings: dict[StatSource, Mapping[str, Any]] = {}
        for feed, result in zip(self._system_feeds, system_results):
            if isinstance(result, Exception):
                diagnostics.append(self._failure(f"{feed.source.value}_system", result))
                continue
            readings.setdefault(feed.source, result)

        valuation = evaluate(
            vault_sets,
            raw_params,
            contract=readings.get(StatSource.CONTRACT),
            indexer=readings.get(StatSource.INDEXER),
            config=self._config,
            cache=self._cache,
            diagnostics=diagnostics,
        )

        if generation > self._latest_generation:
            self._latest = valuation
            self._latest_generation = generation
        else:
            logger.info("Discarding refresh %d, a newer one already completed", generation)

        logger.info(
            "Valued %d vaults (%d diagnostics), global c-ratio %s",
            len(valuation.vaults),
            len(valuation.diagnostics),
            valuation.snapshot.global_c_ratio.formatted,
        )
        return valuation
