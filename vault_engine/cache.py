"""In-memory cache of derived vault metrics, keyed by vault id.

Entries are valid for one input fingerprint: the collateral params, the
redemption price and the valuation settings. Syncing to a different
fingerprint drops every entry. An entry is only returned for a record equal to
the one it was computed from, so an edited vault is always recomputed. Ids
that leave the valued set are evicted with :meth:`MetricsCache.retain`.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import astuple
from typing import Iterable, Mapping, Optional

from .models import CollateralTypeParams, Vault, VaultRecord
from .risk import RiskPolicy

logger = logging.getLogger(__name__)

CACHE_VERSION = "1"


def fingerprint(
    params_map: Mapping[str, CollateralTypeParams],
    redemption_price: int,
    policy: RiskPolicy,
    ratio_decimals: int = 2,
    aliases: Optional[Mapping[str, str]] = None,
) -> str:
    """Deterministic sha256 over a canonical rendering of the valuation inputs."""
    parts = [f"v{CACHE_VERSION}", f"rp={redemption_price}", f"dec={ratio_decimals}"]
    parts.append(f"policy={policy.safest_multiplier}/{policy.mid_multiplier}")
    for key in sorted(params_map):
        parts.append(f"{key}={astuple(params_map[key])}")
    for key in sorted(aliases or {}):
        parts.append(f"alias:{key}={aliases[key]}")
    return hashlib.sha256("|".join(parts).encode()).hexdigest()


class MetricsCache:
    def __init__(self) -> None:
        self._fingerprint: Optional[str] = None
        self._entries: dict[str, Vault] = {}

    @property
    def current_fingerprint(self) -> Optional[str]:
        return self._fingerprint

    def sync(
        self,
        params_map: Mapping[str, CollateralTypeParams],
        redemption_price: int,
        policy: RiskPolicy,
        ratio_decimals: int = 2,
        aliases: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """Adopt the fingerprint of these inputs. Returns True if the cache was cleared."""
        fp = fingerprint(params_map, redemption_price, policy, ratio_decimals, aliases)
        if fp == self._fingerprint:
            return False
        if self._entries:
            logger.debug("Valuation inputs changed, dropping %d cached vaults", len(self._entries))
        self._entries.clear()
        self._fingerprint = fp
        return True

    def get(self, record: VaultRecord) -> Optional[Vault]:
        vault = self._entries.get(record.id)
        if vault is None or vault.record != record:
            return None
        return vault

    def put(self, vault: Vault) -> None:
        self._entries[vault.record.id] = vault

    def retain(self, vault_ids: Iterable[str]) -> None:
        """Drop entries for vaults outside ``vault_ids``."""
        keep = set(vault_ids)
        for vault_id in [k for k in self._entries if k not in keep]:
            del self._entries[vault_id]

    def clear(self) -> None:
        self._entries.clear()
        self._fingerprint = None

    def __len__(self) -> int:
        return len(self._entries)
