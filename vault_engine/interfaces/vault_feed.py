"""Vault feed protocol: any source of raw vault records."""
from typing import Any, Mapping, Protocol, Sequence

from ..models import VaultSource


class VaultFeed(Protocol):
    """Supplies raw vault records (indexer query, direct contract reads, local store)."""

    @property
    def source(self) -> VaultSource: ...

    async def fetch_vaults(self) -> Sequence[Mapping[str, Any]]: ...
