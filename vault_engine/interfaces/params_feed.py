"""Collateral params feed protocol."""
from typing import Any, Mapping, Protocol


class CollateralParamsFeed(Protocol):
    """Supplies raw collateral params keyed by collateral id."""

    async def fetch_collateral_params(self) -> Mapping[str, Mapping[str, Any]]: ...
