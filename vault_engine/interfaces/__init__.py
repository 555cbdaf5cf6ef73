"""Protocol interfaces for the collaborators that feed the valuation engine."""
from .params_feed import CollateralParamsFeed
from .system_feed import SystemStateFeed
from .vault_feed import VaultFeed

__all__ = ["CollateralParamsFeed", "SystemStateFeed", "VaultFeed"]
