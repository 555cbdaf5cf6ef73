"""System state feed protocol: global debt, redemption price and friends."""
from typing import Any, Mapping, Protocol

from ..models import StatSource


class SystemStateFeed(Protocol):
    @property
    def source(self) -> StatSource: ...

    async def fetch_system_state(self) -> Mapping[str, Any]: ...
