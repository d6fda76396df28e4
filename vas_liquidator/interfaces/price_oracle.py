"""Price oracle protocol: price feed abstraction."""
from typing import Protocol

from ..models import PriceUpdate


class PriceOracle(Protocol):
    """Abstract interface for fetching prices and their update payload."""

    async def fetch_prices(self, feed_ids: list[str]) -> PriceUpdate: ...
