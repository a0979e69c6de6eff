"""
Adapter: market index.

Supplies the market-index factor consumed by the valuation policy.
The static index applies one configured factor to every artwork.
"""

from decimal import Decimal

from fracart.domain.marketplace.entities import Artwork
from fracart.domain.marketplace.ports import MarketIndexPort


class StaticMarketIndex(MarketIndexPort):
    """Market index with a single fixed factor (1.0 = flat market)."""

    def __init__(self, factor: Decimal = Decimal("1")) -> None:
        self._factor = Decimal(str(factor))

    def factor_for(self, artwork: Artwork) -> Decimal:
        return self._factor
