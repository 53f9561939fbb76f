# competitor_prices/models/price_snapshot.py

"""Competitor price observation and per-product snapshot models."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum, auto


class PriceState(Enum):
    """Lifecycle of a single competitor entry in a snapshot."""

    UNKNOWN = auto()  # never successfully observed
    LIVE = auto()     # observed in the current fetch cycle
    STALE = auto()    # carried over from an earlier cycle


@dataclass
class CompetitorPrice:
    """One marketplace's observation of a product's price."""

    competitor: str
    price: Decimal
    source_url: str
    last_updated: datetime
    is_live: bool = False

    @property
    def state(self) -> PriceState:
        """Classify the entry; a zero non-live price means unknown."""
        if self.is_live:
            return PriceState.LIVE
        if self.price == 0:
            return PriceState.UNKNOWN
        return PriceState.STALE


# Competitor name -> latest observation for one product.
PriceSnapshot = dict[str, CompetitorPrice]
