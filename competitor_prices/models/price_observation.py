# competitor_prices/models/price_observation.py

"""Temporal price observation model for price history tracking."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass
class PriceObservation:
    """A single live competitor price seen at a point in time."""

    product_id: str
    competitor: str
    price: Decimal
    source_url: str
    observed_at: datetime
