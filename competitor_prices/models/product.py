# competitor_prices/models/product.py

"""Catalog product record as supplied by the product repository."""

from dataclasses import dataclass


@dataclass
class Product:
    """A product from the shop's own catalog."""

    id: str
    name: str
    brand: str
    price: float = 0.0
    type: str = ""
