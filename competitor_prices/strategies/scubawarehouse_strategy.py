# competitor_prices/strategies/scubawarehouse_strategy.py

"""Price extraction strategy for scubawarehouse.com.sg (WooCommerce)."""

from competitor_prices.strategies.base_strategy import BaseExtractionStrategy


class ScubaWarehouseExtractionStrategy(BaseExtractionStrategy):
    """Price extraction strategy for scubawarehouse.com.sg.

    A WooCommerce store: sale prices sit in ``.price ins`` and regular
    prices in ``.woocommerce-Price-amount`` inside the product summary.
    """

    DOMAINS = ("scubawarehouse.com.sg",)
    HOMEPAGE = "https://scubawarehouse.com.sg/"

    def __init__(self) -> None:
        super().__init__("scubawarehouse", "ScubaWarehouse")
