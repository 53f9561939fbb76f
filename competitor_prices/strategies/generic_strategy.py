# competitor_prices/strategies/generic_strategy.py

"""Catch-all price extraction strategy for any http(s) product page."""

from urllib.parse import urlparse

from competitor_prices.strategies.base_strategy import BaseExtractionStrategy


class GenericExtractionStrategy(BaseExtractionStrategy):
    """Catch-all strategy using schema.org and class-name heuristics.

    Matches every http(s) URL, so it must be registered last.
    """

    def __init__(self) -> None:
        super().__init__("generic", "Generic")

    def can_handle_url(self, url: str) -> bool:
        """Accept any absolute http(s) URL."""
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)
