# competitor_prices/strategies/shopee_strategy.py

"""Price extraction strategy for shopee.sg product pages."""

import re

from competitor_prices.strategies.base_strategy import BaseExtractionStrategy

# e.g. https://shopee.sg/Product-Name-i.554890954.10579061915
_SHOPEE_IDS_RE = re.compile(r"i\.(\d+)\.(\d+)")


class ShopeeExtractionStrategy(BaseExtractionStrategy):
    """Price extraction strategy for shopee.sg.

    Shopee is a client-rendered SPA; what the server returns to a
    non-browser client is mostly the ``__NEXT_DATA__``-style state blob
    plus OpenGraph meta tags, so the script and meta steps do most of
    the work here.
    """

    DOMAINS = ("shopee.sg",)
    HOMEPAGE = "https://shopee.sg/"
    SCRIPT_HINTS = ("__NEXT_DATA__", "__INITIAL_STATE__", "item_basic")

    def __init__(self) -> None:
        super().__init__("shopee", "Shopee")

    @staticmethod
    def extract_ids(url: str) -> tuple[str, str] | None:
        """Return ``(shop_id, item_id)`` parsed from a Shopee URL."""
        match = _SHOPEE_IDS_RE.search(url)
        if not match:
            return None
        return match.group(1), match.group(2)

    def _build_headers(self, url: str) -> dict[str, str]:
        """Add the product page as Referer and request English copy."""
        headers = super()._build_headers(url)
        headers["Referer"] = url
        headers["X-Shopee-Language"] = "en"
        return headers

    def extract_price(
        self, url: str, deadline: float | None = None,
    ) -> str | None:
        """Log the listing ids, then run the shared pipeline."""
        ids = self.extract_ids(url)
        if ids:
            self.logger.debug(
                "[shopee] shop_id=%s item_id=%s", ids[0], ids[1]
            )
        return super().extract_price(url, deadline)
