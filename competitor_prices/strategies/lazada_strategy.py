# competitor_prices/strategies/lazada_strategy.py

"""Price extraction strategy for lazada.sg product pages."""

from competitor_prices.strategies.base_strategy import BaseExtractionStrategy


class LazadaExtractionStrategy(BaseExtractionStrategy):
    """Price extraction strategy for lazada.sg.

    Lazada renders the price into ``.pdp-price`` nodes server-side and
    also ships the full product payload in an ``__INITIAL_STATE__`` /
    ``pdpData`` script, which is scanned ahead of analytics scripts.
    """

    DOMAINS = ("lazada.sg",)
    HOMEPAGE = "https://www.lazada.sg/"
    SCRIPT_HINTS = ("__INITIAL_STATE__", "pdpData", "__moduleData__")

    def __init__(self) -> None:
        super().__init__("lazada", "Lazada")
