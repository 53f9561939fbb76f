# competitor_prices/strategies/registry.py

"""Ordered registry mapping product URLs to extraction strategies."""

import importlib
import logging
from collections.abc import Iterable
from typing import Any, Protocol

from competitor_prices.config.settings import Settings

logger = logging.getLogger("competitor_prices.registry")


class ExtractionStrategy(Protocol):
    """What the registry needs from a marketplace strategy."""

    platform_name: str

    def can_handle_url(self, url: str) -> bool: ...

    def extract_price(
        self, url: str, deadline: float | None = None,
    ) -> str | None: ...


def _load_strategy_class(dotted_path: str) -> type[Any]:
    """Dynamically import a strategy class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


class StrategyRegistry:
    """Holds strategies and dispatches each URL to the first match.

    Registration order is the tie-break: a catch-all strategy has to
    be registered after every marketplace-specific one.
    """

    def __init__(
        self,
        strategies: Iterable[ExtractionStrategy] | None = None,
    ) -> None:
        self._strategies: list[ExtractionStrategy] = []
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: ExtractionStrategy) -> None:
        """Append a strategy; earlier registrations win ties."""
        self._strategies.append(strategy)
        logger.debug(
            "Registered strategy %s (position %d)",
            strategy.platform_name,
            len(self._strategies),
        )

    @property
    def strategies(self) -> list[ExtractionStrategy]:
        """Registered strategies, in dispatch order."""
        return list(self._strategies)

    def get_strategy_for_url(
        self, url: str,
    ) -> ExtractionStrategy | None:
        """Return the first strategy whose URL predicate accepts ``url``."""
        for strategy in self._strategies:
            if strategy.can_handle_url(url):
                return strategy
        return None

    def extract_price_from_url(
        self, url: str, deadline: float | None = None,
    ) -> str | None:
        """Delegate to the matching strategy; no retries here."""
        strategy = self.get_strategy_for_url(url)
        if strategy is None:
            logger.warning("No strategy found for URL: %s", url)
            return None
        return strategy.extract_price(url, deadline)


def build_default_registry(
    sources: list[dict[str, str]] | None = None,
) -> StrategyRegistry:
    """Instantiate the configured strategies in their declared order."""
    registry = StrategyRegistry()
    for src in sources or Settings.AVAILABLE_STRATEGIES:
        strategy_cls = _load_strategy_class(src["strategy"])
        registry.register(strategy_cls())
    return registry
