# tests/test_registry.py

"""Tests for URL-to-strategy dispatch."""

import unittest
from unittest.mock import MagicMock

from competitor_prices.config.settings import Settings
from competitor_prices.strategies.generic_strategy import (
    GenericExtractionStrategy,
)
from competitor_prices.strategies.lazada_strategy import (
    LazadaExtractionStrategy,
)
from competitor_prices.strategies.registry import (
    StrategyRegistry,
    build_default_registry,
)


def _fake_strategy(
    name: str, accepts: bool, price: str | None = None,
) -> MagicMock:
    strategy = MagicMock()
    strategy.platform_name = name
    strategy.can_handle_url.return_value = accepts
    strategy.extract_price.return_value = price
    return strategy


class TestStrategyRegistry(unittest.TestCase):
    """First registered match wins."""

    def test_first_match_wins(self) -> None:
        first = _fake_strategy("first", True, "$1.00")
        second = _fake_strategy("second", True, "$2.00")
        registry = StrategyRegistry([first, second])

        self.assertIs(
            registry.get_strategy_for_url("https://a.b/c"), first,
        )
        self.assertEqual(
            registry.extract_price_from_url("https://a.b/c"), "$1.00",
        )
        second.extract_price.assert_not_called()

    def test_specific_before_generic(self) -> None:
        """A marketplace URL goes to its strategy, not the catch-all."""
        lazada = LazadaExtractionStrategy()
        generic = GenericExtractionStrategy()
        registry = StrategyRegistry([lazada, generic])

        self.assertIs(
            registry.get_strategy_for_url(
                "https://www.lazada.sg/products/mask-i1.html"
            ),
            lazada,
        )
        self.assertIs(
            registry.get_strategy_for_url("https://diveshop.example/x"),
            generic,
        )

    def test_generic_registered_first_shadows_specific(self) -> None:
        """Registration order is the only tie-break."""
        lazada = LazadaExtractionStrategy()
        generic = GenericExtractionStrategy()
        registry = StrategyRegistry([generic, lazada])

        self.assertIs(
            registry.get_strategy_for_url(
                "https://www.lazada.sg/products/mask-i1.html"
            ),
            generic,
        )

    def test_no_match_returns_none(self) -> None:
        """Unsupported URLs produce no price and no exception."""
        strategy = _fake_strategy("lazada", False)
        registry = StrategyRegistry([strategy])

        with self.assertLogs(
            "competitor_prices.registry", level="WARNING",
        ) as logs:
            result = registry.extract_price_from_url(
                "https://unknown.example/p"
            )

        self.assertIsNone(result)
        strategy.extract_price.assert_not_called()
        self.assertIn("No strategy found", logs.output[0])

    def test_empty_registry(self) -> None:
        registry = StrategyRegistry()
        self.assertIsNone(registry.get_strategy_for_url("https://a.b"))
        self.assertEqual(registry.strategies, [])

    def test_register_appends(self) -> None:
        registry = StrategyRegistry()
        a = _fake_strategy("a", False)
        b = _fake_strategy("b", False)
        registry.register(a)
        registry.register(b)
        self.assertEqual(registry.strategies, [a, b])

    def test_strategies_property_is_a_copy(self) -> None:
        registry = StrategyRegistry([_fake_strategy("a", True)])
        registry.strategies.clear()
        self.assertEqual(len(registry.strategies), 1)


class TestDefaultRegistry(unittest.TestCase):
    """The configured strategies load in declared order."""

    def test_order_matches_settings(self) -> None:
        registry = build_default_registry()
        names = [s.platform_name for s in registry.strategies]
        self.assertEqual(
            names, ["Lazada", "Shopee", "ScubaWarehouse", "Generic"],
        )
        self.assertEqual(
            len(names), len(Settings.AVAILABLE_STRATEGIES),
        )

    def test_generic_is_last(self) -> None:
        registry = build_default_registry()
        self.assertIsInstance(
            registry.strategies[-1], GenericExtractionStrategy,
        )

    def test_dispatches_known_marketplaces(self) -> None:
        registry = build_default_registry()
        cases = {
            "https://www.lazada.sg/products/x-i1.html": "Lazada",
            "https://shopee.sg/x-i.1.2": "Shopee",
            "https://www.scubawarehouse.com.sg/product/x/": (
                "ScubaWarehouse"
            ),
            "https://www.example.com/item": "Generic",
        }
        for url, expected in cases.items():
            with self.subTest(url=url):
                strategy = registry.get_strategy_for_url(url)
                assert strategy is not None
                self.assertEqual(strategy.platform_name, expected)


if __name__ == "__main__":
    unittest.main()
