# tests/test_strategies.py

"""Tests for the marketplace strategies and the shared extraction pipeline."""

import tempfile
import unittest
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

from competitor_prices.services.price_parser import parse_price_value
from competitor_prices.strategies.base_strategy import BaseExtractionStrategy
from competitor_prices.strategies.generic_strategy import (
    GenericExtractionStrategy,
)
from competitor_prices.strategies.lazada_strategy import (
    LazadaExtractionStrategy,
)
from competitor_prices.strategies.scubawarehouse_strategy import (
    ScubaWarehouseExtractionStrategy,
)
from competitor_prices.strategies.shopee_strategy import (
    ShopeeExtractionStrategy,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _load_fixture(name: str) -> str:
    """Read an HTML fixture file."""
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


class TestCanHandleUrl(unittest.TestCase):
    """URL predicates for each marketplace."""

    def test_lazada_matches_own_host(self) -> None:
        strategy = LazadaExtractionStrategy()
        self.assertTrue(
            strategy.can_handle_url(
                "https://www.lazada.sg/products/mk19-evo-i123.html"
            )
        )
        self.assertTrue(strategy.can_handle_url("https://lazada.sg/x"))

    def test_lazada_rejects_lookalike_hosts(self) -> None:
        """Hostname suffix matching, not substring matching."""
        strategy = LazadaExtractionStrategy()
        self.assertFalse(
            strategy.can_handle_url("https://notlazada.sg/products/x")
        )
        self.assertFalse(
            strategy.can_handle_url(
                "https://example.com/?ref=www.lazada.sg"
            )
        )

    def test_shopee_matches_own_host(self) -> None:
        strategy = ShopeeExtractionStrategy()
        self.assertTrue(
            strategy.can_handle_url(
                "https://shopee.sg/Mask-i.554890954.10579061915"
            )
        )
        self.assertFalse(
            strategy.can_handle_url("https://www.lazada.sg/products/x")
        )

    def test_scubawarehouse_matches_own_host(self) -> None:
        strategy = ScubaWarehouseExtractionStrategy()
        self.assertTrue(
            strategy.can_handle_url(
                "https://www.scubawarehouse.com.sg/product/mk19-evo/"
            )
        )

    def test_generic_accepts_any_http_url(self) -> None:
        strategy = GenericExtractionStrategy()
        self.assertTrue(
            strategy.can_handle_url("https://shop.example.org/item/1")
        )
        self.assertTrue(strategy.can_handle_url("http://a.b/c"))

    def test_generic_rejects_non_http(self) -> None:
        strategy = GenericExtractionStrategy()
        self.assertFalse(strategy.can_handle_url("ftp://a.b/c"))
        self.assertFalse(strategy.can_handle_url("not a url"))


class TestMinimalStrategy(unittest.TestCase):
    """A new marketplace only needs its data hooks."""

    def test_subclass_with_only_domains(self) -> None:
        class DiveShopStrategy(BaseExtractionStrategy):
            DOMAINS = ("diveshop.example",)

            def __init__(self) -> None:
                super().__init__("generic", "Dive Shop")

        strategy = DiveShopStrategy()
        self.assertTrue(
            strategy.can_handle_url("https://www.diveshop.example/p/1")
        )
        self.assertEqual(
            strategy.extract_price_from_html("<p>S$ 45.00</p>"), "S$ 45.00",
        )


class TestShopeeIds(unittest.TestCase):
    """Shop and item ids embedded in Shopee listing URLs."""

    def test_extracts_ids(self) -> None:
        ids = ShopeeExtractionStrategy.extract_ids(
            "https://shopee.sg/Scubapro-Mask-i.554890954.10579061915"
        )
        self.assertEqual(ids, ("554890954", "10579061915"))

    def test_no_ids(self) -> None:
        self.assertIsNone(
            ShopeeExtractionStrategy.extract_ids("https://shopee.sg/")
        )

    def test_headers_use_product_referer(self) -> None:
        strategy = ShopeeExtractionStrategy()
        url = "https://shopee.sg/Mask-i.1.2"
        headers = strategy._build_headers(url)
        self.assertEqual(headers["Referer"], url)
        self.assertEqual(headers["X-Shopee-Language"], "en")


class TestMarketplaceFixtures(unittest.TestCase):
    """End-to-end extraction over saved product pages."""

    def test_lazada_page(self) -> None:
        """The sale price is the first dollar amount on the page."""
        strategy = LazadaExtractionStrategy()
        raw = strategy.extract_price_from_html(
            _load_fixture("lazada_product.html")
        )
        self.assertEqual(raw, "$620.00")
        assert raw is not None
        self.assertEqual(parse_price_value(raw), Decimal("620.00"))

    def test_scubawarehouse_page(self) -> None:
        """ISO-code prices are found through the WooCommerce selectors."""
        strategy = ScubaWarehouseExtractionStrategy()
        raw = strategy.extract_price_from_html(
            _load_fixture("scubawarehouse_product.html")
        )
        self.assertIsNotNone(raw)
        assert raw is not None
        self.assertIn("1,363.95", raw)
        self.assertEqual(parse_price_value(raw), Decimal("1363.95"))

    def test_shopee_page(self) -> None:
        """Client-rendered pages fall through to the state blob."""
        strategy = ShopeeExtractionStrategy()
        raw = strategy.extract_price_from_html(
            _load_fixture("shopee_product.html")
        )
        self.assertEqual(raw, "140.00")


class TestPipelineOrder(unittest.TestCase):
    """Steps run raw document, selectors, scripts, then meta."""

    def setUp(self) -> None:
        self.strategy = GenericExtractionStrategy()

    def test_raw_document_wins_over_selectors(self) -> None:
        html = (
            "<html><body>"
            "<p>Was S$ 80.00</p>"
            "<span itemprop='price' content='75.00'>75.00</span>"
            "</body></html>"
        )
        self.assertEqual(
            self.strategy.extract_price_from_html(html), "S$ 80.00",
        )

    def test_selector_step(self) -> None:
        html = (
            "<html><body>"
            "<span class='product-price'>SGD 75.50</span>"
            "</body></html>"
        )
        self.assertEqual(
            self.strategy.extract_price_from_html(html), "SGD 75.50",
        )

    def test_selector_attribute_fallback(self) -> None:
        """An empty price element can still carry the amount."""
        html = (
            "<html><body>"
            "<meta itemprop='price' content='42.90'>"
            "</body></html>"
        )
        self.assertEqual(
            self.strategy.extract_price_from_html(html), "42.90",
        )

    def test_script_step(self) -> None:
        html = (
            "<html><body><div>Add to cart</div>"
            '<script>var product = {"sku": "A1", "price": 45.5};</script>'
            "</body></html>"
        )
        self.assertEqual(
            self.strategy.extract_price_from_html(html), "45.5",
        )

    def test_meta_step(self) -> None:
        html = (
            "<html><head>"
            "<meta property='og:description' content='Now SGD 88.00 only'>"
            "</head><body><p>Fins</p></body></html>"
        )
        self.assertEqual(
            self.strategy.extract_price_from_html(html), "SGD 88.00",
        )

    def test_no_price_returns_none(self) -> None:
        html = "<html><body><p>Out of stock</p></body></html>"
        self.assertIsNone(self.strategy.extract_price_from_html(html))

    def test_hinted_script_searched_first(self) -> None:
        """Marketplace state blobs beat unrelated inline scripts."""
        strategy = ShopeeExtractionStrategy()
        html = (
            "<html><body>"
            '<script>var ads = {"price": 1};</script>'
            '<script>window.__INITIAL_STATE__ = {"price": 59.9};</script>'
            "</body></html>"
        )
        self.assertEqual(strategy.extract_price_from_html(html), "59.9")


class TestExtractPrice(unittest.TestCase):
    """extract_price never raises and can dump pages for debugging."""

    def setUp(self) -> None:
        self.strategy = GenericExtractionStrategy()

    def test_exception_becomes_none(self) -> None:
        """Unexpected errors inside the pipeline are swallowed."""
        with patch.object(
            self.strategy, "_fetch_html", side_effect=RuntimeError("boom"),
        ):
            self.assertIsNone(
                self.strategy.extract_price("https://example.com/p/1")
            )

    def test_fetch_failure_returns_none(self) -> None:
        with patch.object(self.strategy, "_fetch_html", return_value=None):
            self.assertIsNone(
                self.strategy.extract_price("https://example.com/p/1")
            )

    def test_fetch_uses_marketplace_headers(self) -> None:
        """Requests look like browser navigation from the homepage."""
        strategy = LazadaExtractionStrategy()
        with patch.object(
            strategy.fetcher, "fetch", return_value="<p>$5.00</p>",
        ) as mock_fetch:
            price = strategy.extract_price("https://www.lazada.sg/p-i1.html")

        self.assertEqual(price, "$5.00")
        headers = mock_fetch.call_args.args[1]
        self.assertEqual(headers["Referer"], "https://www.lazada.sg/")
        self.assertIn("User-Agent", headers)

    def test_debug_page_saved_when_enabled(self) -> None:
        """With DEBUG_SAVE_PAGES on, the fetched markup is written out."""
        tmp_dir = Path(tempfile.mkdtemp())
        self.strategy.settings.DEBUG_SAVE_PAGES = True
        self.strategy.settings.DEBUG_DIR = tmp_dir / "debug_pages"

        html = "<html><body><span>$45.00</span></body></html>"
        with patch.object(self.strategy, "_fetch_html", return_value=html):
            price = self.strategy.extract_price("https://example.com/p/1")

        self.assertEqual(price, "$45.00")
        saved = list((tmp_dir / "debug_pages").glob("generic_*.html"))
        self.assertEqual(len(saved), 1)
        self.assertEqual(saved[0].read_text(encoding="utf-8"), html)

    def test_debug_page_not_saved_by_default(self) -> None:
        tmp_dir = Path(tempfile.mkdtemp())
        self.strategy.settings.DEBUG_SAVE_PAGES = False
        self.strategy.settings.DEBUG_DIR = tmp_dir / "debug_pages"

        with patch.object(
            self.strategy, "_fetch_html", return_value="<p>$1.00</p>",
        ):
            self.strategy.extract_price("https://example.com/p/1")

        self.assertFalse((tmp_dir / "debug_pages").exists())


if __name__ == "__main__":
    unittest.main()
