# tests/test_health_checker.py

"""Tests for the marketplace health checker service."""

import time
import unittest
from unittest.mock import MagicMock, patch

from competitor_prices.services.health_checker import (
    HealthChecker,
    HealthResult,
    _classify,
    check_strategy,
)
from competitor_prices.strategies.registry import StrategyRegistry
from competitor_prices.strategies.shopee_strategy import (
    ShopeeExtractionStrategy,
)


def _response(status: int, text: str = "<html>ok</html>") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


class TestClassify(unittest.TestCase):
    """Homepage responses mapped to health states."""

    def test_fast_page_is_ok(self) -> None:
        self.assertEqual(_classify(200, "<html></html>", 120, []), ("ok", ""))

    def test_slow_page(self) -> None:
        status, _ = _classify(200, "<html></html>", 9000, [])
        self.assertEqual(status, "slow")

    def test_rate_limit_is_blocked(self) -> None:
        self.assertEqual(
            _classify(429, "", 50, []), ("blocked", "HTTP 429"),
        )

    def test_challenge_page_is_blocked(self) -> None:
        status, message = _classify(
            200, "<title>Just a moment...</title>", 50, [],
        )
        self.assertEqual(status, "blocked")
        self.assertIn("just a moment", message)

    def test_server_error_is_down(self) -> None:
        self.assertEqual(_classify(502, "", 50, []), ("down", "HTTP 502"))


@patch("competitor_prices.strategies.page_fetcher.curl_requests.Session")
class TestCheckStrategy(unittest.TestCase):
    """One request per marketplace, through the strategy's own session."""

    def test_ok_status(self, mock_session_cls: MagicMock) -> None:
        mock_session = mock_session_cls.return_value
        mock_session.get.return_value = _response(200)

        result = check_strategy(ShopeeExtractionStrategy())

        self.assertEqual(result.source_id, "shopee")
        self.assertEqual(result.status, "ok")
        self.assertGreaterEqual(result.latency_ms, 0)
        url = mock_session.get.call_args.args[0]
        headers = mock_session.get.call_args.kwargs["headers"]
        self.assertEqual(url, "https://shopee.sg/")
        self.assertEqual(headers["X-Shopee-Language"], "en")

    def test_captcha_homepage_is_blocked(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session_cls.return_value.get.return_value = _response(
            200, "<html>Please verify you are human</html>",
        )

        result = check_strategy(ShopeeExtractionStrategy())

        self.assertEqual(result.status, "blocked")

    def test_down_on_exception(self, mock_session_cls: MagicMock) -> None:
        mock_session_cls.return_value.get.side_effect = ConnectionError(
            "Connection refused",
        )

        result = check_strategy(ShopeeExtractionStrategy())

        self.assertEqual(result.status, "down")
        self.assertIn("Connection refused", result.message)

    def test_open_circuit_reported_without_request(
        self, mock_session_cls: MagicMock,
    ) -> None:
        strategy = ShopeeExtractionStrategy()
        breaker = strategy.fetcher.throttle_for(strategy.HOMEPAGE).breaker
        breaker.failures = 3
        breaker.opened_at = time.time()

        result = check_strategy(strategy)

        self.assertEqual(result.status, "blocked")
        self.assertIn("circuit open", result.message)
        mock_session_cls.return_value.get.assert_not_called()

    def test_catch_all_strategy_is_skipped(
        self, mock_session_cls: MagicMock,
    ) -> None:
        from competitor_prices.strategies.generic_strategy import (
            GenericExtractionStrategy,
        )

        result = check_strategy(GenericExtractionStrategy())

        self.assertEqual(result.status, "skipped")
        mock_session_cls.return_value.get.assert_not_called()


class TestHealthChecker(unittest.IsolatedAsyncioTestCase):
    """Tests for the HealthChecker orchestrator."""

    @patch("competitor_prices.services.health_checker.check_strategy")
    async def test_one_result_per_registered_strategy(
        self, mock_check: MagicMock,
    ) -> None:
        mock_check.return_value = HealthResult("x", "ok", 100.0)
        first, second = MagicMock(), MagicMock()
        registry = StrategyRegistry([first, second])

        results = await HealthChecker(registry).check_all()

        self.assertEqual(len(results), 2)
        checked = [c.args[0] for c in mock_check.call_args_list]
        self.assertCountEqual(checked, [first, second])

    @patch("competitor_prices.services.health_checker.check_strategy")
    async def test_default_registry_covers_every_marketplace(
        self, mock_check: MagicMock,
    ) -> None:
        mock_check.return_value = HealthResult("x", "ok")

        checker = HealthChecker()
        results = await checker.check_all()

        self.assertEqual(len(results), len(checker.registry.strategies))


if __name__ == "__main__":
    unittest.main()
