# competitor_prices/services/health_checker.py

"""Reachability check for every registered marketplace strategy."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import cast

from competitor_prices.strategies.base_strategy import BaseExtractionStrategy
from competitor_prices.strategies.page_fetcher import blocking_marker
from competitor_prices.strategies.registry import (
    StrategyRegistry,
    build_default_registry,
)

logger = logging.getLogger("competitor_prices.health")

_CHECK_TIMEOUT = 10
_SLOW_AFTER_MS = 5000


@dataclass
class HealthResult:
    """How one marketplace answered a homepage request."""

    source_id: str
    status: str  # "ok", "slow", "blocked", "down", "skipped"
    latency_ms: float = 0.0
    message: str = ""


def _classify(
    status_code: int,
    body: str,
    elapsed_ms: float,
    captcha_keywords: list[str],
) -> tuple[str, str]:
    """Map a homepage response to ``(status, message)``.

    A 200 carrying a challenge page counts as blocked: price extraction
    from that marketplace would fail the same way.
    """
    if status_code in (403, 429):
        return "blocked", f"HTTP {status_code}"
    if status_code != 200:
        return "down", f"HTTP {status_code}"
    marker = blocking_marker(body, captcha_keywords)
    if marker:
        return "blocked", f"challenge page ({marker})"
    if elapsed_ms > _SLOW_AFTER_MS:
        return "slow", "High latency"
    return "ok", ""


def check_strategy(strategy: BaseExtractionStrategy) -> HealthResult:
    """Request a strategy's marketplace homepage as a product fetch would.

    Uses the strategy's own impersonating session and headers. Hosts
    whose circuit breaker is currently open are reported without
    sending anything.
    """
    source_id = strategy.source_name
    homepage = strategy.HOMEPAGE
    if not homepage:
        return HealthResult(
            source_id, "skipped", message="Handles arbitrary shops",
        )

    breaker = strategy.fetcher.throttle_for(homepage).breaker
    if breaker.is_open:
        return HealthResult(
            source_id,
            "blocked",
            message=f"circuit open after {breaker.failures} failures",
        )

    started = time.monotonic()
    try:
        resp = strategy.fetcher.session.get(
            homepage,
            headers=strategy._build_headers(homepage),
            timeout=_CHECK_TIMEOUT,
        )
    except Exception as exc:
        return HealthResult(
            source_id,
            "down",
            (time.monotonic() - started) * 1000,
            str(exc)[:80],
        )
    elapsed_ms = (time.monotonic() - started) * 1000
    status, message = _classify(
        resp.status_code,
        resp.text or "",
        elapsed_ms,
        strategy.settings.CAPTCHA_KEYWORDS,
    )
    return HealthResult(source_id, status, elapsed_ms, message)


class HealthChecker:
    """Checks every strategy in a registry concurrently."""

    def __init__(self, registry: StrategyRegistry | None = None) -> None:
        self.registry = registry or build_default_registry()

    async def check_all(self) -> list[HealthResult]:
        strategies = cast(
            list[BaseExtractionStrategy], self.registry.strategies,
        )
        results = list(
            await asyncio.gather(
                *(
                    asyncio.to_thread(check_strategy, s)
                    for s in strategies
                )
            )
        )
        for result in results:
            log = logger.info if result.status == "ok" else logger.warning
            log(
                "Marketplace %s is %s (%.0fms) %s",
                result.source_id,
                result.status,
                result.latency_ms,
                result.message,
            )
        return results
