# competitor_prices/services/price_scraper_service.py

"""Orchestrates competitor price refreshes and cache reads."""

import asyncio
import logging
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal

from competitor_prices.config.settings import Settings
from competitor_prices.models.price_snapshot import (
    CompetitorPrice,
    PriceSnapshot,
)
from competitor_prices.models.product import Product
from competitor_prices.repositories.product_url_repository import (
    ProductUrlRepository,
)
from competitor_prices.services.price_parser import (
    PriceParseError,
    parse_price_value,
)
from competitor_prices.storage.local_storage import LocalStorage
from competitor_prices.storage.price_cache import (
    CacheWriteError,
    PriceCache,
)
from competitor_prices.storage.price_history_db import PriceHistoryDB
from competitor_prices.strategies.registry import (
    StrategyRegistry,
    build_default_registry,
)

logger = logging.getLogger("competitor_prices.orchestrator")


@dataclass
class ExtractionOutcome:
    """Result of one competitor's extraction attempt in a cycle."""

    competitor: str
    url: str
    price: Decimal | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.price is not None


def merge_snapshot(
    existing: PriceSnapshot,
    outcomes: list[ExtractionOutcome],
    now: datetime,
    stale_age: timedelta,
) -> PriceSnapshot:
    """Fold one cycle's outcomes into the previously cached snapshot.

    - success: fresh live entry stamped ``now``;
    - failure with a cached entry: cached values kept, marked stale;
    - failure without one: ``price=0`` placeholder backdated by
      ``stale_age``;
    - cached competitors not queried this cycle: kept, marked stale.
    """
    merged: PriceSnapshot = {
        name: replace(cp, is_live=False)
        for name, cp in existing.items()
    }
    for outcome in outcomes:
        if outcome.price is not None:
            merged[outcome.competitor] = CompetitorPrice(
                competitor=outcome.competitor,
                price=outcome.price,
                source_url=outcome.url,
                last_updated=now,
                is_live=True,
            )
        elif outcome.competitor not in merged:
            merged[outcome.competitor] = CompetitorPrice(
                competitor=outcome.competitor,
                price=Decimal(0),
                source_url=outcome.url,
                last_updated=now - stale_age,
                is_live=False,
            )
    return merged


class PriceScraperService:
    """Coordinates URL lookup, concurrent extraction, merge and caching.

    Holds no snapshot state of its own: the cache is the source of
    truth and the return value of a refresh is a convenience copy.
    """

    def __init__(
        self,
        url_repository: ProductUrlRepository,
        registry: StrategyRegistry,
        cache: PriceCache,
        history: PriceHistoryDB | None = None,
        extraction_timeout: float | None = None,
        coalesce_requests: bool | None = None,
    ) -> None:
        self.settings = Settings()
        self._url_repository = url_repository
        self._registry = registry
        self._cache = cache
        self._history = history
        self._timeout: float = (
            extraction_timeout
            if extraction_timeout is not None
            else self.settings.EXTRACTION_TIMEOUT
        )
        self._coalesce: bool = (
            coalesce_requests
            if coalesce_requests is not None
            else self.settings.COALESCE_REQUESTS
        )
        self._in_flight: dict[str, asyncio.Task[PriceSnapshot]] = {}

    # ── Private helpers ──────────────────────────────────

    async def _extract_one(
        self, competitor: str, url: str,
    ) -> ExtractionOutcome:
        """Extract and parse one competitor's price under a timeout.

        The same limit is handed to the transport as a deadline so the
        worker thread stops starting requests once it has passed.
        """
        logger.info(
            "Extracting price from %s: %s", competitor, url,
        )
        deadline = time.monotonic() + self._timeout
        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(
                    self._registry.extract_price_from_url, url, deadline,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Extraction for %s timed out after %.0fs",
                competitor,
                self._timeout,
            )
            return ExtractionOutcome(
                competitor, url, error="timed out",
            )
        except Exception as exc:
            logger.error(
                "Error extracting price for %s: %s",
                competitor,
                exc,
                exc_info=True,
            )
            return ExtractionOutcome(competitor, url, error=str(exc))

        if raw is None:
            return ExtractionOutcome(
                competitor, url, error="no price found",
            )
        try:
            price = parse_price_value(raw)
        except PriceParseError as exc:
            logger.warning(
                "Unparsable price for %s (%r): %s",
                competitor,
                raw,
                exc,
            )
            return ExtractionOutcome(competitor, url, error=str(exc))

        logger.info(
            "Extracted price for %s: %s -> %s", competitor, raw, price,
        )
        return ExtractionOutcome(competitor, url, price=price)

    async def _extract_all(
        self, competitor_urls: dict[str, str],
    ) -> list[ExtractionOutcome]:
        """Fan out one extraction per competitor and join them all."""
        items = list(competitor_urls.items())
        results = await asyncio.gather(
            *(self._extract_one(name, url) for name, url in items),
            return_exceptions=True,
        )
        outcomes: list[ExtractionOutcome] = []
        for (name, url), result in zip(items, results):
            if isinstance(result, ExtractionOutcome):
                outcomes.append(result)
            elif isinstance(result, Exception):
                logger.error(
                    "Extraction task for %s crashed: %s",
                    name,
                    result,
                    exc_info=result,
                )
                outcomes.append(
                    ExtractionOutcome(name, url, error=str(result))
                )
            else:
                raise result
        return outcomes

    async def _persist(
        self, product_id: str, snapshot: PriceSnapshot,
    ) -> PriceSnapshot:
        """Write the merged snapshot; keep the in-memory one on failure."""
        try:
            return await asyncio.to_thread(
                self._cache.set, product_id, snapshot,
            )
        except CacheWriteError as exc:
            logger.error(
                "Error caching competitor prices for %s: %s",
                product_id,
                exc,
                exc_info=True,
            )
            return snapshot

    async def _record_history(
        self, product_id: str, snapshot: PriceSnapshot,
    ) -> None:
        if self._history is None:
            return
        try:
            await asyncio.to_thread(
                self._history.record_observations,
                product_id,
                snapshot,
            )
        except sqlite3.Error as exc:
            logger.warning(
                "Could not record price history for %s: %s",
                product_id,
                exc,
            )

    async def _run_fetch_cycle(
        self,
        product_id: str,
        product_model: str,
        product_brand: str,
    ) -> PriceSnapshot:
        """One full refresh: resolve, extract, merge, persist."""
        logger.info(
            "Fetching competitor prices for %s %s (ID: %s)",
            product_brand,
            product_model,
            product_id,
        )
        existing = await self.get_last_fetched_prices(product_id) or {}

        try:
            competitor_urls = await asyncio.to_thread(
                self._url_repository.get_competitor_urls,
                product_id,
                product_brand,
                product_model,
            )
        except Exception as exc:
            logger.error(
                "Competitor URL lookup failed for %s: %s",
                product_id,
                exc,
                exc_info=True,
            )
            return existing

        targets = {
            name: url for name, url in competitor_urls.items() if url
        }
        now = datetime.now()
        outcomes = await self._extract_all(targets)
        merged = merge_snapshot(
            existing, outcomes, now, self.settings.STALE_FALLBACK_AGE,
        )

        failed = [o for o in outcomes if not o.ok]
        logger.info(
            "Fetch cycle for %s: %d/%d live, %d entries total",
            product_id,
            len(outcomes) - len(failed),
            len(outcomes),
            len(merged),
        )
        if failed:
            logger.warning(
                "Falling back to cache for %s: %s",
                product_id,
                "; ".join(f"{o.competitor} ({o.error})" for o in failed),
            )

        merged = await self._persist(product_id, merged)
        await self._record_history(product_id, merged)
        return merged

    # ── Public API ───────────────────────────────────────

    async def fetch_competitor_prices(
        self,
        product_id: str,
        product_model: str,
        product_brand: str,
    ) -> PriceSnapshot:
        """Refresh every competitor price for a product.

        Never raises for scraping, lookup or storage problems; in the
        worst case an empty snapshot comes back. With request
        coalescing enabled, a call made while a refresh for the same
        product is in flight awaits that refresh instead of starting
        a second one.
        """
        if not self._coalesce:
            return await self._run_fetch_cycle(
                product_id, product_model, product_brand,
            )

        task = self._in_flight.get(product_id)
        if task is None:
            task = asyncio.create_task(
                self._run_fetch_cycle(
                    product_id, product_model, product_brand,
                )
            )
            self._in_flight[product_id] = task
            task.add_done_callback(
                lambda _t: self._in_flight.pop(product_id, None)
            )
        else:
            logger.info(
                "Joining in-flight refresh for %s", product_id,
            )
        return await asyncio.shield(task)

    async def fetch_prices_for_product(
        self, product: Product,
    ) -> PriceSnapshot:
        """Refresh prices for a catalog record (name is the model)."""
        return await self.fetch_competitor_prices(
            product.id, product.name, product.brand,
        )

    async def get_last_fetched_prices(
        self, product_id: str,
    ) -> PriceSnapshot | None:
        """Cached snapshot for immediate display; no network I/O."""
        return await asyncio.to_thread(self._cache.get, product_id)

    async def wait_for_live_prices(
        self,
        product_id: str,
        since: datetime,
        timeout: float | None = None,
        interval: float | None = None,
        on_update: Callable[[PriceSnapshot | None], None] | None = None,
    ) -> tuple[PriceSnapshot | None, bool]:
        """Poll the cache until a refresh started at ``since`` lands.

        Reads once immediately, then every ``interval`` seconds, until
        every entry is live and stamped at or after ``since``. Returns
        ``(snapshot, timed_out)``; on timeout the snapshot holds the
        last known prices.
        """
        limit = (
            timeout if timeout is not None
            else self.settings.POLL_TIMEOUT
        )
        step = (
            interval if interval is not None
            else self.settings.POLL_INTERVAL
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + limit

        while True:
            snapshot = await self.get_last_fetched_prices(product_id)
            if on_update is not None:
                on_update(snapshot)
            if snapshot and all(
                cp.is_live and cp.last_updated >= since
                for cp in snapshot.values()
            ):
                return snapshot, False
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info(
                    "Timed out waiting for live prices for %s",
                    product_id,
                )
                return snapshot, True
            await asyncio.sleep(min(step, remaining))


def build_price_scraper_service(
    storage: LocalStorage | None = None,
    history: PriceHistoryDB | None = None,
) -> PriceScraperService:
    """Wire the default repository, registry, cache and history."""
    store = storage or LocalStorage()
    return PriceScraperService(
        url_repository=ProductUrlRepository(store),
        registry=build_default_registry(),
        cache=PriceCache(store),
        history=history or PriceHistoryDB(),
    )
