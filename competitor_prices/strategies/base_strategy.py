# competitor_prices/strategies/base_strategy.py

"""Shared base class for marketplace price extraction strategies."""

import json
import logging
import re
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from competitor_prices.config.settings import Settings
from competitor_prices.strategies.page_fetcher import PageFetcher

# Step 1: currency-prefixed decimal anywhere in the raw document
_RAW_PRICE_RE = re.compile(r"(?:S|US)?\$\s?[0-9][0-9,]*\.[0-9]{2}")

# Steps 2 and 4: symbol or ISO code followed by an amount
_CURRENCY_PRICE_RE = re.compile(
    r"(?:(?:S|US)?\$|SGD|USD|RM|MYR)\s?[0-9][0-9,]*(?:\.[0-9]{1,2})?"
)

_BARE_DECIMAL_RE = re.compile(r"[0-9][0-9,]*\.[0-9]{1,2}")
_BARE_NUMBER_RE = re.compile(r"^\s*[0-9][0-9,]*(?:\.[0-9]+)?\s*$")


def _script_field_pattern(field: str) -> re.Pattern[str]:
    """Build a regex for ``"field": "$1,234.50"`` style JSON/JS pairs."""
    return re.compile(
        r"(?<![\w$])[\"']?" + re.escape(field) + r"[\"']?\s*[:=]\s*"
        r"[\"']?(?:(?:S|US)?\$)?\s?([0-9][0-9,]*(?:\.[0-9]+)?)"
    )


class BaseExtractionStrategy:
    """Base class for all marketplace price strategies.

    Subclasses declare the marketplace hosts they serve in ``DOMAINS``
    and a ``HOMEPAGE`` for the Referer header. The extraction pipeline
    itself is shared; per-marketplace structural selectors come from
    ``selectors.json``.
    """

    DOMAINS: tuple[str, ...] = ()
    HOMEPAGE: str = ""
    # Substrings marking a marketplace's page-state script
    SCRIPT_HINTS: tuple[str, ...] = ()

    def __init__(self, source_name: str, platform_name: str) -> None:
        self.source_name = source_name
        self.platform_name = platform_name
        self.logger = logging.getLogger(
            f"competitor_prices.{source_name}"
        )
        self.settings = Settings()
        self.selectors: dict[str, list[str]] = self._load_selectors()
        self.fetcher = PageFetcher(source_name, self.settings)
        self._script_patterns: list[re.Pattern[str]] = [
            _script_field_pattern(f)
            for f in self.settings.SCRIPT_PRICE_FIELDS
        ]

    def _load_selectors(self) -> dict[str, list[str]]:
        """Load CSS selectors for this source from selectors.json."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            all_selectors: dict[str, Any] = json.load(f)
        result: dict[str, list[str]] = all_selectors.get(
            self.source_name, {}
        )
        return result

    # ------------------------------------------------------------------
    # URL matching
    # ------------------------------------------------------------------

    def can_handle_url(self, url: str) -> bool:
        """Return True if the URL's host belongs to this marketplace."""
        host = (urlparse(url).hostname or "").lower()
        return any(
            host == domain or host.endswith(f".{domain}")
            for domain in self.DOMAINS
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _build_headers(self, url: str) -> dict[str, str]:
        """Default browser headers plus a marketplace Referer."""
        return {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self.HOMEPAGE or url,
        }

    def _fetch_html(
        self, url: str, deadline: float | None = None,
    ) -> str | None:
        """Fetch a product page through the shared resilient transport."""
        return self.fetcher.fetch(url, self._build_headers(url), deadline)

    def _save_debug_page(self, url: str, html: str) -> None:
        """Dump the raw page for offline inspection (debug runs only)."""
        if not self.settings.DEBUG_SAVE_PAGES:
            return
        try:
            debug_dir = self.settings.DEBUG_DIR
            debug_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            path = debug_dir / f"{self.source_name}_{timestamp}.html"
            path.write_text(html, encoding="utf-8")
            self.logger.debug(
                "[%s] Saved page source of %s to %s",
                self.source_name,
                url,
                path,
            )
        except OSError as exc:
            self.logger.warning(
                "[%s] Could not save debug page: %s",
                self.source_name,
                exc,
            )

    # ------------------------------------------------------------------
    # Extraction pipeline
    # ------------------------------------------------------------------

    def _match_raw_document(self, html: str) -> str | None:
        """Step 1: first currency-prefixed decimal in the raw markup."""
        match = _RAW_PRICE_RE.search(html)
        return match.group(0) if match else None

    def _match_selectors(self, soup: BeautifulSoup) -> str | None:
        """Step 2: marketplace price containers, most specific first."""
        for selector in self.selectors.get("price", []):
            for el in soup.select(selector):
                text = el.get_text(" ", strip=True)
                match = (
                    _CURRENCY_PRICE_RE.search(text)
                    or _BARE_DECIMAL_RE.search(text)
                )
                if match:
                    self.logger.debug(
                        "[%s] Selector '%s' matched '%s'",
                        self.source_name,
                        selector,
                        match.group(0),
                    )
                    return match.group(0)
                attr_value = self._price_attribute(el)
                if attr_value:
                    return attr_value
        return None

    @staticmethod
    def _price_attribute(el: Tag) -> str | None:
        """Read a bare amount from ``content`` / ``data-price`` attrs."""
        for attr in ("content", "data-price", "data-pdp-price"):
            raw = el.get(attr)
            if isinstance(raw, str) and _BARE_NUMBER_RE.match(raw):
                return raw.strip()
        return None

    def _ordered_scripts(self, soup: BeautifulSoup) -> list[str]:
        """Script bodies, marketplace state blobs first."""
        bodies: list[str] = []
        for script in soup.find_all("script"):
            body = script.string or script.get_text()
            if body and body.strip():
                bodies.append(body)
        if not self.SCRIPT_HINTS:
            return bodies
        hinted = [
            b for b in bodies
            if any(h in b for h in self.SCRIPT_HINTS)
        ]
        rest = [b for b in bodies if b not in hinted]
        return hinted + rest

    def _match_scripts(self, soup: BeautifulSoup) -> str | None:
        """Step 3: known price fields inside inline script/JSON blobs."""
        for body in self._ordered_scripts(soup):
            for pattern in self._script_patterns:
                match = pattern.search(body)
                if match:
                    return match.group(1)
        return None

    def _match_meta(self, soup: BeautifulSoup) -> str | None:
        """Step 4: currency-formatted text in ``<meta content>``."""
        for meta in soup.find_all("meta"):
            content = meta.get("content")
            if not isinstance(content, str):
                continue
            match = _CURRENCY_PRICE_RE.search(content)
            if match:
                return match.group(0)
        return None

    def extract_price_from_html(self, html: str) -> str | None:
        """Run the extraction pipeline over already-fetched markup.

        Steps run in order and the first hit wins: raw-document regex,
        structural selectors, script blobs, then meta tags. The matched
        text is returned as-is; numeric parsing is the caller's job.
        """
        price = self._match_raw_document(html)
        if price:
            self.logger.debug(
                "[%s] Raw document match: %s",
                self.source_name,
                price,
            )
            return price

        soup = BeautifulSoup(html, "lxml")
        for step in (
            self._match_selectors,
            self._match_scripts,
            self._match_meta,
        ):
            price = step(soup)
            if price:
                self.logger.debug(
                    "[%s] %s matched: %s",
                    self.source_name,
                    step.__name__,
                    price,
                )
                return price
        return None

    def extract_price(
        self, url: str, deadline: float | None = None,
    ) -> str | None:
        """Fetch ``url`` and return the raw price text, or None.

        Never raises: network and parse errors are logged and turned
        into ``None`` so one broken page cannot fail a whole batch.
        ``deadline`` is a ``time.monotonic()`` value past which no new
        request is started.
        """
        self.logger.info(
            "[%s] Extracting price from %s",
            self.source_name,
            url,
        )
        try:
            html = self._fetch_html(url, deadline)
            if html is None:
                return None
            self._save_debug_page(url, html)
            price = self.extract_price_from_html(html)
            if price is None:
                self.logger.warning(
                    "[%s] No price found on %s",
                    self.source_name,
                    url,
                )
            return price
        except Exception as exc:
            self.logger.error(
                "[%s] Price extraction failed for %s: %s",
                self.source_name,
                url,
                exc,
                exc_info=True,
            )
            return None
