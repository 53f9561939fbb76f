# competitor_prices/config/settings.py

"""Central configuration for the competitor price engine."""

import os
from datetime import timedelta
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag such as ``1`` / ``true`` from the environment."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Central configuration for the competitor price engine."""

    # --- Scraping ---
    REQUEST_DELAY: float = 1.0          # Seconds before each page request
    REQUEST_TIMEOUT: int = 10           # Seconds before a request times out
    MAX_RETRIES: int = 2                # Retry count on transient failures

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0  # Seconds before half-open
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Extraction ---
    EXTRACTION_TIMEOUT: float = float(
        os.getenv("PRICE_EXTRACTION_TIMEOUT", "15")
    )                                   # Per-competitor timeout (secs)
    CURRENCY: str = "SGD"
    SCRIPT_PRICE_FIELDS: list[str] = [
        "price",
        "salePrice",
        "displayPrice",
        "originPrice",
    ]
    DEBUG_SAVE_PAGES: bool = _env_flag("PRICE_DEBUG_SAVE_PAGES")

    # --- Cache / refresh ---
    STALE_FALLBACK_AGE: timedelta = timedelta(days=1)
    COALESCE_REQUESTS: bool = _env_flag("PRICE_COALESCE_REQUESTS")
    POLL_INTERVAL: float = 2.0          # Seconds between cache peeks
    POLL_TIMEOUT: float = 30.0          # Give up polling after (secs)

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    )
    DEFAULT_HEADERS: dict[str, str] = {
        "User-Agent": USER_AGENT,
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-SG,en;q=0.9",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    CONFIG_DIR: Path = Path(__file__).resolve().parent
    SELECTORS_PATH: Path = CONFIG_DIR / "selectors.json"
    PRODUCT_URLS_PATH: Path = CONFIG_DIR / "product_urls.json"
    DATA_DIR: Path = Path(
        os.getenv("PRICE_DATA_DIR", str(BASE_DIR / "data"))
    )
    STORAGE_PATH: Path = DATA_DIR / "local_storage.db"
    PRICE_DB_PATH: Path = DATA_DIR / "price_history.db"
    DEBUG_DIR: Path = BASE_DIR / "debug_pages"
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Strategies (registration order matters: generic last) ---
    AVAILABLE_STRATEGIES: list[dict[str, str]] = [
        {
            "id": "lazada",
            "label": "Lazada",
            "strategy": (
                "competitor_prices.strategies.lazada_strategy"
                ".LazadaExtractionStrategy"
            ),
        },
        {
            "id": "shopee",
            "label": "Shopee",
            "strategy": (
                "competitor_prices.strategies.shopee_strategy"
                ".ShopeeExtractionStrategy"
            ),
        },
        {
            "id": "scubawarehouse",
            "label": "ScubaWarehouse",
            "strategy": (
                "competitor_prices.strategies.scubawarehouse_strategy"
                ".ScubaWarehouseExtractionStrategy"
            ),
        },
        {
            "id": "generic",
            "label": "Generic",
            "strategy": (
                "competitor_prices.strategies.generic_strategy"
                ".GenericExtractionStrategy"
            ),
        },
    ]
