# competitor_prices/repositories/product_url_repository.py

"""Lookup table of competitor listing URLs per product."""

import json
import logging
from pathlib import Path
from typing import Any, cast

from competitor_prices.config.settings import Settings
from competitor_prices.storage.local_storage import LocalStorage

logger = logging.getLogger("competitor_prices.url_repository")

KEY_PREFIX = "product_urls_"

# competitor -> listing URL (None = no known listing)
ProductUrlEntry = dict[str, str | None]


def model_key(brand: str, model: str) -> str:
    """Normalise brand/model into the ``by_model`` table key."""
    return f"{brand.strip().lower()}|{' '.join(model.lower().split())}"


def load_url_table(
    path: Path | None = None,
) -> dict[str, dict[str, ProductUrlEntry]]:
    """Load the static ``by_id`` / ``by_model`` tables from JSON."""
    table_path = path or Settings.PRODUCT_URLS_PATH
    with open(table_path, encoding="utf-8") as f:
        data: dict[str, Any] = json.load(f)
    return {
        "by_id": cast(dict[str, ProductUrlEntry], data.get("by_id", {})),
        "by_model": cast(
            dict[str, ProductUrlEntry], data.get("by_model", {})
        ),
    }


def _known_only(entry: ProductUrlEntry) -> dict[str, str]:
    """Drop competitors without a known listing."""
    return {name: url for name, url in entry.items() if url}


class ProductUrlRepository:
    """Resolves a product to the competitor URLs it is listed under.

    Lookup order: URLs saved for the product id in local storage, then
    the static table by product id, then by normalised brand/model.
    Nothing is ever searched for; an unknown product maps to ``{}``.
    """

    def __init__(
        self,
        storage: LocalStorage,
        table: dict[str, dict[str, ProductUrlEntry]] | None = None,
    ) -> None:
        self._storage = storage
        self._table = table if table is not None else load_url_table()

    @staticmethod
    def _key(product_id: str) -> str:
        return f"{KEY_PREFIX}{product_id}"

    def _saved_urls(self, product_id: str) -> ProductUrlEntry | None:
        raw = self._storage.get_item(self._key(product_id))
        if raw is None:
            return None
        data: object = json.loads(raw)
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring malformed saved URLs for %s", product_id,
            )
            return None
        return cast(ProductUrlEntry, data)

    def _static_urls(
        self, product_id: str, brand: str, model: str,
    ) -> ProductUrlEntry | None:
        by_id = self._table.get("by_id", {})
        if product_id in by_id:
            return dict(by_id[product_id])
        by_model = self._table.get("by_model", {})
        key = model_key(brand, model)
        if key in by_model:
            return dict(by_model[key])
        return None

    def get_competitor_urls(
        self, product_id: str, brand: str, model: str,
    ) -> dict[str, str]:
        """Return ``competitor -> url`` for every known listing."""
        entry = self._saved_urls(product_id)
        source = "saved"
        if entry is None:
            entry = self._static_urls(product_id, brand, model)
            source = "static"
        if entry is None:
            logger.info(
                "No competitor URLs known for %s %s (ID: %s)",
                brand,
                model,
                product_id,
            )
            return {}
        urls = _known_only(entry)
        logger.debug(
            "Resolved %d competitor URLs for %s from %s table",
            len(urls),
            product_id,
            source,
        )
        return urls

    def save_competitor_urls(
        self, product_id: str, urls: ProductUrlEntry,
    ) -> None:
        """Persist a full URL mapping that overrides the static table."""
        self._storage.set_item(
            self._key(product_id),
            json.dumps(urls, ensure_ascii=False),
        )
        logger.info(
            "Saved %d competitor URLs for %s", len(urls), product_id,
        )

    def add_competitor_url(
        self, product_id: str, competitor: str, url: str,
    ) -> None:
        """Add or replace one competitor's URL for a product."""
        with self._storage.lock:
            urls = self._saved_urls(product_id)
            if urls is None:
                urls = dict(
                    self._table.get("by_id", {}).get(product_id, {})
                )
            urls[competitor] = url
            self.save_competitor_urls(product_id, urls)
