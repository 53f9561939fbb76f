# competitor_prices/storage/price_cache.py

"""Persistent per-product competitor price snapshot cache."""

import json
import logging
import sqlite3
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, cast

from competitor_prices.models.price_snapshot import (
    CompetitorPrice,
    PriceSnapshot,
)
from competitor_prices.storage.local_storage import LocalStorage

logger = logging.getLogger("competitor_prices.cache")

KEY_PREFIX = "competitor_prices_"


class CacheWriteError(Exception):
    """Raised when a merged snapshot could not be persisted."""


def _price_to_record(cp: CompetitorPrice) -> dict[str, object]:
    """Serialise one entry using the persisted field names."""
    return {
        "competitor": cp.competitor,
        "price": str(cp.price),
        "sourceUrl": cp.source_url,
        "lastUpdated": cp.last_updated.isoformat(),
        "isLive": cp.is_live,
    }


def _price_from_record(
    competitor: str, record: dict[str, Any],
) -> CompetitorPrice:
    """Rebuild an entry, converting the timestamp back to ``datetime``.

    Raises ``ValueError`` / ``KeyError`` on malformed records.
    """
    try:
        price = Decimal(str(record["price"]))
    except InvalidOperation as exc:
        msg = f"bad price {record.get('price')!r}"
        raise ValueError(msg) from exc
    if not price.is_finite() or price < 0:
        msg = f"price out of range: {price}"
        raise ValueError(msg)
    return CompetitorPrice(
        competitor=str(record.get("competitor") or competitor),
        price=price,
        source_url=str(record.get("sourceUrl", "")),
        last_updated=datetime.fromisoformat(
            str(record["lastUpdated"])
        ),
        is_live=bool(record.get("isLive", False)),
    )


def snapshot_to_json(snapshot: PriceSnapshot) -> str:
    """Serialise a snapshot to the persisted JSON document."""
    return json.dumps(
        {name: _price_to_record(cp) for name, cp in snapshot.items()},
        ensure_ascii=False,
    )


def snapshot_from_json(raw: str) -> PriceSnapshot:
    """Parse a persisted snapshot; malformed entries are skipped."""
    data: object = json.loads(raw)
    if not isinstance(data, dict):
        msg = "snapshot document is not an object"
        raise ValueError(msg)
    snapshot: PriceSnapshot = {}
    for name, record in cast(dict[str, object], data).items():
        if not isinstance(record, dict):
            logger.warning(
                "Skipping non-object cache entry for %s", name,
            )
            continue
        try:
            snapshot[name] = _price_from_record(
                name, cast(dict[str, Any], record),
            )
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning(
                "Skipping malformed cache entry for %s: %s",
                name,
                exc,
            )
    return snapshot


class PriceCache:
    """Keyed, timestamped store of competitor price snapshots.

    There is no TTL: staleness is carried by each entry's ``is_live``
    and ``last_updated`` and the caller decides what is acceptable.
    """

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage

    @staticmethod
    def _key(product_id: str) -> str:
        return f"{KEY_PREFIX}{product_id}"

    def get(self, product_id: str) -> PriceSnapshot | None:
        """Return the cached snapshot, or None if absent or unreadable."""
        try:
            raw = self._storage.get_item(self._key(product_id))
            if raw is None:
                return None
            return snapshot_from_json(raw)
        except (sqlite3.Error, ValueError) as exc:
            logger.error(
                "Error reading cached prices for %s: %s",
                product_id,
                exc,
                exc_info=True,
            )
            return None

    def set(
        self, product_id: str, snapshot: PriceSnapshot,
    ) -> PriceSnapshot:
        """Merge ``snapshot`` into the latest persisted one and save it.

        Entries in ``snapshot`` overwrite the stored ones per competitor;
        stored competitors missing from ``snapshot`` are kept. Returns
        the merged snapshot that was written.
        """
        key = self._key(product_id)
        try:
            with self._storage.lock:
                merged = self.get(product_id) or {}
                merged.update(snapshot)
                self._storage.set_item(key, snapshot_to_json(merged))
        except sqlite3.Error as exc:
            raise CacheWriteError(
                f"could not persist prices for {product_id}: {exc}"
            ) from exc
        logger.info(
            "Cached %d competitor prices for product %s",
            len(merged),
            product_id,
        )
        return merged

    def clear(self, product_id: str) -> bool:
        """Drop one product's snapshot. Returns True if it existed."""
        removed = self._storage.remove_item(self._key(product_id))
        logger.info(
            "Cleared cached prices for %s (existed=%s)",
            product_id,
            removed,
        )
        return removed

    def clear_all(self) -> int:
        """Drop every cached snapshot. Returns the number removed."""
        count = 0
        for key in self._storage.keys(KEY_PREFIX):
            if self._storage.remove_item(key):
                count += 1
        logger.info(
            "Cache manually purged (%d snapshots removed)", count,
        )
        return count
