# competitor_prices/storage/price_history_db.py

"""SQLite-backed log of every live competitor price observation."""

import logging
import sqlite3
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from competitor_prices.config.settings import Settings
from competitor_prices.models.price_observation import PriceObservation
from competitor_prices.models.price_snapshot import PriceSnapshot

logger = logging.getLogger("competitor_prices.price_history")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS observations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id  TEXT    NOT NULL,
    competitor  TEXT    NOT NULL,
    price       TEXT    NOT NULL,
    source_url  TEXT    NOT NULL,
    observed_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_observations_product_date
    ON observations(product_id, competitor, observed_at);
"""


class PriceHistoryDB:
    """SQLite-backed store of live competitor price observations.

    Prices are stored as decimal strings so that history never picks
    up binary float rounding.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.PRICE_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug(
            "PriceHistoryDB opened at %s", path,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Recording ────────────────────────────────────────

    def record_observations(
        self,
        product_id: str,
        snapshot: PriceSnapshot,
    ) -> int:
        """Insert one row per live entry of ``snapshot``.

        Stale and never-observed entries are skipped since they
        repeat an older observation. Returns the number inserted.
        """
        rows = [
            (
                product_id,
                cp.competitor,
                str(cp.price),
                cp.source_url,
                cp.last_updated.isoformat(),
            )
            for cp in snapshot.values()
            if cp.is_live
        ]
        if not rows:
            return 0
        with self._lock:
            self._conn.executemany(
                "INSERT INTO observations "
                "(product_id, competitor, price, source_url, observed_at) "
                "VALUES (?, ?, ?, ?, ?)",
                rows,
            )
            self._conn.commit()
        logger.info(
            "Recorded %d price observations for %s",
            len(rows),
            product_id,
        )
        return len(rows)

    # ── Querying ─────────────────────────────────────────

    def get_price_history(
        self,
        product_id: str,
        competitor: str | None = None,
    ) -> list[PriceObservation]:
        """Return observations for a product, oldest first."""
        sql = (
            "SELECT product_id, competitor, price, source_url, "
            "       observed_at "
            "FROM observations WHERE product_id = ?"
        )
        params: tuple[str, ...] = (product_id,)
        if competitor is not None:
            sql += " AND competitor = ?"
            params = (product_id, competitor)
        sql += " ORDER BY observed_at ASC, id ASC"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [
            PriceObservation(
                product_id=r[0],
                competitor=r[1],
                price=Decimal(r[2]),
                source_url=r[3],
                observed_at=datetime.fromisoformat(r[4]),
            )
            for r in rows
        ]

    def get_trend_summary(
        self, product_id: str, competitor: str,
    ) -> dict[str, object] | None:
        """Compute min / max / avg / latest price for one competitor."""
        history = self.get_price_history(product_id, competitor)
        if not history:
            return None
        prices = [o.price for o in history]
        avg = sum(prices, Decimal(0)) / len(prices)
        return {
            "min": min(prices),
            "max": max(prices),
            "avg": avg.quantize(Decimal("0.01")),
            "count": len(prices),
            "latest": history[-1].price,
            "last_observed": history[-1].observed_at,
        }
