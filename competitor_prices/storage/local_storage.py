# competitor_prices/storage/local_storage.py

"""SQLite-backed string key-value store that survives restarts."""

import logging
import sqlite3
import threading
from pathlib import Path

from competitor_prices.config.settings import Settings

logger = logging.getLogger("competitor_prices.storage")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class LocalStorage:
    """Durable ``key -> str`` storage.

    One connection is shared by the worker threads that
    ``asyncio.to_thread`` hands cache and repository calls to, so every
    statement runs under a lock.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.STORAGE_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("LocalStorage opened at %s", path)

    @property
    def lock(self) -> threading.RLock:
        """Lock for callers doing read-modify-write across calls."""
        return self._lock

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def get_item(self, key: str) -> str | None:
        """Return the stored string, or None if the key is absent."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?",
                (key,),
            ).fetchone()
        return str(row[0]) if row else None

    def set_item(self, key: str, value: str) -> None:
        """Insert or overwrite ``key``."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) "
                "VALUES (?, ?, datetime('now')) "
                "ON CONFLICT(key) DO UPDATE SET "
                "value=excluded.value, updated_at=excluded.updated_at",
                (key, value),
            )
            self._conn.commit()

    def remove_item(self, key: str) -> bool:
        """Delete ``key``. Returns True if something was removed."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM kv_store WHERE key = ?", (key,),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def keys(self, prefix: str = "") -> list[str]:
        """All keys starting with ``prefix``, sorted."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM kv_store ORDER BY key",
            ).fetchall()
        return [
            str(r[0]) for r in rows
            if str(r[0]).startswith(prefix)
        ]
