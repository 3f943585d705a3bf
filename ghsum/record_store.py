"""
Raw record store using SQLite.

Holds the raw upstream collections (GitHub events and search items) as
fetched, so they can be re-windowed and re-reconciled without refetching.
This is the bulk store that sits beside the quota-bound key-value cache:
raw collections are too large for the cache and live here instead.

Upstream order is preserved per source (``position`` column), since the
events-only and search-only views return records in collaborator order.
"""

import asyncio
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from .errors import BulkStoreError
from .types import SourceKind, utc_now

logger = logging.getLogger(__name__)


class RecordStore:
    """
    SQLite-backed store for raw event and search-item collections.

    ``clear()`` is a coroutine so purges can await it like any other
    asynchronous bulk store; the work itself runs in a worker thread.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS raw_records (
                source TEXT NOT NULL,
                position INTEGER NOT NULL,
                payload_json TEXT NOT NULL,
                stored_at TEXT NOT NULL,
                PRIMARY KEY (source, position)
            )
        """)
        self._conn.commit()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def replace(self, source: SourceKind, items: list[dict[str, Any]]) -> int:
        """
        Replace the stored collection for one source.

        Returns:
            Number of items stored
        """
        source = SourceKind(source)
        now = utc_now()
        rows = [
            (source.value, i, json.dumps(item, ensure_ascii=False), now)
            for i, item in enumerate(items)
        ]
        with self._lock:
            self._conn.execute("DELETE FROM raw_records WHERE source = ?", (source.value,))
            self._conn.executemany(
                "INSERT INTO raw_records (source, position, payload_json, stored_at) "
                "VALUES (?, ?, ?, ?)",
                rows,
            )
            self._conn.commit()
        logger.info("Stored %d raw %s records", len(rows), source.value)
        return len(rows)

    def clear_sync(self) -> int:
        """Delete every stored record. Returns count deleted."""
        with self._lock:
            try:
                cursor = self._conn.execute("DELETE FROM raw_records")
                self._conn.commit()
            except sqlite3.Error as e:
                raise BulkStoreError(f"Failed to clear record store: {e}") from e
        return cursor.rowcount

    async def clear(self) -> None:
        """Delete every stored record (awaitable)."""
        deleted = await asyncio.to_thread(self.clear_sync)
        logger.info("Cleared %d raw records", deleted)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def load(self, source: SourceKind) -> list[dict[str, Any]]:
        """Return one source's raw collection in upstream order."""
        source = SourceKind(source)
        rows = self._conn.execute(
            "SELECT payload_json FROM raw_records WHERE source = ? ORDER BY position",
            (source.value,),
        ).fetchall()
        return [json.loads(r[0]) for r in rows]

    def count(self, source: Optional[SourceKind] = None) -> int:
        if source is None:
            row = self._conn.execute("SELECT COUNT(*) FROM raw_records").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM raw_records WHERE source = ?",
                (SourceKind(source).value,),
            ).fetchone()
        return row[0]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
