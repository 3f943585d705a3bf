"""
Key-value stores with a hard byte quota.

Two implementations of KeyValueStoreProtocol:

- MemoryKeyValueStore: dict-backed, for tests and short-lived processes
- SqliteKeyValueStore: persistent store in a single SQLite file

Both account usage as the UTF-8 byte length of stored values and raise
QuotaExceededError when a write would push the total past ``hard_limit``.
The quota is the platform's limit, not the cache's admission limit: the
cache layer (storage.GuardedWriter) tries to stay under a lower soft limit
and treats QuotaExceededError as a signal to evict and retry once.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterator, Optional

from .errors import QuotaExceededError, StoreWriteError
from .types import utc_now

logger = logging.getLogger(__name__)


def byte_size(value: Optional[str]) -> int:
    """UTF-8 byte length of a stored value (0 for absent).

    Lone surrogates (a string cut mid-emoji) count as 3 bytes each.
    """
    if value is None:
        return 0
    return len(value.encode("utf-8", "surrogatepass"))


class MemoryKeyValueStore:
    """In-memory store. Keys enumerate in insertion order."""

    def __init__(self, hard_limit: Optional[int] = None, initial: Optional[dict[str, str]] = None):
        self.hard_limit = hard_limit
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.hard_limit is not None:
            others = sum(byte_size(v) for k, v in self._data.items() if k != key)
            needed = byte_size(value)
            if others + needed > self.hard_limit:
                raise QuotaExceededError(key, needed, self.hard_limit - others)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class SqliteKeyValueStore:
    """
    SQLite-backed key-value store.

    Values are kept as TEXT together with their byte size so that quota
    checks do not need to re-encode every value.
    """

    def __init__(self, db_path: Path, hard_limit: Optional[int] = None):
        """
        Args:
            db_path: Path to SQLite database file
            hard_limit: Maximum total bytes across all values (None = unbounded)
        """
        self._db_path = db_path
        self.hard_limit = hard_limit
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
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                size INTEGER NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def keys(self) -> Iterator[str]:
        rows = self._conn.execute("SELECT key FROM kv ORDER BY rowid").fetchall()
        return iter([r[0] for r in rows])

    def __len__(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM kv").fetchone()[0]

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def set(self, key: str, value: str) -> None:
        """
        Store a value, replacing any existing one.

        Raises:
            QuotaExceededError: if the write would exceed hard_limit
            StoreWriteError: on any database failure
        """
        size = byte_size(value)
        with self._lock:
            try:
                if self.hard_limit is not None:
                    row = self._conn.execute(
                        "SELECT COALESCE(SUM(size), 0) FROM kv WHERE key != ?", (key,)
                    ).fetchone()
                    others = row[0]
                    if others + size > self.hard_limit:
                        raise QuotaExceededError(key, size, self.hard_limit - others)
                self._conn.execute(
                    """
                    INSERT INTO kv (key, value, size, updated_at) VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        size = excluded.size,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, size, utc_now()),
                )
                self._conn.commit()
                logger.debug("Stored %s (%d bytes)", key, size)
            except sqlite3.Error as e:
                raise StoreWriteError(f"Failed to write {key!r}: {e}") from e

    def remove(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self._conn.commit()

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
