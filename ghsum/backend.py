"""
Storage backend factory.

Creates the key-value cache store and the raw record store for a store
directory from its configuration.
"""

import logging
from typing import NamedTuple, Optional

from .config import StoreConfig
from .kv_store import SqliteKeyValueStore
from .record_store import RecordStore
from .storage import BoundedCache

KV_DB_FILENAME = "cache.db"
RECORDS_DB_FILENAME = "records.db"


class StoreBundle(NamedTuple):
    """Collection of storage backends returned by the factory."""
    kv_store: SqliteKeyValueStore
    record_store: RecordStore
    ops_log_handler: Optional[logging.Handler] = None

    def close(self) -> None:
        self.kv_store.close()
        self.record_store.close()
        # Remove ops log handler to avoid handler accumulation
        if self.ops_log_handler is not None:
            logging.getLogger("ghsum").removeHandler(self.ops_log_handler)
            self.ops_log_handler.close()


def create_stores(config: StoreConfig) -> StoreBundle:
    """Open (creating if needed) the SQLite stores under ``config.path``."""
    return StoreBundle(
        kv_store=SqliteKeyValueStore(config.path / KV_DB_FILENAME, hard_limit=config.hard_limit),
        record_store=RecordStore(config.path / RECORDS_DB_FILENAME),
    )


def create_cache(config: StoreConfig, bundle: StoreBundle) -> BoundedCache:
    """Wire a BoundedCache over a bundle using the configured limits."""
    return BoundedCache(
        bundle.kv_store,
        bulk_store=bundle.record_store,
        budget=config.budget,
        priority=config.eviction_priority,
    )
