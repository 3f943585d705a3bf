"""
GitHub activity summary cache

Reconciles GitHub events and search results into one de-duplicated,
newest-first view, and keeps derived state in a size-bounded local
key-value cache that evicts low-priority keys instead of failing writes.

Quick Start:
    from ghsum import BoundedCache, MemoryKeyValueStore, reconcile

    cache = BoundedCache(MemoryKeyValueStore())
    cache.write("github-ui-settings", '{"compact": true}')

    result = reconcile(raw_events, raw_search_items, "2024-01-01", "2024-01-31")
    for record in result:
        print(record.timestamp, record.identity)

CLI Usage:
    ghsum ingest events events.json
    ghsum results --mode summary --start 2024-01-01 --end 2024-01-31
    ghsum stats

Default Store:
    ~/.ghsum/ (created automatically). Override with GHSUM_STORE_PATH or --store.

Environment Variables:
    GHSUM_STORE_PATH  - Override default store location
    GHSUM_VERBOSE     - Set to 1 for debug logging in the CLI
"""

from .config import DEFAULT_BUDGET, EVICTION_PRIORITY, PURGE_KEYS, QuotaBudget, StoreConfig
from .kv_store import MemoryKeyValueStore, SqliteKeyValueStore
from .reconcile import Reconciler, ReconciliationResult, reconcile
from .record_store import RecordStore
from .storage import (
    BoundedCache,
    CachePurge,
    EvictionPolicy,
    GuardedWriter,
    PurgeOutcome,
    UsageTracker,
    storage_stats,
)
from .types import ApiMode, Record, SourceKind, StorageEntry, WriteResult
from .window import in_window

__version__ = "0.1.0"
__all__ = [
    "ApiMode",
    "BoundedCache",
    "CachePurge",
    "DEFAULT_BUDGET",
    "EVICTION_PRIORITY",
    "EvictionPolicy",
    "GuardedWriter",
    "MemoryKeyValueStore",
    "PURGE_KEYS",
    "PurgeOutcome",
    "QuotaBudget",
    "Record",
    "RecordStore",
    "Reconciler",
    "ReconciliationResult",
    "SourceKind",
    "SqliteKeyValueStore",
    "StorageEntry",
    "StoreConfig",
    "UsageTracker",
    "WriteResult",
    "in_window",
    "reconcile",
    "storage_stats",
]
