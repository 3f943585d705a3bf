"""
Quota-aware access to the key-value cache.

The cache holds small derived state (result caches, UI settings, form
settings) in a key-value store with a hard byte quota. Writes go through
GuardedWriter, which:

1. Checks the write against the soft ``safe_limit`` and, if needed, asks
   EvictionPolicy to free space by removing keys in a fixed priority order.
2. Writes, and if the store still reports its quota exceeded (the store's
   limit can be stricter than ours), evicts once more and retries once.

Running out of space is an expected outcome, reported as
``WriteResult.REFUSED`` / ``WriteResult.FAILED``, never raised.

None of this is atomic. Callers must serialize writers that touch
overlapping keys; a concurrent writer can observe a stale usage total.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from .config import (
    DEFAULT_BUDGET,
    EVICTION_PRIORITY,
    FORM_SETTINGS_KEY,
    PURGE_KEYS,
    SECRET_FIELD,
    QuotaBudget,
)
from .errors import MalformedEntryError, QuotaExceededError
from .kv_store import byte_size
from .protocol import BulkStoreProtocol, KeyValueStoreProtocol
from .types import Err, Ok, Result, StorageEntry, WriteResult

logger = logging.getLogger(__name__)


class UsageTracker:
    """Byte accounting over a key-value store."""

    def __init__(self, store: KeyValueStoreProtocol):
        self._store = store

    def read_size(self, key: str) -> Result[int]:
        """Size of the value at ``key``, or the read error."""
        try:
            return Ok(byte_size(self._store.get(key)))
        except Exception as e:
            return Err(e)

    def size_of(self, key: str) -> int:
        """UTF-8 byte size of the value at ``key``; 0 if absent or unreadable."""
        result = self.read_size(key)
        if not result.ok:
            logger.debug("Could not read %s, counting as 0 bytes: %s", key, result.error)
        return result.unwrap_or(0)

    def _keys(self) -> list[str]:
        try:
            return list(self._store.keys())
        except Exception as e:
            logger.warning("Could not enumerate store keys: %s", e)
            return []

    def total_used(self) -> int:
        """Sum of value sizes over every stored key."""
        return sum(self.size_of(key) for key in self._keys())

    def list_entries(self) -> list[StorageEntry]:
        """All stored keys with sizes, largest first, then by key name."""
        entries = [StorageEntry(key, self.size_of(key)) for key in self._keys()]
        entries.sort(key=lambda e: (-e.size_bytes, e.key))
        return entries

    def has_enough_space(self, required: int, budget: QuotaBudget = DEFAULT_BUDGET) -> bool:
        return self.total_used() + required <= budget.safe_limit


class EvictionPolicy:
    """
    Frees space by removing keys from a static priority list.

    Priority is fixed (stale raw caches before UI preferences), not usage
    based: the key namespace is small and known in advance.
    """

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        tracker: Optional[UsageTracker] = None,
        budget: QuotaBudget = DEFAULT_BUDGET,
        priority: Sequence[str] = EVICTION_PRIORITY,
    ):
        self._store = store
        self._tracker = tracker or UsageTracker(store)
        self.budget = budget
        self.priority = tuple(priority)

    def fits(self, required: int) -> bool:
        return self._tracker.total_used() + required <= self.budget.safe_limit

    def reclaim(self, target_key: str, required: int) -> bool:
        """
        Evict until ``required`` more bytes fit under the safe limit.

        Never evicts ``target_key`` or keys outside the priority list.
        Evictions are kept even when the list runs out before enough
        space is free.

        Returns:
            True if ``total_used() + required <= safe_limit`` afterwards
        """
        if self.fits(required):
            return True

        for key in self.priority:
            if key == target_key:
                continue
            try:
                if self._store.get(key) is None:
                    continue
                self._store.remove(key)
            except Exception as e:
                logger.error("Failed to evict %s: %s", key, e)
                continue
            logger.warning("Removed old data from store: %s", key)
            if self.fits(required):
                return True

        return self.fits(required)


class GuardedWriter:
    """Writes that respect the quota, with one evict-and-retry cycle."""

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        tracker: Optional[UsageTracker] = None,
        policy: Optional[EvictionPolicy] = None,
        budget: QuotaBudget = DEFAULT_BUDGET,
    ):
        self._store = store
        self._tracker = tracker or UsageTracker(store)
        self._policy = policy or EvictionPolicy(store, self._tracker, budget)
        self.budget = budget

    def write(self, key: str, value: str) -> WriteResult:
        """
        Persist ``value`` at ``key``.

        Returns:
            SUCCESS if stored; REFUSED if eviction could not make room (the
            store is not written); FAILED if the store rejected the write.
        """
        size = byte_size(value)
        projected = self._tracker.total_used() - self._tracker.size_of(key) + size

        if projected > self.budget.safe_limit:
            if not self._policy.reclaim(key, size):
                logger.warning("Not enough space for %s (%d bytes). Data will not be saved.", key, size)
                return WriteResult.REFUSED

        try:
            self._store.set(key, value)
            return WriteResult.SUCCESS
        except QuotaExceededError:
            logger.error("Store quota exceeded for key %r. Attempting cleanup...", key)
        except Exception as e:
            logger.error("Error saving key %r: %s", key, e)
            return WriteResult.FAILED

        if not self._policy.reclaim(key, size):
            logger.error("Not enough space even after cleanup. Data for %r will not be saved.", key)
            return WriteResult.FAILED

        try:
            self._store.set(key, value)
        except Exception as e:
            logger.error("Failed to save %r even after cleanup: %s", key, e)
            return WriteResult.FAILED
        logger.info("Saved %r after cleanup", key)
        return WriteResult.SUCCESS

    def write_json(self, key: str, obj: Any) -> WriteResult:
        return self.write(key, json.dumps(obj, ensure_ascii=False))


def read_json(store: KeyValueStoreProtocol, key: str) -> Result[Optional[dict]]:
    """Parse the JSON object stored at ``key``.

    Ok(None) when the key is absent, Err(MalformedEntryError) when the
    value is not a JSON object.
    """
    try:
        raw = store.get(key)
    except Exception as e:
        return Err(e)
    if raw is None:
        return Ok(None)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        return Err(MalformedEntryError(key, str(e)))
    if not isinstance(parsed, dict):
        return Err(MalformedEntryError(key, f"expected object, got {type(parsed).__name__}"))
    return Ok(parsed)


@dataclass
class PurgeOutcome:
    """Result of a purge that keeps one secret field."""
    secret: str
    removed: list[str] = field(default_factory=list)
    bulk_error: Optional[Err] = None

    @property
    def bulk_cleared(self) -> bool:
        return self.bulk_error is None


class CachePurge:
    """Bulk removal of the fixed cache key set."""

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        bulk_store: Optional[BulkStoreProtocol] = None,
        keys: Iterable[str] = PURGE_KEYS,
        secret_key: str = FORM_SETTINGS_KEY,
    ):
        self._store = store
        self._bulk_store = bulk_store
        self.keys = tuple(keys)
        self.secret_key = secret_key

    def purge_all(self) -> list[str]:
        """Remove every purge key that is present. Returns the removed keys."""
        removed = []
        for key in self.keys:
            if self._store.get(key) is None:
                continue
            self._store.remove(key)
            removed.append(key)
            logger.info("Cleared store key: %s", key)
        return removed

    def read_secret(self, secret_field: str = SECRET_FIELD) -> Result[str]:
        """The named field from the secrets entry ("" when absent)."""
        entry = read_json(self._store, self.secret_key)
        if not entry.ok:
            return entry
        value = (entry.value or {}).get(secret_field)
        return Ok(value if isinstance(value, str) else "")

    async def purge_keeping_secret(self, secret_field: str = SECRET_FIELD) -> PurgeOutcome:
        """
        Clear every cache key and the bulk store, keeping one secret.

        The secret is read before the key set (which includes the entry it
        came from) is removed, so the caller can re-seed a fresh entry with
        it. A malformed entry yields an empty secret. A failing bulk clear
        is reported in ``bulk_error`` and does not undo the key removals.
        """
        secret = self.read_secret(secret_field)
        if not secret.ok:
            logger.warning("Could not read %s from %s: %s", secret_field, self.secret_key, secret.error)

        removed = self.purge_all()

        bulk_error = None
        if self._bulk_store is not None:
            try:
                await self._bulk_store.clear()
            except Exception as e:
                logger.error("Failed to clear record store: %s", e)
                bulk_error = Err(e)
            else:
                logger.info("Cleared record store")

        logger.info("Cache cleanup completed, preserved %s for reuse", secret_field)
        return PurgeOutcome(secret=secret.unwrap_or(""), removed=removed, bulk_error=bulk_error)


@dataclass(frozen=True)
class StorageStats:
    """Usage summary against the reporting ceiling."""
    total_size: int
    max_size: int
    usage_percent: float
    available_space: int
    is_near_limit: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_size": self.total_size,
            "max_size": self.max_size,
            "usage_percent": round(self.usage_percent, 2),
            "available_space": self.available_space,
            "is_near_limit": self.is_near_limit,
        }


def storage_stats(tracker: UsageTracker, budget: QuotaBudget = DEFAULT_BUDGET) -> StorageStats:
    """Usage stats against ``report_limit``.

    Admission uses ``safe_limit`` instead. With the default limits the
    near-limit flag (above 80% of 5 MiB) is set before usage reaches
    ``safe_limit``, so a store that fills gradually is flagged before its
    writes are refused. A single write larger than the remaining room is
    refused whatever the flag says.
    """
    total = tracker.total_used()
    max_size = budget.report_limit
    usage_percent = total / max_size * 100
    return StorageStats(
        total_size=total,
        max_size=max_size,
        usage_percent=usage_percent,
        available_space=max_size - total,
        is_near_limit=usage_percent > budget.near_limit_percent,
    )


class BoundedCache:
    """Tracker, eviction, guarded writes and purge over one store."""

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        bulk_store: Optional[BulkStoreProtocol] = None,
        budget: QuotaBudget = DEFAULT_BUDGET,
        priority: Sequence[str] = EVICTION_PRIORITY,
    ):
        self.store = store
        self.budget = budget
        self.tracker = UsageTracker(store)
        self.policy = EvictionPolicy(store, self.tracker, budget, priority)
        self.writer = GuardedWriter(store, self.tracker, self.policy, budget)
        self.purge = CachePurge(store, bulk_store)

    def write(self, key: str, value: str) -> WriteResult:
        return self.writer.write(key, value)

    def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    def stats(self) -> StorageStats:
        return storage_stats(self.tracker, self.budget)
