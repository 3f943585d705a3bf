"""Tests for the quota-aware cache: usage, eviction and guarded writes."""

import json
import logging

import pytest

from ghsum.config import (
    EVICTION_PRIORITY,
    FORM_SETTINGS_KEY,
    ITEM_UI_STATE_KEY,
    RAW_DATA_KEY,
    SAFE_LIMIT,
    SEARCH_RESULTS_KEY,
    UI_SETTINGS_KEY,
    QuotaBudget,
)
from ghsum.kv_store import MemoryKeyValueStore
from ghsum.storage import (
    BoundedCache,
    EvictionPolicy,
    GuardedWriter,
    UsageTracker,
    storage_stats,
)
from ghsum.types import StorageEntry, WriteResult
from tests.conftest import MB, FlakyStore, filler, quota_error


class BrokenReadStore(MemoryKeyValueStore):
    """Store where reading one key fails."""

    def __init__(self, bad_key, **kwargs):
        super().__init__(**kwargs)
        self.bad_key = bad_key

    def get(self, key):
        if key == self.bad_key:
            raise OSError("read failed")
        return super().get(key)


# ---------------------------------------------------------------------------
# Usage tracking
# ---------------------------------------------------------------------------

class TestUsageTracker:

    def test_size_is_utf8_byte_length(self, kv):
        """Multi-byte characters count by encoded size, not characters."""
        kv.set("ascii", "hello")
        kv.set("latin", "café")
        kv.set("emoji", "😀😀")
        tracker = UsageTracker(kv)
        assert tracker.size_of("ascii") == 5
        assert tracker.size_of("latin") == 5
        assert tracker.size_of("emoji") == 8

    def test_missing_key_is_zero(self, kv):
        assert UsageTracker(kv).size_of("nope") == 0

    def test_lone_surrogate_is_sized(self, kv):
        """A title truncated mid-emoji still has a size."""
        kv.set("broken", json.loads('"a\\ud83d"'))
        assert UsageTracker(kv).size_of("broken") == 4

    def test_total_used_sums_all_keys(self, kv):
        kv.set("a", filler(100))
        kv.set("b", filler(250))
        kv.set("c", "ü")
        assert UsageTracker(kv).total_used() == 352

    def test_unreadable_key_counts_as_zero(self):
        store = BrokenReadStore("bad", initial={"good": filler(10), "bad": filler(50)})
        tracker = UsageTracker(store)
        assert not tracker.read_size("bad").ok
        assert tracker.size_of("bad") == 0
        assert tracker.total_used() == 10

    def test_list_entries_sorted_by_size_then_key(self, kv):
        kv.set("b", filler(10))
        kv.set("a", filler(10))
        kv.set("big", filler(99))
        kv.set("empty", "")
        assert UsageTracker(kv).list_entries() == [
            StorageEntry("big", 99),
            StorageEntry("a", 10),
            StorageEntry("b", 10),
            StorageEntry("empty", 0),
        ]

    def test_has_enough_space(self, kv):
        budget = QuotaBudget(safe_limit=100, report_limit=200)
        kv.set("a", filler(60))
        tracker = UsageTracker(kv)
        assert tracker.has_enough_space(40, budget)
        assert not tracker.has_enough_space(41, budget)


# ---------------------------------------------------------------------------
# Eviction
# ---------------------------------------------------------------------------

class TestEvictionPolicy:

    def _budget(self):
        return QuotaBudget(safe_limit=1000, report_limit=2000)

    def test_no_eviction_when_space_available(self, kv):
        kv.set(SEARCH_RESULTS_KEY, filler(400))
        policy = EvictionPolicy(kv, budget=self._budget())
        assert policy.reclaim("target", 500) is True
        assert kv.get(SEARCH_RESULTS_KEY) is not None

    def test_evicts_in_priority_order_and_stops_early(self, kv):
        kv.set(UI_SETTINGS_KEY, filler(300))
        kv.set(RAW_DATA_KEY, filler(300))
        kv.set(SEARCH_RESULTS_KEY, filler(300))
        policy = EvictionPolicy(kv, budget=self._budget())

        assert policy.reclaim("target", 300) is True
        # First priority key is enough: 600 + 300 <= 1000
        assert kv.get(SEARCH_RESULTS_KEY) is None
        assert kv.get(RAW_DATA_KEY) is not None
        assert kv.get(UI_SETTINGS_KEY) is not None

    def test_never_evicts_target_key(self, kv):
        kv.set(SEARCH_RESULTS_KEY, filler(900))
        policy = EvictionPolicy(kv, budget=self._budget())
        assert policy.reclaim(SEARCH_RESULTS_KEY, 200) is False
        assert kv.get(SEARCH_RESULTS_KEY) == filler(900)

    def test_never_evicts_keys_outside_priority_list(self, kv):
        kv.set("user-notes", filler(700))
        kv.set(ITEM_UI_STATE_KEY, filler(200))
        policy = EvictionPolicy(kv, budget=self._budget())

        assert policy.reclaim("target", 400) is False
        assert kv.get("user-notes") == filler(700)
        # Evictions already performed are kept
        assert kv.get(ITEM_UI_STATE_KEY) is None

    def test_usage_never_increases(self, kv):
        for i, key in enumerate(EVICTION_PRIORITY):
            kv.set(key, filler(100 + i))
        kv.set("other", filler(500))
        tracker = UsageTracker(kv)
        policy = EvictionPolicy(kv, tracker, budget=self._budget())
        for required in (0, 200, 800, 5000):
            before = tracker.total_used()
            policy.reclaim("other", required)
            assert tracker.total_used() <= before

    def test_custom_priority_order(self, kv):
        kv.set("first", filler(500))
        kv.set("second", filler(500))
        policy = EvictionPolicy(kv, budget=self._budget(), priority=["second", "first"])
        assert policy.reclaim("target", 100) is True
        assert kv.get("second") is None
        assert kv.get("first") is not None

    def test_deterministic(self):
        def run():
            store = MemoryKeyValueStore(initial={k: filler(200) for k in EVICTION_PRIORITY})
            EvictionPolicy(store, budget=self._budget()).reclaim("target", 500)
            return sorted(store.keys())
        assert run() == run()

    def test_eviction_is_logged(self, kv, caplog):
        kv.set(RAW_DATA_KEY, filler(900))
        policy = EvictionPolicy(kv, budget=self._budget())
        with caplog.at_level(logging.WARNING, logger="ghsum"):
            policy.reclaim("target", 200)
        assert RAW_DATA_KEY in caplog.text


# ---------------------------------------------------------------------------
# Guarded writes
# ---------------------------------------------------------------------------

class TestGuardedWriter:

    def test_plain_write_succeeds(self, kv):
        writer = GuardedWriter(kv)
        assert writer.write("k", "v") is WriteResult.SUCCESS
        assert kv.get("k") == "v"

    def test_scenario_evicts_legacy_key_to_make_room(self):
        """4.4MB used, 0.2MB evictable legacy key, 0.3MB write elsewhere."""
        legacy = int(0.2 * MB)
        used = int(4.4 * MB)
        store = MemoryKeyValueStore(initial={
            "user-notes": filler(used - legacy),
            RAW_DATA_KEY: filler(legacy),
        })
        value = filler(int(0.3 * MB))

        result = GuardedWriter(store).write(FORM_SETTINGS_KEY, value)

        assert result is WriteResult.SUCCESS
        assert store.get(RAW_DATA_KEY) is None
        assert store.get(FORM_SETTINGS_KEY) == value
        assert UsageTracker(store).total_used() <= SAFE_LIMIT

    def test_scenario_full_store_refuses(self):
        """At the safe limit with nothing evictable, writes are refused."""
        store = FlakyStore(initial={"user-notes": filler(SAFE_LIMIT)})
        result = GuardedWriter(store).write(FORM_SETTINGS_KEY, "x")
        assert result is WriteResult.REFUSED
        assert store.set_calls == 0
        assert list(store.keys()) == ["user-notes"]

    def test_overwrite_counts_existing_value(self, kv):
        """Replacing a value only needs room for the difference."""
        budget = QuotaBudget(safe_limit=1000, report_limit=2000)
        kv.set("k", filler(600))
        kv.set("other", filler(300))
        assert GuardedWriter(kv, budget=budget).write("k", filler(700)) is WriteResult.SUCCESS

    def test_quota_error_evicts_and_retries_once(self):
        budget = QuotaBudget(safe_limit=1000, report_limit=2000)
        store = FlakyStore(errors=[quota_error()], initial={
            "k": filler(300),
            RAW_DATA_KEY: filler(500),
        })
        result = GuardedWriter(store, budget=budget).write("k", filler(400))

        assert result is WriteResult.SUCCESS
        assert store.set_calls == 2
        assert store.get(RAW_DATA_KEY) is None
        assert store.get("k") == filler(400)

    def test_quota_error_on_retry_fails(self):
        store = FlakyStore(errors=[quota_error(), quota_error()])
        result = GuardedWriter(store).write("k", "v")
        assert result is WriteResult.FAILED
        assert store.set_calls == 2
        assert store.get("k") is None

    def test_quota_error_without_reclaimable_space_fails_without_retry(self):
        budget = QuotaBudget(safe_limit=1000, report_limit=2000)
        store = FlakyStore(errors=[quota_error()], initial={
            "k": filler(600),
            "other": filler(400),
        })
        result = GuardedWriter(store, budget=budget).write("k", filler(600))
        assert result is WriteResult.FAILED
        assert store.set_calls == 1
        assert store.get("k") == filler(600)

    def test_other_errors_fail_without_retry(self):
        store = FlakyStore(errors=[RuntimeError("disk on fire")])
        result = GuardedWriter(store).write("k", "v")
        assert result is WriteResult.FAILED
        assert store.set_calls == 1

    def test_store_hard_limit_below_safe_limit(self):
        """The store's own quota is enforced even when the soft check passes."""
        store = MemoryKeyValueStore(hard_limit=100)
        result = GuardedWriter(store).write("k", filler(101))
        assert result is WriteResult.FAILED
        assert store.get("k") is None

    def test_write_result_truthiness(self):
        assert WriteResult.SUCCESS
        assert not WriteResult.REFUSED
        assert not WriteResult.FAILED

    def test_write_json(self, kv):
        assert GuardedWriter(kv).write_json("k", {"a": 1})
        assert kv.get("k") == '{"a": 1}'

    def test_write_with_lone_surrogate_returns_result(self, kv):
        value = json.dumps({"title": json.loads('"\\ud83d"')}, ensure_ascii=False)
        assert GuardedWriter(kv).write("k", value) is WriteResult.SUCCESS
        assert kv.get("k") == value


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

class TestStorageStats:

    def test_percent_is_against_report_limit(self, kv):
        kv.set("a", filler(MB))
        s = storage_stats(UsageTracker(kv))
        assert s.max_size == 5 * MB
        assert s.usage_percent == pytest.approx(20.0)
        assert s.available_space == 4 * MB
        assert s.is_near_limit is False

    def test_near_limit_above_eighty_percent(self, kv):
        kv.set("a", filler(4 * MB + 1))
        assert storage_stats(UsageTracker(kv)).is_near_limit is True

    def test_exactly_eighty_percent_is_not_near(self, kv):
        kv.set("a", filler(4 * MB))
        assert storage_stats(UsageTracker(kv)).is_near_limit is False

    def test_near_limit_warning_comes_before_refusal(self):
        """Admission (4.5MB) and reporting (5MB) use different ceilings."""
        store = MemoryKeyValueStore(initial={"user-notes": filler(4 * MB + 1)})
        cache = BoundedCache(store)
        assert cache.stats().is_near_limit is True
        assert cache.write("k", filler(20)) is WriteResult.SUCCESS

        store.set("user-notes", filler(SAFE_LIMIT - 10))
        assert cache.write("k", filler(20)) is WriteResult.REFUSED
        s = cache.stats()
        assert s.is_near_limit is True
        assert s.usage_percent < 100

    def test_near_limit_threshold_is_below_safe_limit(self):
        budget = QuotaBudget()
        assert budget.report_limit * budget.near_limit_percent / 100 < budget.safe_limit

    def test_budget_rejects_inverted_limits(self):
        with pytest.raises(ValueError):
            QuotaBudget(safe_limit=10, report_limit=10)
