"""
Reconcile raw events and search items into one view.

Three modes:

- events:  windowed events, in upstream order
- search:  windowed search items, in upstream order
- summary: both, de-duplicated by identity with search items winning
           (they carry the fuller payload), newest first

Nothing is cached here; every call recomputes from its inputs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Union

from .categorize import categorize_search_items, process_raw_events
from .types import ApiMode, Record
from .window import DateLike

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Records for the selected mode plus the per-source tab counts."""
    mode: ApiMode
    records: list[Record] = field(default_factory=list)
    # Windowed, categorized counts (not raw source sizes)
    events_count: int = 0
    search_items_count: int = 0
    raw_events_count: int = 0

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def count_for(self, mode: Union[ApiMode, str]) -> int:
        """
        Tab count for a mode.

        Summary counts the merged view, so only a summary result has it.

        Raises:
            ValueError: if asked for the summary count of an events or
                search result
        """
        mode = ApiMode(mode)
        if mode is ApiMode.EVENTS:
            return self.events_count
        if mode is ApiMode.SEARCH:
            return self.search_items_count
        if self.mode is not ApiMode.SUMMARY:
            raise ValueError(f"summary count is not available from a {self.mode.value} result")
        return len(self.records)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "events_count": self.events_count,
            "search_items_count": self.search_items_count,
            "raw_events_count": self.raw_events_count,
            "records": [r.to_dict() for r in self.records],
        }


def merge_records(search_records: Iterable[Record], event_records: Iterable[Record]) -> list[Record]:
    """
    Merge two categorized collections.

    Search records go in first, then events whose identity has not been
    seen. The stable sort keeps search-before-event order for equal
    timestamps.
    """
    seen: set[str] = set()
    combined: list[Record] = []
    for record in list(search_records) + list(event_records):
        if record.identity in seen:
            continue
        seen.add(record.identity)
        combined.append(record)
    combined.sort(key=lambda r: r.timestamp, reverse=True)
    return combined


class Reconciler:
    """Applies one reconciliation mode to a pair of raw collections."""

    def __init__(self, mode: Union[ApiMode, str] = ApiMode.SUMMARY):
        self.mode = ApiMode(mode)

    def run(
        self,
        raw_events: list[dict[str, Any]],
        raw_search_items: list[dict[str, Any]],
        start: DateLike,
        end: DateLike,
    ) -> ReconciliationResult:
        events = process_raw_events(raw_events, start, end)
        search_items = categorize_search_items(raw_search_items, start, end)

        if self.mode is ApiMode.EVENTS:
            records = events
        elif self.mode is ApiMode.SEARCH:
            records = search_items
        else:
            records = merge_records(search_items, events)

        logger.debug(
            "Reconciled %s: %d events, %d search items -> %d records",
            self.mode.value, len(events), len(search_items), len(records),
        )
        return ReconciliationResult(
            mode=self.mode,
            records=records,
            events_count=len(events),
            search_items_count=len(search_items),
            raw_events_count=len(raw_events),
        )


def reconcile(
    raw_events: list[dict[str, Any]],
    raw_search_items: list[dict[str, Any]],
    start: DateLike,
    end: DateLike,
    mode: Union[ApiMode, str] = ApiMode.SUMMARY,
) -> ReconciliationResult:
    """Convenience wrapper around ``Reconciler(mode).run``."""
    return Reconciler(mode).run(raw_events, raw_search_items, start, end)
