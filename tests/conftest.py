"""
Shared pytest fixtures for ghsum tests.

Provides in-memory stores, failure-injecting store wrappers and raw
GitHub record builders.
"""

from typing import Any, Optional

import pytest

from ghsum.errors import QuotaExceededError
from ghsum.kv_store import MemoryKeyValueStore

MB = 1024 * 1024


def filler(nbytes: int, char: str = "a") -> str:
    """An ASCII string of exactly ``nbytes`` bytes."""
    return char * nbytes


def raw_event(
    url: str,
    created_at: str,
    type: str = "IssuesEvent",
    title: str = "",
    repo: str = "octo/repo",
    **target_fields: Any,
) -> dict:
    """A raw GitHub event whose target object has ``html_url = url``."""
    target_key = {
        "IssuesEvent": "issue",
        "PullRequestEvent": "pull_request",
        "IssueCommentEvent": "comment",
        "PullRequestReviewEvent": "review",
        "PullRequestReviewCommentEvent": "comment",
    }.get(type, "issue")
    target = {"html_url": url, "title": title or f"event {url}", **target_fields}
    payload: dict[str, Any] = {"action": "opened", target_key: target}
    return {
        "id": f"evt-{url}-{created_at}",
        "type": type,
        "actor": {"login": "octocat"},
        "repo": {"name": repo},
        "created_at": created_at,
        "payload": payload,
    }


def raw_search_item(url: str, updated_at: str, title: str = "", **fields: Any) -> dict:
    """A raw search API item."""
    return {
        "html_url": url,
        "title": title or f"search {url}",
        "state": "open",
        "created_at": updated_at,
        "updated_at": updated_at,
        "user": {"login": "octocat"},
        "labels": [],
        **fields,
    }


class FlakyStore(MemoryKeyValueStore):
    """Memory store whose ``set`` raises the given errors, one per call, first."""

    def __init__(self, errors: Optional[list[Exception]] = None, **kwargs):
        super().__init__(**kwargs)
        self.errors = list(errors or [])
        self.set_calls = 0

    def set(self, key: str, value: str) -> None:
        self.set_calls += 1
        if self.errors:
            raise self.errors.pop(0)
        super().set(key, value)


def quota_error(key: str = "k") -> QuotaExceededError:
    return QuotaExceededError(key, 0, 0)


class RecordingBulkStore:
    """Bulk store that records clear() calls."""

    def __init__(self):
        self.clear_calls = 0

    async def clear(self) -> None:
        self.clear_calls += 1


class FailingBulkStore:
    """Bulk store whose clear() always fails."""

    def __init__(self):
        self.clear_calls = 0

    async def clear(self) -> None:
        self.clear_calls += 1
        raise RuntimeError("object database unavailable")


@pytest.fixture
def kv():
    """Fresh unbounded in-memory key-value store."""
    return MemoryKeyValueStore()


@pytest.fixture
def bulk():
    return RecordingBulkStore()
