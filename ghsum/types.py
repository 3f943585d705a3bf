"""
Data types for activity reconciliation and the bounded cache.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")

# Fragment markers GitHub uses in comment and review locators
_COMMENT_MARKERS = ("#issuecomment-", "#discussion_r", "#pullrequestreview-")


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse an ISO timestamp string to a timezone-aware UTC datetime.

    Accepts the GitHub API form (``2024-01-02T00:00:00Z``) as well as
    ``+00:00`` suffixes and naive timestamps, which are taken as UTC.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: Union[str, date]) -> date:
    """Parse a YYYY-MM-DD window bound (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


class SourceKind(str, Enum):
    """Which upstream collection a record came from."""
    EVENT = "event"
    SEARCH = "search"


class ApiMode(str, Enum):
    """Reconciliation mode selected by the caller."""
    EVENTS = "events"
    SEARCH = "search"
    SUMMARY = "summary"


class WriteResult(str, Enum):
    """Outcome of a guarded write."""
    SUCCESS = "success"
    REFUSED = "refused"
    FAILED = "failed"

    def __bool__(self) -> bool:
        return self is WriteResult.SUCCESS


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result of a best-effort operation."""
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed result of a best-effort operation, keeping the cause."""
    error: BaseException

    @property
    def ok(self) -> bool:
        return False

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]


@dataclass(frozen=True)
class StorageEntry:
    """Size of one stored key, recomputed from the store on demand."""
    key: str
    size_bytes: int


@dataclass
class Record:
    """
    An activity item in the common shape shared by both sources.

    ``identity`` is the item's canonical ``html_url``; two records with the
    same identity are the same logical item whatever their source.
    ``payload`` holds the source fields (title, state, labels, ...) as
    received from upstream.
    """
    identity: str
    timestamp: datetime
    source_kind: SourceKind
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.payload.get("title") or ""

    @property
    def body(self) -> str:
        return self.payload.get("body") or ""

    @property
    def state(self) -> str:
        return self.payload.get("state") or ""

    @property
    def is_pull_request(self) -> bool:
        return bool(self.payload.get("pull_request"))

    @property
    def is_comment(self) -> bool:
        return any(marker in self.identity for marker in _COMMENT_MARKERS)

    @property
    def is_merged(self) -> bool:
        pr = self.payload.get("pull_request") or {}
        return bool(pr.get("merged_at") or self.payload.get("merged"))

    @property
    def labels(self) -> list[str]:
        return [l["name"] for l in self.payload.get("labels") or [] if l.get("name")]

    @property
    def user(self) -> str:
        return (self.payload.get("user") or {}).get("login", "")

    @property
    def repository(self) -> str:
        """``owner/name`` taken from the payload or the locator path."""
        repo = self.payload.get("repository_url") or ""
        if "/repos/" in repo:
            return repo.split("/repos/", 1)[1]
        parts = self.identity.split("/")
        # https://github.com/{owner}/{repo}/...
        if len(parts) >= 5:
            return f"{parts[3]}/{parts[4]}"
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "timestamp": self.timestamp.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "source": self.source_kind.value,
            "title": self.title,
            "state": self.state,
        }
