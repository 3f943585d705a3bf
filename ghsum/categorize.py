"""
Map raw GitHub data into Records.

Search items already have the issue / pull request shape; events wrap the
interesting object in ``payload`` and are unwrapped here. Both functions
apply the date window first and keep upstream order.
"""

import logging
from typing import Any, Iterable, Optional

from .types import Record, SourceKind, parse_utc_timestamp
from .window import DateLike, filter_window

logger = logging.getLogger(__name__)

API_REPOS_URL = "https://api.github.com/repos/"

# Event type -> payload key holding the object that carries html_url
EVENT_TARGETS = {
    "IssuesEvent": "issue",
    "PullRequestEvent": "pull_request",
    "IssueCommentEvent": "comment",
    "PullRequestReviewEvent": "review",
    "PullRequestReviewCommentEvent": "comment",
}


def _event_subject(payload: dict[str, Any]) -> dict[str, Any]:
    """The issue or pull request an event is about."""
    return payload.get("issue") or payload.get("pull_request") or {}


def event_to_record(event: dict[str, Any]) -> Optional[Record]:
    """Unwrap one raw event, or None for unsupported or incomplete events."""
    target_key = EVENT_TARGETS.get(event.get("type", ""))
    if target_key is None:
        return None
    payload = event.get("payload") or {}
    target = payload.get(target_key) or {}
    identity = target.get("html_url")
    created_at = event.get("created_at")
    if not identity or not created_at:
        return None

    subject = _event_subject(payload)
    fields: dict[str, Any] = {
        "id": target.get("id", event.get("id")),
        "html_url": identity,
        "title": subject.get("title", ""),
        "body": target.get("body") or subject.get("body") or "",
        "state": subject.get("state", ""),
        "labels": subject.get("labels") or [],
        "user": event.get("actor") or target.get("user") or {},
        "created_at": created_at,
        "updated_at": created_at,
        "event_type": event.get("type"),
        "action": payload.get("action"),
    }
    repo_name = (event.get("repo") or {}).get("name")
    if repo_name:
        fields["repository_url"] = API_REPOS_URL + repo_name

    if "pull_request" in payload:
        pr = payload["pull_request"]
        fields["pull_request"] = {"html_url": pr.get("html_url"), "merged_at": pr.get("merged_at")}
        fields["merged"] = bool(pr.get("merged") or pr.get("merged_at"))
    elif subject.get("pull_request"):
        # Comment on an issue that is a pull request
        fields["pull_request"] = subject["pull_request"]

    return Record(
        identity=identity,
        timestamp=parse_utc_timestamp(created_at),
        source_kind=SourceKind.EVENT,
        payload=fields,
    )


def process_raw_events(events: Iterable[dict[str, Any]], start: DateLike, end: DateLike) -> list[Record]:
    """Windowed events as Records, in upstream order."""
    windowed = filter_window(events, start, end, lambda e: e.get("created_at"))
    records = []
    for event in windowed:
        record = event_to_record(event)
        if record is None:
            logger.debug("Skipping event %s of type %s", event.get("id"), event.get("type"))
            continue
        records.append(record)
    return records


def categorize_search_items(items: Iterable[dict[str, Any]], start: DateLike, end: DateLike) -> list[Record]:
    """Windowed search items (by ``updated_at``) as Records, in upstream order."""
    windowed = filter_window(items, start, end, lambda i: i.get("updated_at"))
    return [
        Record(
            identity=item["html_url"],
            timestamp=parse_utc_timestamp(item["updated_at"]),
            source_kind=SourceKind.SEARCH,
            payload=dict(item),
        )
        for item in windowed
        if item.get("html_url")
    ]
