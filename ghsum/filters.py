"""
Presentation-side filters over reconciled records.

The free-text search understands ``label:name`` and ``-label:name``
tokens; whatever remains is matched against title and body.
"""

import re
import shlex
from dataclasses import dataclass, field
from typing import Iterable

from .types import Record

TYPE_FILTERS = ("all", "issue", "pr", "comment")
STATUS_FILTERS = ("all", "open", "closed", "merged")

_LABEL_TOKEN = re.compile(r'^(-?)label:(.+)$')


@dataclass
class ParsedSearch:
    """Free text split into label terms and plain text."""
    text: str = ""
    included_labels: list[str] = field(default_factory=list)
    excluded_labels: list[str] = field(default_factory=list)


def parse_search_text(search_text: str) -> ParsedSearch:
    """Split ``label:x -label:y words`` into its parts.

    Quoted label names (``label:"good first issue"``) keep their spaces.
    """
    parsed = ParsedSearch()
    try:
        tokens = shlex.split(search_text)
    except ValueError:
        # Unbalanced quotes
        tokens = search_text.split()
    words = []
    for token in tokens:
        m = _LABEL_TOKEN.match(token)
        if m is None:
            words.append(token)
        elif m.group(1):
            parsed.excluded_labels.append(m.group(2))
        else:
            parsed.included_labels.append(m.group(2))
    parsed.text = " ".join(words)
    return parsed


def record_type(record: Record) -> str:
    if record.is_comment:
        return "comment"
    if record.is_pull_request:
        return "pr"
    return "issue"


def record_status(record: Record) -> str:
    if record.is_pull_request and record.is_merged:
        return "merged"
    return "closed" if record.state == "closed" else "open"


@dataclass
class ResultFilter:
    """Combined filter state. Defaults match everything."""
    type: str = "all"
    status: str = "all"
    included_labels: list[str] = field(default_factory=list)
    excluded_labels: list[str] = field(default_factory=list)
    search_text: str = ""
    repos: list[str] = field(default_factory=list)
    user: str = ""

    def __post_init__(self):
        if self.type not in TYPE_FILTERS:
            raise ValueError(f"Unknown type filter: {self.type!r}. Expected one of {TYPE_FILTERS}")
        if self.status not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter: {self.status!r}. Expected one of {STATUS_FILTERS}")

    @property
    def is_active(self) -> bool:
        return (
            self.type != "all"
            or self.status != "all"
            or bool(self.included_labels or self.excluded_labels)
            or bool(self.search_text.strip())
            or bool(self.repos)
            or bool(self.user.strip())
        )

    def matches(self, record: Record) -> bool:
        if self.type != "all" and record_type(record) != self.type:
            return False
        if self.status != "all" and record_status(record) != self.status:
            return False

        parsed = parse_search_text(self.search_text)
        labels = {l.lower() for l in record.labels}
        included = [l.lower() for l in self.included_labels + parsed.included_labels]
        excluded = [l.lower() for l in self.excluded_labels + parsed.excluded_labels]
        if included and not all(l in labels for l in included):
            return False
        if any(l in labels for l in excluded):
            return False

        if self.repos:
            repo = record.repository.lower()
            if not any(r.lower() == repo for r in self.repos):
                return False
        if self.user.strip() and record.user.lower() != self.user.strip().lower():
            return False

        text = parsed.text.lower()
        if text and text not in record.title.lower() and text not in record.body.lower():
            return False
        return True

    def apply(self, records: Iterable[Record]) -> list[Record]:
        return [r for r in records if self.matches(r)]


def available_labels(records: Iterable[Record]) -> list[str]:
    """Distinct label names across records, sorted."""
    return sorted({label for r in records for label in r.labels})
