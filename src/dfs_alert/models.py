"""Canonical data model for DFS notifications and per-feed tracking state.

``Notification`` is the unit of deduplication: two notifications are the
same event when kind, time and description are all equal. ``FeedState`` is
an immutable value replaced (never mutated) by the change detector.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class NotificationKind(Enum):
    ANTICIPATED = "Anticipated"
    PUBLISHED = "Published"
    CANCELLED = "Cancelled"
    TEST = "Test"


# Variant names written by the first generation of state files.
_LEGACY_KIND_NAMES = {
    "RequirementAnticipated": NotificationKind.ANTICIPATED,
    "RequirementPublished": NotificationKind.PUBLISHED,
    "RequirementCancelled": NotificationKind.CANCELLED,
}


def parse_kind(value: str) -> NotificationKind:
    """Resolve a persisted kind string (current or legacy spelling)."""
    if value in _LEGACY_KIND_NAMES:
        return _LEGACY_KIND_NAMES[value]
    try:
        return NotificationKind(value)
    except ValueError:
        return NotificationKind[value.upper()]


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into a naive datetime.

    Aware values are converted to UTC before the tzinfo is dropped so that
    all comparisons happen between naive datetimes.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


@dataclass(frozen=True)
class Notification:
    """One observed DFS industry notification."""

    kind: NotificationKind
    occurred_at: datetime
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "occurred_at": self.occurred_at.isoformat(),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Notification:
        """Build from the persisted form; accepts the legacy key names too."""
        if not isinstance(data, dict):
            raise ValueError(f"Notification record is not an object: {data!r}")
        kind = data.get("kind", data.get("anticipation_type"))
        occurred_at = data.get("occurred_at", data.get("when"))
        if kind is None or occurred_at is None:
            raise ValueError(f"Incomplete notification record: {data!r}")
        return cls(
            kind=parse_kind(str(kind)),
            occurred_at=parse_timestamp(str(occurred_at)),
            description=str(data.get("description", "")),
        )


@dataclass(frozen=True)
class ResourceDescriptor:
    """A catalogue entry; fetched every cycle and never persisted."""

    name: str
    last_modified: datetime
    path: str


@dataclass(frozen=True)
class RawRecord:
    """One CSV row after header aliasing, before date/type decoding."""

    date: str
    time: str
    status: str
    type: str


@dataclass(frozen=True)
class FeedState:
    last_checked: datetime = datetime.min
    last_notification: Optional[Notification] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "industry_notification": (
                self.last_notification.to_dict() if self.last_notification else None
            ),
            "last_checked": (
                None
                if self.last_checked == datetime.min
                else self.last_checked.isoformat()
            ),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> FeedState:
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Feed state is not an object: {data!r}")
        raw_notification = data.get("industry_notification")
        raw_checked = data.get("last_checked")
        return cls(
            last_checked=(
                parse_timestamp(str(raw_checked)) if raw_checked else datetime.min
            ),
            last_notification=(
                Notification.from_dict(raw_notification) if raw_notification else None
            ),
        )


# Feed id -> tracker state. Feeds never share state.
Checkpoint = dict[str, FeedState]


@dataclass(frozen=True)
class FeedConfig:
    """Where a feed's catalogue lives and which resource names it accepts."""

    id: str
    url: str
    accepted_name_prefixes: tuple[str, ...] = field(default_factory=tuple)


__all__ = [
    "Checkpoint",
    "FeedConfig",
    "FeedState",
    "Notification",
    "NotificationKind",
    "RawRecord",
    "ResourceDescriptor",
    "parse_kind",
    "parse_timestamp",
]
