"""Data models for the notification feed."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple


class SourceType(str, Enum):
    """Upstream feed a notification came from."""
    MESSAGE = "contact"
    SERVICE_REQUEST = "service"


class PollState(str, Enum):
    """Refresh cycle state of a feed."""
    IDLE = "idle"
    FETCHING = "fetching"
    CLOSED = "closed"
    STOPPED = "stopped"


def notification_id(source_type: SourceType, source_id: str) -> str:
    """Build the stable identity of an upstream record ("contact:abc123")."""
    return f"{SourceType(source_type).value}:{source_id}"


def parse_notification_id(value: str) -> Tuple[SourceType, str]:
    """
    Split a NotificationId back into its source type and upstream id.

    Raises:
        ValueError: If the id is not of the form "<source_type>:<source_id>".
    """
    prefix, sep, source_id = value.partition(":")
    if not sep or not source_id:
        raise ValueError(f"Malformed notification id: {value!r}")
    return SourceType(prefix), source_id


def _frozen_counts(counts: Optional[Mapping[SourceType, int]] = None) -> Mapping[SourceType, int]:
    merged = {source_type: 0 for source_type in SourceType}
    if counts:
        merged.update(counts)
    return MappingProxyType(merged)


@dataclass(frozen=True)
class RawEvent:
    """One upstream record projected by a source adapter."""
    source_type: SourceType
    source_id: str       # upstream natural key (Mongo _id)
    title: str
    detail: str
    occurred_at: datetime  # timezone-aware, UTC
    deep_link: str

    @property
    def notification_id(self) -> str:
        return notification_id(self.source_type, self.source_id)


@dataclass(frozen=True)
class Notification:
    """Presentation record derived from a RawEvent."""
    id: str
    source_type: SourceType
    title: str
    message: str
    relative_age: str      # "5m ago"
    occurred_at_millis: int
    deep_link: str


@dataclass(frozen=True)
class FeedSnapshot:
    """Published, immutable view of the feed."""
    notifications: Tuple[Notification, ...] = ()
    counts_by_type: Mapping[SourceType, int] = field(default_factory=_frozen_counts)
    overflow_ids: FrozenSet[str] = frozenset()  # counted but cut off by the visible limit

    def __post_init__(self):
        object.__setattr__(self, "notifications", tuple(self.notifications))
        object.__setattr__(self, "counts_by_type", _frozen_counts(self.counts_by_type))
        object.__setattr__(self, "overflow_ids", frozenset(self.overflow_ids))

    def __hash__(self):
        return hash((self.notifications, tuple(self.counts_by_type.items()), self.overflow_ids))

    @classmethod
    def empty(cls) -> "FeedSnapshot":
        return cls()

    @property
    def total_count(self) -> int:
        """Backlog size shown on the badge (not the visible list length)."""
        return sum(self.counts_by_type.values())

    def ids(self) -> Tuple[str, ...]:
        return tuple(n.id for n in self.notifications)

    def find(self, notification_id: str) -> Optional[Notification]:
        for notification in self.notifications:
            if notification.id == notification_id:
                return notification
        return None

    def includes(self, notification_id: str) -> bool:
        """True if the id contributes to `counts_by_type`, visible or not."""
        return notification_id in self.overflow_ids or self.find(notification_id) is not None

    def without(self, ids: Iterable[str]) -> "FeedSnapshot":
        """Return a new snapshot with the given ids removed and their counts decremented."""
        drop = set(ids)
        counts = dict(self.counts_by_type)
        kept = []
        for notification in self.notifications:
            if notification.id in drop:
                counts[notification.source_type] = max(0, counts[notification.source_type] - 1)
            else:
                kept.append(notification)
        for hidden_id in drop & self.overflow_ids:
            source_type, _ = parse_notification_id(hidden_id)
            counts[source_type] = max(0, counts[source_type] - 1)
        return FeedSnapshot(
            notifications=tuple(kept),
            counts_by_type=counts,
            overflow_ids=self.overflow_ids - drop,
        )
