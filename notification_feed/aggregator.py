"""Merging of source feeds into a published snapshot."""

from datetime import datetime, timezone
from typing import Container, Dict, List, Mapping, Optional, Sequence

from .models import FeedSnapshot, Notification, RawEvent, SourceType

MAX_NOTIFICATIONS = 20


def relative_age(occurred_at: datetime, now: datetime) -> str:
    """
    Format how long ago an event happened.

    Args:
        occurred_at: Event time (aware).
        now: Current time (aware).

    Returns:
        "Just now", "12m ago", "3h ago", "2d ago", or "Jan 07, 2025" past a week.
    """
    seconds = (now - occurred_at).total_seconds()
    if seconds < 60:
        return "Just now"
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days <= 7:
        return f"{days}d ago"
    return occurred_at.strftime("%b %d, %Y")


def to_notification(event: RawEvent, now: datetime) -> Notification:
    return Notification(
        id=event.notification_id,
        source_type=event.source_type,
        title=event.title,
        message=event.detail,
        relative_age=relative_age(event.occurred_at, now),
        occurred_at_millis=int(event.occurred_at.timestamp() * 1000),
        deep_link=event.deep_link,
    )


def merge(
    raw_events_by_source: Mapping[SourceType, Sequence[RawEvent]],
    dismissed: Container[str],
    now: Optional[datetime] = None,
    limit: int = MAX_NOTIFICATIONS,
) -> FeedSnapshot:
    """
    Merge per-source events into one snapshot.

    Dismissed ids are dropped before sorting, so an upstream that keeps
    returning a cleared record never resurrects it. Counts are taken after
    the dismissal filter but before truncation: the badge shows the real
    backlog even when the list is cut at `limit`.

    Args:
        raw_events_by_source: Events from each adapter for this cycle.
        dismissed: Anything supporting `in` over NotificationIds.
        now: Reference time for relative ages (defaults to current UTC time).
        limit: Maximum number of visible notifications.

    Returns:
        A new FeedSnapshot, newest first, ties broken by id ascending.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    seen = set()
    eligible: List[Notification] = []
    counts: Dict[SourceType, int] = {source_type: 0 for source_type in SourceType}

    for source_type, events in raw_events_by_source.items():
        for event in events:
            notification = to_notification(event, now)
            if notification.id in seen or notification.id in dismissed:
                continue
            seen.add(notification.id)
            eligible.append(notification)
            counts[notification.source_type] += 1

    eligible.sort(key=lambda n: (-n.occurred_at_millis, n.id))

    return FeedSnapshot(
        notifications=tuple(eligible[:limit]),
        counts_by_type=counts,
        overflow_ids=frozenset(n.id for n in eligible[limit:]),
    )
