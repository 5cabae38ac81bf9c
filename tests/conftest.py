# tests/conftest.py
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from notification_feed.controller import FeedController
from notification_feed.dismissal_store import DismissalStore
from notification_feed.models import RawEvent, SourceType
from notification_feed.session import Session
from notification_feed.source_adapter import SourceAdapter
from notification_feed.storage import MemoryStorage, PersistenceError

# Reference time "T" used by the feed scenarios.
T = datetime(2025, 1, 7, 10, 0, 0, tzinfo=timezone.utc)
NOW = T + timedelta(minutes=30)


class RecordingStorage(MemoryStorage):
    """In-memory storage that counts writes and can be told to fail."""

    def __init__(self, payload: Optional[str] = None):
        super().__init__(payload)
        self.saves: List[str] = []
        self.fail = False

    def save(self, payload: str) -> None:
        if self.fail:
            raise PersistenceError("disk full")
        self.saves.append(payload)
        super().save(payload)


class FakeAdapter(SourceAdapter):
    """Source adapter returning canned events, with an optional gate to hold fetches open."""

    def __init__(self, source_type: SourceType, events=None, error: Optional[Exception] = None):
        self.source_type = source_type
        self.events = list(events or [])
        self.error = error
        self.gate = None
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.marked: List[str] = []
        self.mark_all_calls = 0
        self.mark_error: Optional[Exception] = None

    async def fetch(self, session: Session) -> List[RawEvent]:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            return list(self.events)
        finally:
            self.active -= 1

    async def mark_read(self, session: Session, source_id: str) -> None:
        if self.mark_error is not None:
            raise self.mark_error
        self.marked.append(source_id)

    async def mark_all_read(self, session: Session) -> None:
        if self.mark_error is not None:
            raise self.mark_error
        self.mark_all_calls += 1


def _event(source_type: SourceType, source_id: str, offset_seconds: int = 0) -> RawEvent:
    return RawEvent(
        source_type=source_type,
        source_id=source_id,
        title=f"title {source_id}",
        detail=f"detail {source_id}",
        occurred_at=T + timedelta(seconds=offset_seconds),
        deep_link=f"/admin/{source_type.value}/{source_id}",
    )


@pytest.fixture
def make_event():
    """Factory for RawEvents at T + offset seconds."""
    return _event


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def store(storage) -> DismissalStore:
    return DismissalStore(storage)


@pytest.fixture
def session() -> Session:
    return Session("token-123")


@pytest.fixture
def message_adapter() -> FakeAdapter:
    return FakeAdapter(SourceType.MESSAGE, [
        _event(SourceType.MESSAGE, "m1", 0),
        _event(SourceType.MESSAGE, "m2", 10),
    ])


@pytest.fixture
def service_adapter() -> FakeAdapter:
    return FakeAdapter(SourceType.SERVICE_REQUEST, [
        _event(SourceType.SERVICE_REQUEST, "s1", 5),
    ])


@pytest.fixture
def controller(message_adapter, service_adapter, store, session) -> FeedController:
    return FeedController(
        message_adapter=message_adapter,
        service_adapter=service_adapter,
        dismissal_store=store,
        session=session,
        clock=lambda: NOW,
    )
