import argparse
from datetime import datetime, timezone

import httpx
import pytest
import respx

from notification_feed import main as main_module
from notification_feed.config import ApiConfig, AppConfig, StorageConfig
from notification_feed.main import create_storage, format_snapshot, run
from notification_feed.models import FeedSnapshot
from notification_feed.storage import JsonFileStorage, MemoryStorage, SQLiteStorage

API_BASE_URL = "http://localhost:5000"


def _args(**overrides):
    values = dict(
        once=True, interval=None, dismiss=None, dismiss_all=False,
        mark_read_source=None, reset_dismissed=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def _config(tmp_path) -> AppConfig:
    return AppConfig(
        api=ApiConfig(base_url=API_BASE_URL, token="token-123"),
        storage=StorageConfig(backend="file", state_file=str(tmp_path / "dismissed.json")),
    )


def _mock_upstream(mock):
    mock.get("/api/contacts").mock(return_value=httpx.Response(200, json={"messages": [
        {"_id": "m1", "name": "Ada", "subject": "Hi", "read": False, "createdAt": "2025-01-07T10:00:00Z"},
    ]}))
    mock.get("/api/admin/services").mock(return_value=httpx.Response(200, json={"data": [
        {"_id": "s1", "requesterEmail": "c@example.com", "title": "Deck", "status": "pending",
         "createdAt": "2025-01-07T10:05:00Z"},
    ]}))


def test_create_storage_backends(tmp_path):
    assert isinstance(create_storage(StorageConfig(backend="memory")), MemoryStorage)
    assert isinstance(
        create_storage(StorageConfig(backend="file", state_file=str(tmp_path / "d.json"))),
        JsonFileStorage,
    )
    sqlite_storage = create_storage(StorageConfig(backend="sqlite", db_path=str(tmp_path / "f.db")))
    assert isinstance(sqlite_storage, SQLiteStorage)
    sqlite_storage.close()


def test_format_empty_snapshot():
    text = format_snapshot(FeedSnapshot.empty())

    assert text.startswith("0 unread notifications")
    assert "all caught up" in text


@pytest.mark.asyncio
async def test_run_once_prints_feed(tmp_path, capsys):
    with respx.mock(base_url=API_BASE_URL) as mock:
        _mock_upstream(mock)
        code = await run(_args(), _config(tmp_path))

    out = capsys.readouterr().out
    assert code == 0
    assert "2 unread notifications" in out
    assert out.index("[service:s1]") < out.index("[contact:m1]")


@pytest.mark.asyncio
async def test_run_once_dismiss_persists_across_runs(tmp_path, capsys):
    config = _config(tmp_path)
    with respx.mock(base_url=API_BASE_URL) as mock:
        _mock_upstream(mock)
        await run(_args(dismiss=["contact:m1"]), config)
        capsys.readouterr()
        await run(_args(), config)

    out = capsys.readouterr().out
    assert "[contact:m1]" not in out
    assert "1 unread notifications" in out


@pytest.mark.asyncio
async def test_run_once_with_rejected_token_exits_nonzero(tmp_path):
    with respx.mock(base_url=API_BASE_URL) as mock:
        mock.get("/api/contacts").mock(return_value=httpx.Response(401, json={"message": "Invalid token"}))
        mock.get("/api/admin/services").mock(return_value=httpx.Response(401, json={"message": "Invalid token"}))
        code = await run(_args(), _config(tmp_path))

    assert code == 1


class ClosingStorage(MemoryStorage):
    def __init__(self):
        super().__init__()
        self.closed = False

    def close(self):
        self.closed = True


def test_unopenable_storage_falls_back_to_memory(tmp_path):
    config = StorageConfig(backend="sqlite", db_path=str(tmp_path / "missing" / "feed.db"))

    assert isinstance(create_storage(config), MemoryStorage)


def test_format_snapshot_shows_refresh_time():
    text = format_snapshot(FeedSnapshot.empty(), refreshed_at=datetime(2025, 1, 7, 10, 30, tzinfo=timezone.utc))

    assert text.startswith("0 unread notifications")
    assert "as of 10:30:00 UTC" in text


@pytest.mark.asyncio
async def test_run_once_still_refreshes_when_db_cannot_be_opened(tmp_path, capsys):
    config = _config(tmp_path)
    config.storage = StorageConfig(backend="sqlite", db_path=str(tmp_path / "missing" / "feed.db"))

    with respx.mock(base_url=API_BASE_URL) as mock:
        _mock_upstream(mock)
        code = await run(_args(dismiss=["contact:m1"]), config)

    out = capsys.readouterr().out
    assert code == 0
    assert "1 unread notifications" in out
    assert "[service:s1]" in out


@pytest.mark.asyncio
async def test_run_closes_storage(tmp_path, monkeypatch):
    storage = ClosingStorage()
    monkeypatch.setattr(main_module, "create_storage", lambda config: storage)

    with respx.mock(base_url=API_BASE_URL) as mock:
        _mock_upstream(mock)
        await run(_args(), _config(tmp_path))

    assert storage.closed
