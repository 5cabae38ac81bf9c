import os

import boto3
import pytest
from botocore.exceptions import ClientError, NoRegionError

from notification_feed.storage import (
    DynamoDBStorage,
    JsonFileStorage,
    PersistenceError,
    SQLiteStorage,
)


class FakeTable:
    """Stand-in for a boto3 DynamoDB Table resource."""

    def __init__(self):
        self.items = {}
        self.error = None

    def get_item(self, Key):
        if self.error:
            raise self.error
        item = self.items.get(Key["key"])
        return {"Item": item} if item else {}

    def put_item(self, Item):
        if self.error:
            raise self.error
        self.items[Item["key"]] = Item


def test_sqlite_round_trip_across_connections(tmp_path):
    db_path = str(tmp_path / "feed_state.db")
    first = SQLiteStorage(db_path)
    assert first.load() is None

    first.save('["contact:m1"]')
    first.save('["contact:m1", "service:s1"]')
    first.close()

    second = SQLiteStorage(db_path)
    assert second.load() == '["contact:m1", "service:s1"]'
    second.close()


def test_sqlite_keys_are_independent(tmp_path):
    db_path = str(tmp_path / "feed_state.db")
    a = SQLiteStorage(db_path, key="operator-a")
    b = SQLiteStorage(db_path, key="operator-b")

    a.save('["contact:m1"]')

    assert b.load() is None
    a.close()
    b.close()


def test_sqlite_unopenable_path_raises(tmp_path):
    with pytest.raises(PersistenceError):
        SQLiteStorage(str(tmp_path / "missing-dir" / "feed_state.db"))


def test_json_file_missing_returns_none(tmp_path):
    assert JsonFileStorage(str(tmp_path / "dismissed.json")).load() is None


def test_json_file_replaces_whole_payload(tmp_path):
    path = tmp_path / "dismissed.json"
    storage = JsonFileStorage(str(path))

    storage.save('["contact:m1", "contact:m2"]')
    storage.save('["contact:m2"]')

    assert storage.load() == '["contact:m2"]'
    assert os.listdir(tmp_path) == ["dismissed.json"]


def test_json_file_write_failure_raises(tmp_path):
    storage = JsonFileStorage(str(tmp_path / "missing-dir" / "dismissed.json"))

    with pytest.raises(PersistenceError):
        storage.save("[]")


def test_dynamodb_round_trip():
    table = FakeTable()
    storage = DynamoDBStorage("feed_state", table=table)
    assert storage.load() is None

    storage.save('["service:s1"]')

    assert table.items["dismissedNotifications"]["value"] == '["service:s1"]'
    assert storage.load() == '["service:s1"]'


def test_dynamodb_client_error_raises_persistence_error():
    table = FakeTable()
    table.error = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
        "PutItem",
    )
    storage = DynamoDBStorage("feed_state", table=table)

    with pytest.raises(PersistenceError):
        storage.save("[]")
    with pytest.raises(PersistenceError):
        storage.load()


def test_dynamodb_without_region_raises_persistence_error(monkeypatch):
    def no_region(*args, **kwargs):
        raise NoRegionError()

    monkeypatch.setattr(boto3, "resource", no_region)

    with pytest.raises(PersistenceError):
        DynamoDBStorage("feed_state")
