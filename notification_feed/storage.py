"""Durable storage backends for the dismissal record."""

import logging
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .db import get_meta, init_db, set_meta

logger = logging.getLogger(__name__)

DEFAULT_KEY = "dismissedNotifications"


class PersistenceError(Exception):
    """A durable read or write failed."""


class DismissalStorage(ABC):
    """
    Key/value medium holding one serialized dismissal record.

    Implementations store the payload as a whole; a failed save must leave
    the previous payload intact.
    """

    @abstractmethod
    def load(self) -> Optional[str]:
        """Return the stored payload, or None if nothing was saved yet."""

    @abstractmethod
    def save(self, payload: str) -> None:
        """Replace the stored payload. Raises PersistenceError on failure."""

    def close(self) -> None:
        """Release any connection held by the backend."""


class MemoryStorage(DismissalStorage):
    """Process-local storage; nothing survives a restart."""

    def __init__(self, payload: Optional[str] = None):
        self.payload = payload

    def load(self) -> Optional[str]:
        return self.payload

    def save(self, payload: str) -> None:
        self.payload = payload


class SQLiteStorage(DismissalStorage):
    """Stores the record in the `meta` table of a SQLite database."""

    def __init__(self, db_path: str, key: str = DEFAULT_KEY):
        self.db_path = db_path
        self.key = key
        try:
            self.conn = init_db(db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open {db_path}: {e}") from e

    def load(self) -> Optional[str]:
        try:
            return get_meta(self.conn, self.key)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not read {self.key} from {self.db_path}: {e}") from e

    def save(self, payload: str) -> None:
        try:
            set_meta(self.conn, self.key, payload)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not write {self.key} to {self.db_path}: {e}") from e

    def close(self) -> None:
        self.conn.close()


class JsonFileStorage(DismissalStorage):
    """Stores the record as a JSON file, replaced atomically on every save."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e

    def save(self, payload: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".dismissed-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Could not write {self.path}: {e}") from e


class DynamoDBStorage(DismissalStorage):
    """Stores the record as a single DynamoDB item keyed by `key`."""

    def __init__(self, table_name: str, key: str = DEFAULT_KEY, table=None):
        self.table_name = table_name
        self.key = key
        if table is None:
            try:
                table = boto3.resource("dynamodb").Table(table_name)
            except BotoCoreError as e:
                raise PersistenceError(f"Could not connect to DynamoDB table {table_name}: {e}") from e
        self.table = table

    def load(self) -> Optional[str]:
        try:
            response = self.table.get_item(Key={"key": self.key})
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"Error reading {self.key} from {self.table_name}: {e}") from e
        if "Item" not in response:
            return None
        return response["Item"].get("value")

    def save(self, payload: str) -> None:
        try:
            self.table.put_item(Item={"key": self.key, "value": payload})
        except (ClientError, BotoCoreError) as e:
            raise PersistenceError(f"Error writing {self.key} to {self.table_name}: {e}") from e
