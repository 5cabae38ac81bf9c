"""Capped, durable record of dismissed notification ids."""

import json
import logging
from typing import Dict, Iterable, List

from .storage import DismissalStorage, PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 500


class DismissalStore:
    """
    Insertion-ordered set of dismissed NotificationIds.

    Holds at most `capacity` ids; the oldest dismissal is evicted first.
    Every mutation rewrites the whole record to storage. A failed write is
    logged and the in-memory change still applies for this process.
    """

    def __init__(self, storage: DismissalStorage, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.storage = storage
        self.capacity = capacity
        # dict keeps insertion order and gives O(1) membership
        self._ids: Dict[str, None] = {}

    @classmethod
    def load(cls, storage: DismissalStorage, capacity: int = DEFAULT_CAPACITY) -> "DismissalStore":
        """
        Rebuild the store from durable storage.

        Missing or malformed data yields an empty store; startup is never
        blocked by a bad record.
        """
        store = cls(storage, capacity)
        try:
            payload = storage.load()
        except PersistenceError as e:
            logger.error(f"Could not load dismissed notifications, starting empty: {e}")
            return store
        if not payload:
            return store

        try:
            data = json.loads(payload)
        except ValueError as e:
            logger.warning(f"Dismissed notifications record is not valid JSON, starting empty: {e}")
            return store
        if not isinstance(data, list):
            logger.warning("Dismissed notifications record is not a list, starting empty")
            return store

        for item in data:
            if isinstance(item, str):
                store._ids.pop(item, None)
                store._ids[item] = None
        store._evict()
        logger.info(f"Loaded {len(store)} dismissed notification ids")
        return store

    def __contains__(self, notification_id: object) -> bool:
        return notification_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def contains(self, notification_id: str) -> bool:
        return notification_id in self._ids

    def ids(self) -> List[str]:
        """Dismissed ids, oldest first."""
        return list(self._ids)

    def add(self, notification_id: str) -> bool:
        """
        Record a dismissal.

        Args:
            notification_id: Id to dismiss.

        Returns:
            True if the id was new, False if it was already dismissed.
        """
        return self.add_many([notification_id]) == 1

    def add_many(self, notification_ids: Iterable[str]) -> int:
        """Record several dismissals with a single write. Returns how many were new."""
        added = 0
        for notification_id in notification_ids:
            if notification_id not in self._ids:
                self._ids[notification_id] = None
                added += 1
        if added:
            self._evict()
            self._persist()
        return added

    def clear(self) -> None:
        self._ids.clear()
        self._persist()

    def _evict(self) -> None:
        overflow = len(self._ids) - self.capacity
        if overflow <= 0:
            return
        for notification_id in list(self._ids)[:overflow]:
            del self._ids[notification_id]
        logger.debug(f"Evicted {overflow} oldest dismissed ids")

    def _persist(self) -> None:
        try:
            self.storage.save(json.dumps(list(self._ids)))
        except PersistenceError as e:
            logger.error(f"Failed to persist dismissed notifications: {e}")
