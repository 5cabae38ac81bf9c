"""Feed controller: the single owner of the published notification snapshot."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .aggregator import MAX_NOTIFICATIONS, merge
from .dismissal_store import DismissalStore
from .models import FeedSnapshot, PollState, RawEvent, SourceType, parse_notification_id
from .session import Session
from .source_adapter import FetchError, SourceAdapter, UnauthorizedError

logger = logging.getLogger(__name__)

Subscriber = Callable[[FeedSnapshot], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedController:
    """
    Facade over the source adapters, the dismissal store and the aggregator.

    All state is confined to one event loop. `refresh` is single-flight: a
    call made while a cycle is running queues exactly one follow-up cycle
    (later calls coalesce into it) and waits for it, so two fetch cycles never
    overlap and an older result can never overwrite a newer one.
    """

    def __init__(
        self,
        message_adapter: SourceAdapter,
        service_adapter: SourceAdapter,
        dismissal_store: DismissalStore,
        session: Session,
        clock: Callable[[], datetime] = _utcnow,
        limit: int = MAX_NOTIFICATIONS,
        on_session_expired: Optional[Callable[[], None]] = None,
    ):
        self.adapters: Dict[SourceType, SourceAdapter] = {
            message_adapter.source_type: message_adapter,
            service_adapter.source_type: service_adapter,
        }
        self.dismissal_store = dismissal_store
        self.session = session
        self.clock = clock
        self.limit = limit
        self.on_session_expired = on_session_expired

        self.is_loading = False
        self.last_error: Optional[Exception] = None
        self.last_refreshed_at: Optional[datetime] = None

        self._snapshot = FeedSnapshot.empty()
        self._subscribers: List[Subscriber] = []
        self._state = PollState.IDLE
        self._drain_task: Optional[asyncio.Future] = None
        self._pending = False
        self._pending_show_loading = False
        self._closed = False

    @property
    def snapshot(self) -> FeedSnapshot:
        return self._snapshot

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every published snapshot. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def refresh(self, show_loading_indicator: bool = False) -> FeedSnapshot:
        """
        Fetch both sources, merge, and publish.

        Args:
            show_loading_indicator: Set `is_loading` while the cycle runs.

        Returns:
            The snapshot published once the cycle (and any queued follow-up) finished.
        """
        if self._closed:
            return self._snapshot

        if self._drain_task is not None and not self._drain_task.done():
            self._pending = True
            self._pending_show_loading = self._pending_show_loading or show_loading_indicator
            logger.debug("Refresh already in flight; queued one follow-up cycle")
        else:
            self._drain_task = asyncio.ensure_future(self._drain(show_loading_indicator))

        task = self._drain_task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # the cycle was cancelled by close(); the caller itself was not
            if not task.cancelled():
                raise
        return self._snapshot

    async def _drain(self, show_loading: bool) -> None:
        try:
            while True:
                await self._run_cycle(show_loading)
                if self._closed or not self._pending:
                    break
                show_loading = self._pending_show_loading
                self._pending = False
                self._pending_show_loading = False
        finally:
            self.is_loading = False
            if not self._closed:
                self._state = PollState.IDLE

    async def _run_cycle(self, show_loading: bool) -> None:
        if not self.session.is_authenticated:
            logger.debug("No admin session; skipping refresh")
            return

        self._state = PollState.FETCHING
        self.is_loading = show_loading

        sources = list(self.adapters.items())
        results = await asyncio.gather(
            *(adapter.fetch(self.session) for _, adapter in sources),
            return_exceptions=True,
        )

        if self._closed:
            logger.debug("Controller closed while fetching; discarding results")
            return

        events_by_source: Dict[SourceType, List[RawEvent]] = {}
        errors: List[Exception] = []
        unauthorized = False
        for (source_type, _), result in zip(sources, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, UnauthorizedError):
                unauthorized = True
                errors.append(result)
                events_by_source[source_type] = []
            elif isinstance(result, FetchError):
                logger.warning(f"Source {source_type.value} unavailable this cycle: {result}")
                errors.append(result)
                events_by_source[source_type] = []
            elif isinstance(result, Exception):
                logger.error(f"Unexpected error fetching {source_type.value}: {result}", exc_info=result)
                errors.append(result)
                events_by_source[source_type] = []
            else:
                events_by_source[source_type] = result

        self.last_error = errors[0] if errors else None

        if unauthorized:
            self._expire_session()
            return

        if len(errors) == len(sources):
            logger.warning("All sources failed; keeping last published snapshot")
            return

        now = self.clock()
        snapshot = merge(events_by_source, self.dismissal_store, now=now, limit=self.limit)
        self.last_refreshed_at = now
        logger.info(
            f"Published {len(snapshot.notifications)} notifications "
            f"({snapshot.total_count} pending in total)"
        )
        self._publish(snapshot)

    def dismiss(self, notification_id: str) -> None:
        """
        Clear one notification.

        The id is recorded in the dismissal store and removed from the current
        snapshot right away; no fetch is involved.
        """
        self.dismissal_store.add(notification_id)
        if self._snapshot.includes(notification_id):
            self._publish(self._snapshot.without([notification_id]))

    def dismiss_all(self) -> None:
        """Clear every visible notification with one dismissal-store write."""
        ids = self._snapshot.ids()
        if ids:
            self.dismissal_store.add_many(ids)
        self._publish(FeedSnapshot.empty())

    async def mark_read(self, notification_id: str) -> FeedSnapshot:
        """Mark the upstream record read, clear it locally, then refresh."""
        source_type, source_id = parse_notification_id(notification_id)
        adapter = self.adapters[source_type]
        try:
            await adapter.mark_read(self.session, source_id)
        except UnauthorizedError as e:
            self.last_error = e
            self._expire_session()
            return self._snapshot
        except FetchError as e:
            logger.warning(f"Could not mark {notification_id} as read: {e}")
        self.dismiss(notification_id)
        return await self.refresh(False)

    async def mark_source_read(self, source_type: SourceType) -> FeedSnapshot:
        """Mark every record of one source read upstream, then refresh."""
        adapter = self.adapters[SourceType(source_type)]
        try:
            await adapter.mark_all_read(self.session)
        except UnauthorizedError as e:
            self.last_error = e
            self._expire_session()
            return self._snapshot
        except FetchError as e:
            logger.warning(f"Could not mark {adapter.source_type.value} as read: {e}")
        return await self.refresh(False)

    async def close(self) -> None:
        """Stop publishing; an in-flight cycle is cancelled and its result discarded."""
        if self._closed:
            return
        self._closed = True
        self._state = PollState.CLOSED
        self._pending = False
        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
        logger.info("Feed controller closed")

    def _expire_session(self) -> None:
        logger.warning("Upstream rejected the admin session; clearing it and the feed")
        self.session.clear()
        self._publish(FeedSnapshot.empty())
        if self.on_session_expired is not None:
            try:
                self.on_session_expired()
            except Exception:
                logger.exception("Session-expired callback failed")

    def _publish(self, snapshot: FeedSnapshot) -> None:
        if self._closed:
            return
        self._snapshot = snapshot
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Feed subscriber failed")
