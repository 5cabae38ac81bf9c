"""Refresh cadence for a feed controller."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from .controller import FeedController
from .models import FeedSnapshot, PollState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class Poller:
    """
    Drives refreshes: initial load, a fixed interval, navigation and manual triggers.

    Every trigger funnels into `FeedController.refresh`, which is single-flight,
    so interval ticks keep their cadence even while a slow cycle is running.
    There is no backoff: a failed cycle simply waits for the next tick.
    """

    def __init__(
        self,
        controller: FeedController,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.controller = controller
        self.interval_seconds = interval_seconds
        self.sleep = sleep
        self._running = False
        self._interval_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Future] = set()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> PollState:
        if not self._running:
            return PollState.STOPPED
        return self.controller.state

    def start(self) -> None:
        """Load the feed (with loading indicator) and start the interval timer."""
        if self._running:
            return
        self._running = True
        logger.info(f"Starting notification poller (every {self.interval_seconds:g}s)")
        self.trigger(show_loading=True)
        self._interval_task = asyncio.ensure_future(self._run_interval())

    async def _run_interval(self) -> None:
        while self._running:
            await self.sleep(self.interval_seconds)
            logger.debug("Interval tick")
            self.trigger()

    def trigger(self, show_loading: bool = False) -> Optional[asyncio.Future]:
        """Request a refresh without waiting for it."""
        if not self._running:
            return None
        task = asyncio.ensure_future(self.controller.refresh(show_loading))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def on_navigation(self, path: str) -> Optional[asyncio.Future]:
        """Refresh when the host application changes route."""
        logger.debug(f"Navigation to {path}; refreshing notifications")
        return self.trigger()

    async def refresh_now(self, show_loading: bool = True) -> FeedSnapshot:
        """Manual refresh; waits for the resulting snapshot."""
        return await self.controller.refresh(show_loading)

    async def stop(self) -> None:
        """Cancel the timer and pending triggers, then close the controller."""
        if not self._running and self._interval_task is None:
            return
        self._running = False
        pending = list(self._tasks)
        if self._interval_task is not None:
            pending.append(self._interval_task)
            self._interval_task = None
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        self._tasks.clear()
        await self.controller.close()
        logger.info("Notification poller stopped")

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Refresh failed: {error}", exc_info=error)
