"""Command-line runner for the notification feed."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime
from typing import List, Optional

import httpx

from .config import AppConfig, StorageConfig, load_config
from .controller import FeedController
from .dismissal_store import DismissalStore
from .message_client import MessageInboxAdapter
from .models import FeedSnapshot, SourceType
from .scheduler import Poller
from .service_client import ServiceRequestAdapter
from .session import Session
from .storage import (
    DismissalStorage,
    DynamoDBStorage,
    JsonFileStorage,
    MemoryStorage,
    PersistenceError,
    SQLiteStorage,
)

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


def _open_storage(config: StorageConfig) -> DismissalStorage:
    if config.backend == "file":
        return JsonFileStorage(config.state_file)
    if config.backend == "dynamodb":
        return DynamoDBStorage(config.dynamodb_table, key=config.key)
    if config.backend == "memory":
        return MemoryStorage()
    return SQLiteStorage(config.db_path, key=config.key)


def create_storage(config: StorageConfig) -> DismissalStorage:
    """
    Create the durable medium for dismissed ids based on configuration.

    A backend that cannot be opened is logged and replaced by in-memory
    storage, so the feed still starts; dismissals then last only for this run.
    """
    try:
        return _open_storage(config)
    except PersistenceError as e:
        logger.error(f"Could not open {config.backend} storage, keeping dismissals in memory: {e}")
        return MemoryStorage()


def create_controller(config: AppConfig, client: httpx.AsyncClient, storage: DismissalStorage) -> FeedController:
    """Wire adapters, dismissal store and session into a controller."""
    store = DismissalStore.load(storage, capacity=config.feed.dismissal_capacity)
    return FeedController(
        message_adapter=MessageInboxAdapter(
            client,
            config.api.base_url,
            page_size=config.api.message_page_size,
            max_pages=config.api.message_max_pages,
        ),
        service_adapter=ServiceRequestAdapter(client, config.api.base_url),
        dismissal_store=store,
        session=Session(config.api.token),
        limit=config.feed.max_items,
        on_session_expired=lambda: logger.error("Admin token rejected; set a fresh FEED_API_TOKEN"),
    )


def format_snapshot(snapshot: FeedSnapshot, refreshed_at: Optional[datetime] = None) -> str:
    """Render a snapshot the way the header dropdown lists it."""
    counts = ", ".join(f"{t.value}: {n}" for t, n in snapshot.counts_by_type.items())
    header = f"{snapshot.total_count} unread notifications ({counts})"
    if refreshed_at is not None:
        header += f" as of {refreshed_at.strftime('%H:%M:%S')} UTC"
    lines = [header]
    if not snapshot.notifications:
        lines.append("  No notifications yet. You're all caught up!")
    for n in snapshot.notifications:
        lines.append(f"  [{n.id}] {n.title} | {n.message} | {n.relative_age} | {n.deep_link}")
    return "\n".join(lines)


async def run(args, config: AppConfig) -> int:
    """Apply requested actions, then refresh once or poll until interrupted."""
    storage = create_storage(config.storage)
    try:
        return await _run_feed(args, config, storage)
    finally:
        storage.close()


async def _run_feed(args, config: AppConfig, storage: DismissalStorage) -> int:
    async with httpx.AsyncClient(timeout=config.api.timeout) as client:
        controller = create_controller(config, client, storage)

        if args.reset_dismissed:
            logger.info("Clearing all dismissed notifications...")
            controller.dismissal_store.clear()

        if args.once:
            await controller.refresh(True)
            for notification_id in args.dismiss or []:
                controller.dismiss(notification_id)
            if args.dismiss_all:
                controller.dismiss_all()
            if args.mark_read_source:
                await controller.mark_source_read(SourceType(args.mark_read_source))
            print(format_snapshot(controller.snapshot, controller.last_refreshed_at))
            await controller.close()
            return 0 if controller.session.is_authenticated else 1

        interval = args.interval or config.poller.interval_seconds
        poller = Poller(controller, interval_seconds=interval)
        controller.subscribe(
            lambda snapshot: print(format_snapshot(snapshot, controller.last_refreshed_at), flush=True)
        )

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                pass  # not supported on Windows event loops

        poller.start()
        try:
            await stop_event.wait()
        finally:
            await poller.stop()
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point with command-line argument parsing."""
    parser = argparse.ArgumentParser(
        description="Poll the admin message inbox and service-request queue into one notification feed"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Refresh once, print the feed and exit instead of polling"
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Polling interval in seconds (default: FEED_POLL_INTERVAL_SECONDS or 60)"
    )
    parser.add_argument(
        "--dismiss",
        action="append",
        metavar="ID",
        help="With --once: dismiss a notification id such as contact:64f1... (repeatable)"
    )
    parser.add_argument(
        "--dismiss-all",
        action="store_true",
        help="With --once: dismiss every visible notification"
    )
    parser.add_argument(
        "--mark-read-source",
        choices=[t.value for t in SourceType],
        default=None,
        help="With --once: mark every record of a source as read upstream"
    )
    parser.add_argument(
        "--reset-dismissed",
        action="store_true",
        help="Clear the dismissed-notification history before running"
    )

    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    sys.exit(asyncio.run(run(args, config)))


if __name__ == "__main__":
    main()
