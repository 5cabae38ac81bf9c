"""Configuration management."""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()

STORAGE_BACKENDS = ("sqlite", "file", "dynamodb", "memory")


@dataclass
class ApiConfig:
    """Admin REST API configuration."""
    base_url: str
    token: str             # admin bearer token
    timeout: float = 10.0  # seconds, per HTTP request
    message_page_size: int = 100
    message_max_pages: int = 50  # inbox pages walked per cycle


@dataclass
class PollerConfig:
    """Refresh cadence."""
    interval_seconds: float = 60.0


@dataclass
class StorageConfig:
    """Where dismissed notification ids are kept."""
    backend: str = "sqlite"  # sqlite, file, dynamodb or memory
    db_path: str = "feed_state.db"
    state_file: str = "dismissed_notifications.json"
    dynamodb_table: str = "feed_state"
    key: str = "dismissedNotifications"


@dataclass
class FeedSettings:
    """Feed shape limits."""
    max_items: int = 20
    dismissal_capacity: int = 500


@dataclass
class AppConfig:
    """Complete application configuration."""
    api: ApiConfig
    poller: PollerConfig = field(default_factory=PollerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    feed: FeedSettings = field(default_factory=FeedSettings)


def _parse_number(key: str, default: str, cast, errors: List[str]):
    """Read a numeric environment variable, recording an error instead of raising."""
    raw = os.getenv(key, default)
    try:
        value = cast(raw)
    except ValueError:
        errors.append(f"{key}={raw!r} is not a valid number")
        return cast(default)
    if value <= 0:
        errors.append(f"{key} must be positive")
        return cast(default)
    return value


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Raises:
        ValueError: If required configuration values are missing or invalid.
    """
    errors: List[str] = []

    # Admin API
    base_url = os.getenv("FEED_API_BASE_URL", "http://localhost:5000").rstrip("/")
    token = os.getenv("FEED_API_TOKEN")
    timeout = _parse_number("FEED_HTTP_TIMEOUT", "10", float, errors)
    page_size = _parse_number("FEED_MESSAGE_PAGE_SIZE", "100", int, errors)
    max_pages = _parse_number("FEED_MESSAGE_MAX_PAGES", "50", int, errors)

    # Poller
    interval = _parse_number("FEED_POLL_INTERVAL_SECONDS", "60", float, errors)

    # Storage
    backend = os.getenv("FEED_STORAGE_BACKEND", "sqlite").lower()
    if backend not in STORAGE_BACKENDS:
        errors.append(f"FEED_STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}")

    # Feed limits
    max_items = _parse_number("FEED_MAX_ITEMS", "20", int, errors)
    capacity = _parse_number("FEED_DISMISSAL_CAPACITY", "500", int, errors)

    if not token:
        errors.insert(0, "Missing required environment variable: FEED_API_TOKEN")

    if errors:
        raise ValueError("; ".join(errors))

    return AppConfig(
        api=ApiConfig(
            base_url=base_url,
            token=token,
            timeout=timeout,
            message_page_size=page_size,
            message_max_pages=max_pages,
        ),
        poller=PollerConfig(interval_seconds=interval),
        storage=StorageConfig(
            backend=backend,
            db_path=os.getenv("FEED_DB_PATH", "feed_state.db"),
            state_file=os.getenv("FEED_STATE_FILE", "dismissed_notifications.json"),
            dynamodb_table=os.getenv("FEED_DYNAMODB_TABLE", "feed_state"),
            key=os.getenv("FEED_STORAGE_KEY", "dismissedNotifications"),
        ),
        feed=FeedSettings(max_items=max_items, dismissal_capacity=capacity),
    )
