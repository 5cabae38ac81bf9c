"""Contact-message inbox adapter."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .models import RawEvent, SourceType
from .session import Session
from .source_adapter import SourceAdapter, parse_timestamp

logger = logging.getLogger(__name__)

MESSAGES_PATH = "/api/contacts"
MARK_ALL_READ_PATH = "/api/contacts/actions/mark-all-read"
INBOX_LINK = "/admin/contacts"


def _to_raw_event(record: Dict[str, Any]) -> Optional[RawEvent]:
    """Project one contact message, or None if it is unusable or already read."""
    record_id = record.get("_id") or record.get("id")
    if not record_id:
        return None
    if record.get("read") is not False:
        return None

    occurred_at = parse_timestamp(record.get("createdAt"))
    if occurred_at is None:
        logger.debug(f"Skipping message {record_id}: unparseable createdAt {record.get('createdAt')!r}")
        return None

    sender = (record.get("name") or record.get("email") or "Unknown sender").strip()
    subject = (record.get("subject") or "").strip()
    body = (record.get("message") or "").strip()
    detail = subject or body[:120] or "General Inquiry"

    return RawEvent(
        source_type=SourceType.MESSAGE,
        source_id=str(record_id),
        title=f"New message from {sender}",
        detail=detail,
        occurred_at=occurred_at,
        deep_link=INBOX_LINK,
    )


def _stat(stats: Any, name: str) -> Optional[int]:
    value = stats.get(name) if isinstance(stats, dict) else None
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _has_next(pagination: Any, page: int) -> bool:
    if not isinstance(pagination, dict):
        return False
    if isinstance(pagination.get("hasNext"), bool):
        return pagination["hasNext"]
    total_pages = pagination.get("totalPages")
    return isinstance(total_pages, int) and page < total_pages


class MessageInboxAdapter(SourceAdapter):
    """Unread contact-form messages."""

    source_type = SourceType.MESSAGE

    def __init__(self, client: httpx.AsyncClient, base_url: str, page_size: int = 100, max_pages: int = 50):
        super().__init__(client, base_url)
        self.page_size = page_size
        self.max_pages = max_pages

    async def fetch(self, session: Session) -> List[RawEvent]:
        """
        Walk the inbox newest first until every unread message is collected.

        The endpoint cannot filter on `read`, so pages are followed until
        `pagination.hasNext` is false, the `stats.unread` total is reached,
        or `max_pages` is exhausted.
        """
        events: List[RawEvent] = []
        fetched = 0
        for page in range(1, self.max_pages + 1):
            params = {
                "page": str(page),
                "limit": str(self.page_size),
                "sortBy": "createdAt",
                "sortOrder": "desc",
            }
            data = await self._request(session, "GET", MESSAGES_PATH, params=params)

            messages = data.get("messages") if isinstance(data, dict) else None
            if not isinstance(messages, list):
                logger.warning(f"Message inbox page {page} had no 'messages' list; stopping.")
                break

            fetched += len(messages)
            for record in messages:
                if not isinstance(record, dict):
                    continue
                event = _to_raw_event(record)
                if event is not None:
                    events.append(event)

            unread_total = _stat(data.get("stats"), "unread")
            if unread_total is not None and len(events) >= unread_total:
                break
            if not messages or not _has_next(data.get("pagination"), page):
                break
        else:
            logger.warning(f"Stopped paging the message inbox after {self.max_pages} pages")

        logger.info(f"Found {len(events)} unread messages ({fetched} fetched)")
        return events

    async def mark_read(self, session: Session, source_id: str) -> None:
        await self._request(session, "PUT", f"{MESSAGES_PATH}/{source_id}", json={"read": True})
        logger.info(f"Marked message {source_id} as read")

    async def mark_all_read(self, session: Session) -> None:
        await self._request(session, "PUT", MARK_ALL_READ_PATH)
        logger.info("Marked all messages as read")
