"""Service-request queue adapter."""

import logging
from typing import Any, Dict, List, Optional

from .models import RawEvent, SourceType
from .session import Session
from .source_adapter import SourceAdapter, parse_timestamp

logger = logging.getLogger(__name__)

SERVICES_PATH = "/api/admin/services"
PENDING = "pending"


def _to_raw_event(record: Dict[str, Any]) -> Optional[RawEvent]:
    record_id = record.get("_id") or record.get("id")
    if not record_id or record.get("status") != PENDING:
        return None

    occurred_at = parse_timestamp(record.get("createdAt"))
    if occurred_at is None:
        logger.debug(f"Skipping service request {record_id}: unparseable createdAt")
        return None

    requester = (record.get("requesterEmail") or "unknown requester").strip()
    title = (record.get("title") or record.get("description") or "Untitled request").strip()

    return RawEvent(
        source_type=SourceType.SERVICE_REQUEST,
        source_id=str(record_id),
        title="New service request",
        detail=f"{requester}: {title}",
        occurred_at=occurred_at,
        deep_link=f"/admin/services/{record_id}",
    )


class ServiceRequestAdapter(SourceAdapter):
    """Service requests still waiting for review."""

    source_type = SourceType.SERVICE_REQUEST

    async def fetch(self, session: Session) -> List[RawEvent]:
        data = await self._request(session, "GET", SERVICES_PATH, params={"status": PENDING})

        records = data.get("data") if isinstance(data, dict) else None
        if not isinstance(records, list):
            logger.warning("Service request response had no 'data' list; treating as empty.")
            return []

        events = []
        for record in records:
            if not isinstance(record, dict):
                continue
            event = _to_raw_event(record)
            if event is not None:
                events.append(event)

        logger.info(f"Found {len(events)} pending service requests")
        return events
