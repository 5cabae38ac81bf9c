"""Abstract source adapter interface."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional

import httpx

from .models import RawEvent, SourceType
from .session import Session

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Base class for upstream feed failures."""

    def __init__(self, source_type: SourceType, message: str):
        super().__init__(f"{source_type.value}: {message}")
        self.source_type = source_type


class UnauthorizedError(FetchError):
    """The upstream rejected the session (HTTP 401)."""


class UnavailableError(FetchError):
    """The upstream could not be reached or did not answer with JSON."""


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO8601 timestamp ("2025-01-07T10:00:00.000Z") to an aware UTC datetime."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class SourceAdapter(ABC):
    """
    Fetches one upstream collection and projects it into RawEvents.

    Subclasses apply their own filtering policy (unread, pending) before
    returning, and report failures through FetchError subclasses.
    """

    source_type: SourceType

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    @abstractmethod
    async def fetch(self, session: Session) -> List[RawEvent]:
        """
        Fetch the current upstream records.

        Args:
            session: Admin session; only its token is forwarded.

        Returns:
            RawEvents for the records that pass the adapter's filter.

        Raises:
            UnauthorizedError: The session was rejected.
            UnavailableError: Network failure or non-JSON response.
        """

    async def mark_read(self, session: Session, source_id: str) -> None:
        """Mark one upstream record as read. Sources without read state ignore this."""
        logger.debug(f"{self.source_type.value} source has no read state; ignoring mark_read({source_id})")

    async def mark_all_read(self, session: Session) -> None:
        """Mark every upstream record as read. Sources without read state ignore this."""
        logger.debug(f"{self.source_type.value} source has no read state; ignoring mark_all_read")

    async def _request(self, session: Session, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded JSON body."""
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, headers=session.auth_headers(), **kwargs)
        except httpx.RequestError as e:
            raise UnavailableError(self.source_type, f"request to {url} failed: {e}") from e

        if response.status_code == 401:
            raise UnauthorizedError(self.source_type, "session rejected by upstream")

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            raise UnavailableError(
                self.source_type,
                f"non-JSON response from {url} (status {response.status_code})"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise UnavailableError(self.source_type, f"invalid JSON from {url}: {e}") from e

        if response.is_error:
            message = data.get("message") if isinstance(data, dict) else None
            raise UnavailableError(
                self.source_type,
                f"{url} returned {response.status_code}: {message or 'no message'}"
            )
        return data
