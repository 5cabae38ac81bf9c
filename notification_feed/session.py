"""Admin session passed through to the upstream feeds."""

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class Session:
    """Holds the admin bearer token. Adapters only forward it."""

    def __init__(self, token: Optional[str] = None):
        self._token = token or None

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def auth_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def clear(self) -> None:
        """Drop the token after the upstream rejected it."""
        if self._token is not None:
            logger.warning("Admin session expired; clearing token.")
        self._token = None
