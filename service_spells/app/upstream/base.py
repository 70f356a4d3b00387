"""
Upstream client interface and error classification.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from shared.errors import ExternalServiceError, NotFoundError

from ..models import MetadataRecord


class UpstreamNotFoundError(NotFoundError):
    """The identifier does not exist upstream. Never cached."""

    def __init__(self, spell_id: int, details: Optional[Dict[str, Any]] = None):
        self.spell_id = spell_id
        super().__init__(f"Spell {spell_id} not found", {"spell_id": spell_id, **(details or {})})


class UpstreamError(ExternalServiceError):
    """Transient upstream failure: network, rate limit, server or payload error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        service: str = "blizzard_api",
    ):
        details = dict(details or {})
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__(service, message, details, upstream_status=status_code)


class UpstreamClient(ABC):
    """Fetches one complete metadata record per call.

    Implementations compose whatever upstream requests they need into one
    logical fetch: either every part succeeds and a full record is returned,
    or the fetch fails as a whole.
    """

    @abstractmethod
    async def fetch(self, spell_id: int) -> MetadataRecord:
        """Fetch a record, raising UpstreamNotFoundError or UpstreamError."""

    async def aclose(self):
        """Release client resources. No-op by default."""
