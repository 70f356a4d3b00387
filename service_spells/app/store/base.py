"""
Record store interface.
"""

from abc import ABC, abstractmethod
from typing import Optional

from shared.errors import ServiceException

from ..models import MetadataRecord


class RecordStoreError(ServiceException):
    """The record store could not serve a read or write."""

    status_code = 503

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("RECORD_STORE_ERROR", message, details)


class RecordStore(ABC):
    """Durable keyed storage for spell metadata records."""

    async def start(self):
        """Open connections. No-op by default."""

    async def stop(self):
        """Release connections. No-op by default."""

    @abstractmethod
    async def get(self, spell_id: int) -> Optional[MetadataRecord]:
        """Return the stored record, or None."""

    @abstractmethod
    async def upsert(self, record: MetadataRecord) -> bool:
        """Store ``record`` unless an equal or newer one is already stored.

        Returns True when the record was written, False when it was
        discarded in favour of the stored one.
        """

    async def health_check(self) -> bool:
        return True
