"""
In-process record store.
"""

import asyncio
from typing import Dict, Optional

from shared.logging import get_logger

from ..models import MetadataRecord
from .base import RecordStore


class InMemoryRecordStore(RecordStore):
    """Record store backed by a dict. Contents are lost on restart."""

    def __init__(self):
        self.logger = get_logger("spells.store.memory")
        self._records: Dict[int, MetadataRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, spell_id: int) -> Optional[MetadataRecord]:
        async with self._lock:
            return self._records.get(spell_id)

    async def upsert(self, record: MetadataRecord) -> bool:
        async with self._lock:
            current = self._records.get(record.id)
            if current is not None and current.fetched_at >= record.fetched_at:
                self.logger.debug(
                    "Discarded older spell record",
                    spell_id=record.id,
                    stored_fetched_at=current.fetched_at.isoformat(),
                    fetched_at=record.fetched_at.isoformat(),
                )
                return False
            self._records[record.id] = record
            return True

    def __len__(self) -> int:
        return len(self._records)
