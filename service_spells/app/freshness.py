"""
Freshness classification for stored spell records.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from .models import MetadataRecord

DEFAULT_REFRESH_INTERVAL_SECONDS = 86400


class Freshness(str, Enum):
    """Cache status of a single spell."""
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"


def classify(
    record: Optional[MetadataRecord],
    now: datetime,
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS,
) -> Freshness:
    """Classify a record by age. The boundary age itself is still fresh."""
    if record is None:
        return Freshness.ABSENT
    age = (now - record.fetched_at).total_seconds()
    if age <= refresh_interval_seconds:
        return Freshness.FRESH
    return Freshness.STALE


class FreshnessPolicy:
    """Freshness classification bound to a refresh interval."""

    def __init__(self, refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS):
        if refresh_interval_seconds < 0:
            raise ValueError("refresh_interval_seconds must be >= 0")
        self.refresh_interval_seconds = refresh_interval_seconds

    def classify(self, record: Optional[MetadataRecord], now: datetime) -> Freshness:
        return classify(record, now, self.refresh_interval_seconds)
