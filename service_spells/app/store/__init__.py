"""
Record store package for the spell metadata service.

Provides the keyed record store interface consumed by the cache
orchestrator plus two backends: PostgreSQL (durable, default) and an
in-process store for local runs and tests. Backends enforce that an upsert
never replaces a record with an older ``fetched_at``.
"""

from .base import RecordStore, RecordStoreError
from .memory import InMemoryRecordStore
from .postgres import PostgresRecordStore

__all__ = [
    "RecordStore",
    "RecordStoreError",
    "InMemoryRecordStore",
    "PostgresRecordStore",
    "create_record_store",
]


def create_record_store(backend: str, dsn: str = "", **pool_options) -> RecordStore:
    """Build the record store selected by configuration."""
    if backend == "memory":
        return InMemoryRecordStore()
    if backend == "postgres":
        return PostgresRecordStore(dsn, **pool_options)
    raise ValueError(f"Unknown record store backend: {backend}")
