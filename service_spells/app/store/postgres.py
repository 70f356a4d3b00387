"""
PostgreSQL record store for the spell metadata service.
"""

import json
from typing import Optional

import asyncpg

from shared.logging import get_logger

from ..models import MetadataRecord
from .base import RecordStore, RecordStoreError

_DB_ERRORS = (OSError, asyncpg.PostgresError, asyncpg.InterfaceError)


async def _init_connection(conn: asyncpg.Connection):
    """Decode JSONB columns to Python objects."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


class PostgresRecordStore(RecordStore):
    """PostgreSQL persistence for spell metadata records.

    The monotonic ``fetched_at`` rule is enforced by the upsert statement
    itself, so concurrent writers from several processes cannot regress a
    record.
    """

    UPSERT_SQL = """
        INSERT INTO spell_metadata (id, display_names, icon_ref, fetched_at)
        VALUES ($1, $2, $3, $4)
        ON CONFLICT (id) DO UPDATE SET
            display_names = EXCLUDED.display_names,
            icon_ref = EXCLUDED.icon_ref,
            fetched_at = EXCLUDED.fetched_at
        WHERE spell_metadata.fetched_at < EXCLUDED.fetched_at
    """

    SELECT_SQL = """
        SELECT id, display_names, icon_ref, fetched_at
        FROM spell_metadata WHERE id = $1
    """

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("spells.store.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30,
                init=_init_connection,
            )

            await self._create_tables()

            self.logger.info("PostgreSQL record store started")

        except _DB_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL record store", error=str(e))
            raise RecordStoreError(f"Failed to start PostgreSQL record store: {e}")

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL record store stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS spell_metadata (
                    id BIGINT PRIMARY KEY,
                    display_names JSONB NOT NULL,
                    icon_ref TEXT NOT NULL,
                    fetched_at TIMESTAMP WITH TIME ZONE NOT NULL
                );
            """)

    async def get(self, spell_id: int) -> Optional[MetadataRecord]:
        """Load a record from the database."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(self.SELECT_SQL, spell_id)
        except _DB_ERRORS as e:
            self.logger.error("Error loading spell record", spell_id=spell_id, error=str(e))
            raise RecordStoreError("Failed to load spell record", {"spell_id": spell_id})

        if not row:
            return None

        return self._row_to_record(row)

    async def upsert(self, record: MetadataRecord) -> bool:
        """Save a record unless the stored one is at least as new."""
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    self.UPSERT_SQL,
                    record.id,
                    dict(record.display_names),
                    record.icon_ref,
                    record.fetched_at,
                )
        except _DB_ERRORS as e:
            self.logger.error("Error saving spell record", spell_id=record.id, error=str(e))
            raise RecordStoreError("Failed to save spell record", {"spell_id": record.id})

        written = status.endswith(" 1")
        if not written:
            self.logger.debug("Discarded older spell record", spell_id=record.id)
        return written

    def _row_to_record(self, row) -> MetadataRecord:
        """Convert database row to MetadataRecord."""
        return MetadataRecord(
            id=row["id"],
            display_names=row["display_names"] or {},
            icon_ref=row["icon_ref"],
            fetched_at=row["fetched_at"],
        )

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except _DB_ERRORS:
            return False
