"""
Read-through cache orchestrator for spell metadata.

Serves stored records by freshness: fresh records are returned as-is,
stale records are returned immediately while a background refresh runs,
and missing records are fetched from upstream before answering.
"""

import asyncio
import functools
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Set

from shared.errors import ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .freshness import Freshness, FreshnessPolicy
from .inflight import InFlightRegistry
from .models import MetadataRecord
from .store import RecordStore
from .upstream import UpstreamClient, UpstreamError, UpstreamNotFoundError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheOrchestrator:
    """Coordinates the record store, the upstream client and freshness.

    At most one upstream fetch per spell ID is in flight at a time. Stored
    records are only replaced by records with a later ``fetched_at``, and a
    spell the upstream does not know is never written.
    """

    def __init__(
        self,
        store: RecordStore,
        upstream: UpstreamClient,
        policy: Optional[FreshnessPolicy] = None,
        *,
        metrics: Optional[MetricsCollector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.upstream = upstream
        self.policy = policy or FreshnessPolicy()
        self.metrics = metrics
        self.clock = clock or _utcnow
        self.logger = get_logger("spells.orchestrator")

        self._inflight = InFlightRegistry()
        self._background: Set[asyncio.Task] = set()
        self._stats: Dict[str, int] = {
            "fresh_hits": 0,
            "stale_hits": 0,
            "misses": 0,
            "not_found": 0,
            "upstream_fetches": 0,
            "refresh_failures": 0,
        }

    async def get(self, spell_id: int) -> Optional[MetadataRecord]:
        """Return the record for ``spell_id``, or None if upstream does not know it.

        Raises UpstreamError when nothing is stored and the upstream fetch
        fails transiently.
        """
        record = await self.store.get(spell_id)
        freshness = self.policy.classify(record, self.clock())

        if freshness is Freshness.FRESH:
            self._count_lookup("fresh_hits", "fresh")
            return record

        if freshness is Freshness.STALE:
            self._count_lookup("stale_hits", "stale")
            self._schedule_refresh(spell_id)
            return record

        self.logger.debug("Spell cache miss", spell_id=spell_id)
        self._stats["misses"] += 1
        result = "miss"
        try:
            return await self.fetch_and_store(spell_id)
        except UpstreamNotFoundError:
            result = "not_found"
            self._stats["not_found"] += 1
            return None
        finally:
            # One lookup, one result label
            if self.metrics:
                self.metrics.increment_counter("spell_cache_lookups_total", result=result)

    async def refresh(self, spell_id: int) -> Optional[MetadataRecord]:
        """Fetch ``spell_id`` from upstream regardless of freshness."""
        try:
            return await self.fetch_and_store(spell_id)
        except UpstreamNotFoundError:
            self._stats["not_found"] += 1
            return None

    async def fetch_and_store(self, spell_id: int) -> MetadataRecord:
        """Fetch and store a record, sharing any fetch already in flight.

        A caller's cancellation never cancels the shared fetch. Raises
        UpstreamNotFoundError or UpstreamError.
        """
        task, started = self._start_fetch(spell_id)
        if not started:
            self.logger.debug("Joining in-flight spell fetch", spell_id=spell_id)
        return await asyncio.shield(task)

    def _start_fetch(self, spell_id: int):
        task, started = self._inflight.join_or_start(
            spell_id, lambda: self._fetch_and_store(spell_id)
        )
        if started:
            task.add_done_callback(lambda _: self._update_inflight_gauge())
            self._update_inflight_gauge()
        return task, started

    async def _fetch_and_store(self, spell_id: int) -> MetadataRecord:
        self._stats["upstream_fetches"] += 1
        start_time = time.time()
        outcome = "error"
        try:
            record = await self.upstream.fetch(spell_id)
            outcome = "success"
        except UpstreamNotFoundError:
            outcome = "not_found"
            raise
        finally:
            self._record_fetch(outcome, time.time() - start_time)

        written = await self.store.upsert(record)
        if written:
            self.logger.info("Spell record stored", spell_id=spell_id)
            return record

        # A newer record was stored meanwhile; it wins
        stored = await self.store.get(spell_id)
        return stored if stored is not None else record

    async def warm(
        self,
        spell_ids: Iterable[int],
        *,
        concurrency: int = 5,
        force: bool = False,
    ) -> Dict[str, Any]:
        """Pre-populate the store for ``spell_ids``.

        Without ``force`` each ID goes through the normal lookup path, so
        fresh records are left alone. Returns a summary of the run.
        """
        if concurrency < 1:
            raise ValidationError("concurrency must be at least 1", {"concurrency": concurrency})

        spell_ids = list(dict.fromkeys(spell_ids))
        semaphore = asyncio.Semaphore(concurrency)
        summary: Dict[str, Any] = {
            "planned": len(spell_ids),
            "warmed": 0,
            "not_found": [],
            "errors": {},
        }

        async def _warm_one(spell_id: int):
            async with semaphore:
                try:
                    record = await (self.refresh(spell_id) if force else self.get(spell_id))
                except UpstreamError as exc:
                    summary["errors"][spell_id] = exc.message
                    return
            if record is None:
                summary["not_found"].append(spell_id)
            else:
                summary["warmed"] += 1

        await asyncio.gather(*(_warm_one(spell_id) for spell_id in spell_ids))
        summary["not_found"].sort()

        self.logger.info(
            "Spell cache warm completed",
            planned=summary["planned"],
            warmed=summary["warmed"],
            not_found=len(summary["not_found"]),
            errors=len(summary["errors"]),
        )
        return summary

    def _schedule_refresh(self, spell_id: int):
        """Start a background refresh unless a fetch is already in flight.

        Nobody awaits the task; failures are logged and counted by
        ``_refresh_done`` and the stale record stays in place.
        """
        task, started = self._start_fetch(spell_id)
        if not started:
            return
        self.logger.debug("Background refresh scheduled", spell_id=spell_id)
        self._background.add(task)
        task.add_done_callback(functools.partial(self._refresh_done, spell_id))

    def _refresh_done(self, spell_id: int, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, UpstreamNotFoundError):
            self._stats["not_found"] += 1
            self._refresh_failed(spell_id, "not_found")
        elif isinstance(exc, UpstreamError):
            self._refresh_failed(spell_id, "upstream_error", error=exc.message)
        else:
            self._refresh_failed(spell_id, "internal_error", error=str(exc))

    def _refresh_failed(self, spell_id: int, reason: str, **kwargs):
        self._stats["refresh_failures"] += 1
        self.logger.warning(
            "Background refresh failed, keeping stale record",
            spell_id=spell_id,
            reason=reason,
            **kwargs
        )
        if self.metrics:
            self.metrics.increment_counter("spell_background_refresh_failures_total", reason=reason)

    def _count_lookup(self, key: str, result: str):
        self._stats[key] += 1
        if self.metrics:
            self.metrics.increment_counter("spell_cache_lookups_total", result=result)

    def _record_fetch(self, outcome: str, duration: float):
        if self.metrics:
            self.metrics.increment_counter("spell_upstream_fetches_total", outcome=outcome)
            self.metrics.observe_histogram("spell_upstream_fetch_duration_seconds", duration)

    def _update_inflight_gauge(self):
        if self.metrics:
            self.metrics.set_gauge("spell_inflight_fetches", len(self._inflight))

    def stats(self) -> Dict[str, int]:
        """Return lookup and fetch counters."""
        return {**self._stats, "in_flight": len(self._inflight)}

    async def aclose(self):
        """Wait for outstanding background refreshes and fetches."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self._inflight.wait_all()
