"""
Unit tests for the cache orchestrator.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from service_spells.app.freshness import FreshnessPolicy
from service_spells.app.orchestrator import CacheOrchestrator
from service_spells.app.store import InMemoryRecordStore
from service_spells.app.upstream import UpstreamError, UpstreamNotFoundError
from service_spells.tests.helpers import BASE_TIME, FakeClock, FakeUpstreamClient, TestDataFactory
from shared.errors import ValidationError


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []
        self.gauges = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))

    def set_gauge(self, metric_name: str, value: float, **labels):
        self.gauges.append((metric_name, value))


class TestCacheOrchestrator:
    """Test cases for CacheOrchestrator."""

    @pytest.fixture
    def clock(self):
        return FakeClock(BASE_TIME)

    @pytest.fixture
    def store(self):
        return InMemoryRecordStore()

    @pytest.fixture
    def fireball(self):
        return TestDataFactory.create_record(
            spell_id=123,
            display_names={"en_US": "Fireball"},
            icon_ref="icon_fire",
        )

    @pytest.fixture
    def upstream(self, clock, fireball):
        return FakeUpstreamClient(records=[fireball], clock=clock)

    @pytest.fixture
    def metrics(self):
        return DummyMetrics()

    @pytest.fixture
    def orchestrator(self, store, upstream, clock, metrics):
        return CacheOrchestrator(store, upstream, FreshnessPolicy(), metrics=metrics, clock=clock)

    @pytest.mark.asyncio
    async def test_cold_miss_fetches_then_serves_from_store(self, orchestrator, upstream, store, clock):
        """Identifier 123 is fetched once, then served from the store."""
        record = await orchestrator.get(123)

        assert record.display_names == {"en_US": "Fireball"}
        assert record.icon_ref == "icon_fire"
        assert record.fetched_at == BASE_TIME
        assert (await store.get(123)) == record
        assert upstream.calls == [123]

        clock.advance(1)
        again = await orchestrator.get(123)

        assert again == record
        assert upstream.calls == [123]

    @pytest.mark.asyncio
    async def test_fresh_record_never_calls_upstream(self, orchestrator, upstream, store, clock):
        await store.upsert(TestDataFactory.create_record(spell_id=123, fetched_at=BASE_TIME))
        clock.advance(86400)

        record = await orchestrator.get(123)

        assert record.fetched_at == BASE_TIME
        assert upstream.calls == []
        assert orchestrator.stats()["fresh_hits"] == 1

    @pytest.mark.asyncio
    async def test_stale_hit_returns_immediately_and_refreshes_in_background(self, store, clock):
        """Identifier 456 is 90000s old: served stale, refreshed behind the caller."""
        clock.advance(90000)
        stale = TestDataFactory.create_record(spell_id=456, fetched_at=clock() - timedelta(seconds=90000))
        await store.upsert(stale)

        gate = asyncio.Event()
        upstream = FakeUpstreamClient(
            records=[TestDataFactory.create_record(spell_id=456, display_names={"en_US": "Frostbolt"})],
            clock=clock,
            gate=gate,
        )
        orchestrator = CacheOrchestrator(store, upstream, clock=clock)

        record = await orchestrator.get(456)

        # The caller got the stale record while the refresh is still blocked
        assert record == stale
        assert not gate.is_set()
        assert orchestrator.stats()["in_flight"] == 1

        gate.set()
        await orchestrator.aclose()

        refreshed = await orchestrator.get(456)
        assert refreshed.fetched_at == clock()
        assert refreshed.display_names == {"en_US": "Frostbolt"}
        assert upstream.calls == [456]

    @pytest.mark.asyncio
    async def test_concurrent_cold_misses_share_one_fetch(self, store, clock, fireball):
        gate = asyncio.Event()
        upstream = FakeUpstreamClient(records=[fireball], clock=clock, gate=gate)
        orchestrator = CacheOrchestrator(store, upstream, clock=clock)

        tasks = [asyncio.create_task(orchestrator.get(123)) for _ in range(10)]
        await asyncio.sleep(0.01)
        assert orchestrator.stats()["in_flight"] == 1

        gate.set()
        results = await asyncio.gather(*tasks)

        assert upstream.calls == [123]
        assert all(result == results[0] for result in results)
        assert orchestrator.stats()["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_concurrent_stale_hits_schedule_one_refresh(self, store, clock):
        await store.upsert(TestDataFactory.create_record(spell_id=456, fetched_at=BASE_TIME))
        clock.advance(90000)
        gate = asyncio.Event()
        upstream = FakeUpstreamClient(
            records=[TestDataFactory.create_record(spell_id=456)],
            clock=clock,
            gate=gate,
        )
        orchestrator = CacheOrchestrator(store, upstream, clock=clock)

        results = await asyncio.gather(*(orchestrator.get(456) for _ in range(10)))

        assert all(result.fetched_at == BASE_TIME for result in results)
        gate.set()
        await orchestrator.aclose()
        assert upstream.calls == [456]
        assert orchestrator.stats()["stale_hits"] == 10

    @pytest.mark.asyncio
    async def test_not_found_is_not_cached(self, orchestrator, upstream, store):
        assert await orchestrator.get(999) is None
        assert await store.get(999) is None

        assert await orchestrator.get(999) is None
        assert upstream.calls == [999, 999]
        assert orchestrator.stats()["not_found"] == 2

    @pytest.mark.asyncio
    async def test_cold_miss_transient_error_propagates(self, orchestrator, upstream, store):
        upstream.fail_with(123)

        with pytest.raises(UpstreamError) as exc_info:
            await orchestrator.get(123)

        assert exc_info.value.status_code == 503
        assert await store.get(123) is None
        assert orchestrator.stats()["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_background_transient_error_keeps_stale_record(self, orchestrator, upstream, store, clock, metrics):
        stale = TestDataFactory.create_record(spell_id=123, fetched_at=BASE_TIME)
        await store.upsert(stale)
        clock.advance(90000)
        upstream.fail_with(123)

        assert await orchestrator.get(123) == stale
        await orchestrator.aclose()

        assert await store.get(123) == stale
        assert orchestrator.stats()["refresh_failures"] == 1
        assert ("spell_background_refresh_failures_total", {"reason": "upstream_error"}) in metrics.counters

    @pytest.mark.asyncio
    async def test_background_not_found_keeps_stale_record(self, store, clock):
        stale = TestDataFactory.create_record(spell_id=777, fetched_at=BASE_TIME)
        await store.upsert(stale)
        clock.advance(90000)
        upstream = FakeUpstreamClient(not_found=[777], clock=clock)
        orchestrator = CacheOrchestrator(store, upstream, clock=clock)

        assert await orchestrator.get(777) == stale
        await orchestrator.aclose()

        assert await store.get(777) == stale
        assert orchestrator.stats()["not_found"] == 1

        # Still stale, so the next lookup serves it again and retries upstream
        assert await orchestrator.get(777) == stale
        await orchestrator.aclose()
        assert upstream.calls == [777, 777]

    @pytest.mark.asyncio
    async def test_caller_cancellation_does_not_cancel_shared_fetch(self, store, clock, fireball):
        gate = asyncio.Event()
        upstream = FakeUpstreamClient(records=[fireball], clock=clock, gate=gate)
        orchestrator = CacheOrchestrator(store, upstream, clock=clock)

        first = asyncio.create_task(orchestrator.get(123))
        second = asyncio.create_task(orchestrator.get(123))
        await asyncio.sleep(0.01)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        gate.set()
        record = await second

        assert record.id == 123
        assert await store.get(123) == record
        assert upstream.calls == [123]

    @pytest.mark.asyncio
    async def test_discarded_upsert_returns_newer_stored_record(self, upstream, clock):
        newer = TestDataFactory.create_record(spell_id=123, fetched_at=BASE_TIME + timedelta(hours=1))
        store = AsyncMock()
        store.get.side_effect = [None, newer]
        store.upsert.return_value = False
        orchestrator = CacheOrchestrator(store, upstream, clock=clock)

        record = await orchestrator.get(123)

        assert record == newer

    @pytest.mark.asyncio
    async def test_refresh_ignores_freshness(self, orchestrator, upstream, store, clock):
        await store.upsert(TestDataFactory.create_record(spell_id=123, fetched_at=BASE_TIME))
        clock.advance(60)

        record = await orchestrator.refresh(123)

        assert record.fetched_at == BASE_TIME + timedelta(seconds=60)
        assert upstream.calls == [123]

    @pytest.mark.asyncio
    async def test_refresh_not_found_returns_none(self, orchestrator):
        assert await orchestrator.refresh(404) is None

    @pytest.mark.asyncio
    async def test_warm_summarizes_results(self, orchestrator, upstream):
        upstream.records[5] = TestDataFactory.create_record(spell_id=5)
        upstream.fail_with(6)

        summary = await orchestrator.warm([123, 5, 5, 6, 999], concurrency=2)

        assert summary["planned"] == 4
        assert summary["warmed"] == 2
        assert summary["not_found"] == [999]
        assert set(summary["errors"]) == {6}
        assert sorted(upstream.calls) == [5, 6, 123, 999]

    @pytest.mark.asyncio
    async def test_warm_rejects_non_positive_concurrency(self, orchestrator, upstream):
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.warm([123], concurrency=0)

        assert exc_info.value.status_code == 400
        assert upstream.calls == []

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, orchestrator, metrics):
        await orchestrator.get(123)
        await orchestrator.get(123)
        await orchestrator.get(999)

        assert ("spell_cache_lookups_total", {"result": "miss"}) in metrics.counters
        assert ("spell_cache_lookups_total", {"result": "fresh"}) in metrics.counters
        assert ("spell_cache_lookups_total", {"result": "not_found"}) in metrics.counters
        assert ("spell_upstream_fetches_total", {"outcome": "success"}) in metrics.counters
        assert ("spell_upstream_fetches_total", {"outcome": "not_found"}) in metrics.counters
        assert metrics.histograms
        assert metrics.gauges[-1] == ("spell_inflight_fetches", 0)

    @pytest.mark.asyncio
    async def test_cold_not_found_counts_one_lookup_result(self, orchestrator, metrics):
        await orchestrator.get(999)

        lookups = [labels for name, labels in metrics.counters if name == "spell_cache_lookups_total"]
        assert lookups == [{"result": "not_found"}]

    @pytest.mark.asyncio
    async def test_stats(self, orchestrator):
        await orchestrator.get(123)
        await orchestrator.get(123)

        stats = orchestrator.stats()

        assert stats == {
            "fresh_hits": 1,
            "stale_hits": 0,
            "misses": 1,
            "not_found": 0,
            "upstream_fetches": 1,
            "refresh_failures": 0,
            "in_flight": 0,
        }
