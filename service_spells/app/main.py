"""
Spell metadata service.

Serves localized spell names and icons from a read-through cache in front
of the Blizzard Game Data API.
"""

from datetime import datetime
from typing import Callable, Dict, Optional

from fastapi import Query
from prometheus_client import CollectorRegistry

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import NotFoundError

from .freshness import FreshnessPolicy
from .models import CacheStatsResponse, SpellResponse
from .orchestrator import CacheOrchestrator
from .presentation import present
from .store import RecordStore, create_record_store
from .upstream import BlizzardClient, UpstreamClient


class SpellService(BaseService):
    """Spell metadata service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[RecordStore] = None,
        upstream: Optional[UpstreamClient] = None,
        registry: Optional[CollectorRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__("spells", 8020, config=config, registry=registry)

        # Initialize components
        self.store = store or create_record_store(
            self.config.store_backend,
            self.config.postgres_dsn,
            min_size=self.config.postgres_min_pool_size,
            max_size=self.config.postgres_max_pool_size,
        )
        self.upstream = upstream or BlizzardClient.from_config(self.config, clock=clock)
        self.orchestrator = CacheOrchestrator(
            self.store,
            self.upstream,
            FreshnessPolicy(self.config.refresh_interval_seconds),
            metrics=self.metrics,
            clock=clock,
        )

        self._setup_spell_routes()

    def _setup_spell_routes(self):
        """Set up spell-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "spells",
                "message": "Spell metadata cache",
                "version": "1.0.0",
                "capabilities": ["read_through_cache", "background_refresh", "localization"]
            }

        @self.app.get("/i/spell/{spell_id:int}", response_model=SpellResponse)
        async def get_spell(
            spell_id: int,
            locale: Optional[str] = Query(None, description="Locale such as fr_FR"),
        ):
            """Look up a spell's display name and icon."""
            record = await self.orchestrator.get(spell_id)
            if record is None:
                raise NotFoundError(f"Spell {spell_id} not found", {"spell_id": spell_id})

            return present(record, locale, self.config.default_locale)

        @self.app.get("/cache/stats", response_model=CacheStatsResponse)
        async def cache_stats():
            """Cache counters and upstream circuit state."""
            upstream_breaker = getattr(self.upstream, "circuit_breaker", None)
            return CacheStatsResponse(
                orchestrator=self.orchestrator.stats(),
                upstream=upstream_breaker.get_state() if upstream_breaker else None,
                refresh_interval_seconds=self.orchestrator.policy.refresh_interval_seconds,
                default_locale=self.config.default_locale,
            )

    async def start(self):
        """Start service components."""
        await self.store.start()
        self.logger.info(
            "Spell service started",
            store_backend=self.config.store_backend,
            refresh_interval_seconds=self.config.refresh_interval_seconds,
        )

    async def stop(self):
        """Stop service components."""
        await self.orchestrator.aclose()
        await self.upstream.aclose()
        await self.store.stop()
        self.logger.info("Spell service stopped")

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies."""
        dependencies = {
            "record_store": "ok" if await self.store.health_check() else "error",
        }
        upstream_breaker = getattr(self.upstream, "circuit_breaker", None)
        if upstream_breaker is not None:
            dependencies[upstream_breaker.name] = "degraded" if upstream_breaker.is_open() else "ok"
        return dependencies


def create_app(**kwargs):
    """Create spell service application."""
    service = SpellService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = SpellService()
    service.run()
