"""
Spell metadata service package.

Serves localized spell names and icon references looked up from the
Blizzard Game Data API, persisting results so repeated lookups avoid the
rate-limited upstream. It provides:

- app.main: API surface for spell lookups, health and cache stats.
- app.orchestrator: read-through cache with background refresh and
  in-flight fetch deduplication.
- app.freshness: freshness classification of stored records.
- app.store: record store interface with PostgreSQL and in-memory backends.
- app.upstream: upstream client interface and the Blizzard implementation.
- app.presentation: locale selection for outbound responses.
"""
