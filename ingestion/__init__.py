"""
Price sync components: fetch from the market API, validate, upsert, schedule.

Modules:
    chunker: Half-year and one-year splitting of date ranges
    runner: SyncEngine orchestrating fetch -> transform -> upsert under a single-run guard
    scheduler: APScheduler cron jobs for the publication window, next-day and weekly syncs
    health: Periodic freshness checks that trigger catch-up syncs
    repository: Read-side price queries
    state: Backfill progress settings and the sync log
    retry: Exponential backoff for manual retries

Subpackages:
    extractors: Elering NPS price API client
    loaders: Transactional price upsert

Usage:
    from core.database import async_session_maker
    from ingestion.runner import SyncEngine

    engine = SyncEngine(async_session_maker)
    result = await engine.sync_efficient()
    print(f"{result.records_processed} prices stored")

Error Handling:
    Components raise the exceptions in core.exceptions. The engine logs every
    failed sync with status=error and re-raises; scheduled handlers catch and
    log so the scheduler keeps running.
"""

__all__ = [
    "SyncEngine",
    "SyncScheduler",
    "HealthMonitor",
    "EleringClient",
    "PriceLoader",
]
