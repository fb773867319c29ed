"""
Periodic self-check of database, schedules and per-country data freshness.

A check that finds stale or missing data triggers a catch-up sync through
the engine guard, so it is skipped while another sync is running.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings as default_settings
from core.timeutils import epoch_to_utc, local_day_bounds, utcnow, SECONDS_PER_HOUR
from ingestion.repository import PriceRepository
from ingestion.runner import SyncEngine
from ingestion.scheduler import SCHEDULE, in_publication_window
from ingestion.state import SyncStateStore
from models.base import SyncStatus, SyncType
from schemas.health import (
    CountryCompleteness,
    CountryFreshness,
    DatabaseHealth,
    HealthReport,
    ScheduleHealth,
)

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"


class HealthMonitor:
    """
    Builds health reports and repairs stale data.

    ``scheduler`` is optional so the monitor can be assessed standalone; it is
    attached after construction when the scheduler owns the monitor job.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        engine: SyncEngine,
        scheduler=None,
        config=default_settings,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.scheduler = scheduler
        self.countries = [c.lower() for c in config.COUNTRIES]
        self.freshness_hours = config.FRESHNESS_HOURS
        self.clock = clock
        self.last_check: Optional[HealthReport] = None

    # ==================================================================
    # Checks
    # ==================================================================

    async def check_database(self) -> DatabaseHealth:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
                last_sync = await SyncStateStore(session).last_successful_sync()
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return DatabaseHealth(connected=False, error=str(e))

        return DatabaseHealth(
            connected=True,
            last_sync=last_sync.completed_at if last_sync else None,
            last_sync_type=last_sync.sync_type if last_sync else None
        )

    def check_schedules(self) -> ScheduleHealth:
        if self.scheduler is None:
            return ScheduleHealth(is_running=self.engine.is_running, scheduler_running=False, jobs=[])
        return self.scheduler.get_status()

    async def check_data(self, now: datetime):
        """Per-country freshness and missing hours through the end of tomorrow."""
        tomorrow = self.engine.today() + timedelta(days=1)
        _, horizon_ts = local_day_bounds(tomorrow, self.engine.tz)
        now_ts = int(now.timestamp())
        fresh_after = now_ts - self.freshness_hours * SECONDS_PER_HOUR

        async with self.session_factory() as session:
            latest = await PriceRepository(session).latest_timestamps(self.countries)

        freshness: List[CountryFreshness] = []
        completeness: List[CountryCompleteness] = []

        for country in self.countries:
            ts = latest.get(country)
            if ts is None:
                freshness.append(CountryFreshness(country=country, is_recent=False))
                continue

            freshness.append(CountryFreshness(
                country=country,
                latest_timestamp=ts,
                latest_time=epoch_to_utc(ts),
                is_recent=ts > fresh_after,
                hours_old=round((now_ts - ts) / SECONDS_PER_HOUR, 1)
            ))

            covered_until = ts + SECONDS_PER_HOUR
            completeness.append(CountryCompleteness(
                country=country,
                covered_until=epoch_to_utc(covered_until),
                missing_hours=max(0, (horizon_ts + 1 - covered_until) // SECONDS_PER_HOUR)
            ))

        return freshness, completeness

    @staticmethod
    def find_issues(
        database: DatabaseHealth,
        schedule: ScheduleHealth,
        freshness: List[CountryFreshness],
        completeness: List[CountryCompleteness],
        now: datetime
    ) -> List[str]:
        issues = []

        if not database.connected:
            issues.append("Database connection failed")

        publication_jobs = {job.id for job in SCHEDULE if job.publication_window}
        tolerate_publication = not in_publication_window(now)
        for job in schedule.jobs:
            if job.scheduled:
                continue
            if job.job_id in publication_jobs and tolerate_publication:
                continue
            issues.append(f"{job.name} schedule not active")

        for item in freshness:
            if item.latest_timestamp is None:
                issues.append(f"{item.country.upper()} has no data")
            elif not item.is_recent:
                issues.append(f"Stale data detected: {item.country.upper()} ({item.hours_old:.0f}h old)")

        for item in completeness:
            if item.missing_hours > 24:
                issues.append(f"{item.country.upper()} missing {item.missing_hours} hours")

        return issues

    # ==================================================================
    # Report
    # ==================================================================

    async def assess(self) -> HealthReport:
        """Build a report without side effects."""
        now = self.clock()
        database = await self.check_database()
        schedule = self.check_schedules()

        freshness: List[CountryFreshness] = []
        completeness: List[CountryCompleteness] = []
        initial_sync = None
        if database.connected:
            try:
                freshness, completeness = await self.check_data(now)
                initial_sync = await self.engine.get_initial_sync_status()
            except Exception as e:
                logger.error(f"Data freshness check failed: {e}")
                database.error = str(e)

        issues = self.find_issues(database, schedule, freshness, completeness, now)
        all_fresh = bool(freshness) and all(item.is_recent for item in freshness)
        overall = HEALTHY if database.connected and all_fresh else DEGRADED

        return HealthReport(
            timestamp=now,
            overall_status=overall,
            issues=issues,
            database=database,
            sync_schedule=schedule,
            data_freshness=freshness,
            data_completeness=completeness,
            initial_sync=initial_sync
        )

    @staticmethod
    def needs_catch_up(report: HealthReport) -> bool:
        """Stale or missing country data; completeness gaps alone are informational."""
        if not report.database.connected:
            return False
        return any(not item.is_recent for item in report.data_freshness)

    async def trigger_catch_up(self):
        """Run the efficient sync under the catch-up tag; failures are logged, not raised."""
        logger.info("Triggering catch-up sync")
        try:
            result = await self.engine.sync_efficient(SyncType.CATCHUP)
        except Exception as e:
            logger.error(f"Catch-up sync failed: {e}")
            return None
        logger.info(f"Catch-up sync finished with {result.status}")
        return result

    async def _record(self, report: HealthReport, started_at: datetime):
        summary = json.dumps({
            "overallStatus": report.overall_status,
            "issues": report.issues,
            "databaseConnected": report.database.connected,
        })
        try:
            async with self.session_factory() as session:
                await SyncStateStore(session).add_log(
                    SyncType.HEALTH_CHECK,
                    SyncStatus.SUCCESS,
                    started_at=started_at,
                    error_message=summary
                )
        except Exception as e:
            logger.error(f"Could not record health check: {e}")

    async def perform_health_check(self) -> HealthReport:
        """Assess, repair stale or missing data, and record the check."""
        started_at = utcnow()
        report = await self.assess()

        if report.issues:
            logger.warning(f"Health check {report.overall_status}: {'; '.join(report.issues)}")
        else:
            logger.info("Health check passed")

        if self.needs_catch_up(report):
            await self.trigger_catch_up()

        await self._record(report, started_at)
        self.last_check = report
        return report
