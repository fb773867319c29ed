"""
Cron-style scheduling of price syncs.

Jobs are declared in ``SCHEDULE`` as {id, crontab, timezone, handler} so
trigger windows can be checked without waiting on the wall clock.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings as default_settings
from core.timeutils import get_timezone, utcnow
from ingestion.runner import SyncEngine, SyncOutcome
from models.base import SyncStatus, SyncType
from schemas.health import ScheduledJobStatus, ScheduleHealth
from schemas.sync import SyncResult

logger = logging.getLogger(__name__)

HEALTH_JOB_ID = "health_check"
STARTUP_JOB_ID = "startup_reconciliation"


@dataclass(frozen=True)
class ScheduledJob:
    """
    One cron registration.

    ``timezone`` of None means the business timezone.
    """
    id: str
    name: str
    crontab: str
    timezone: Optional[str]
    handler: str
    publication_window: bool = False


# Upstream publishes next-day prices in the early afternoon (UTC).
SCHEDULE = (
    ScheduledJob(
        id="publication_window_early",
        name="Publication window sync (12:45-12:55 UTC)",
        crontab="45,50,55 12 * * *",
        timezone="UTC",
        handler="run_publication_check",
        publication_window=True
    ),
    ScheduledJob(
        id="publication_window",
        name="Publication window sync (13:00-15:55 UTC)",
        crontab="*/5 13-15 * * *",
        timezone="UTC",
        handler="run_publication_check",
        publication_window=True
    ),
    ScheduledJob(
        id="next_day_sync",
        name="Next day sync",
        crontab="30 13 * * *",
        timezone=None,
        handler="run_next_day_check"
    ),
    ScheduledJob(
        id="weekly_sync",
        name="Weekly full sync",
        crontab="0 2 * * sun",
        timezone=None,
        handler="run_weekly_sync"
    ),
)


def build_trigger(job: ScheduledJob, default_timezone: str) -> CronTrigger:
    return CronTrigger.from_crontab(job.crontab, timezone=get_timezone(job.timezone or default_timezone))


def fires_within(
    job: ScheduledJob,
    start: datetime,
    end: datetime,
    default_timezone: str = default_settings.BUSINESS_TIMEZONE
) -> bool:
    """True if ``job`` has a fire time in [start, end]."""
    trigger = build_trigger(job, default_timezone)
    next_fire = trigger.get_next_fire_time(None, start)
    return next_fire is not None and next_fire <= end


def in_publication_window(now: datetime) -> bool:
    """Whether ``now`` falls in the 12:45-15:55 UTC publication band."""
    now_utc = now.astimezone(get_timezone("UTC"))
    minutes = now_utc.hour * 60 + now_utc.minute
    return 12 * 60 + 45 <= minutes <= 15 * 60 + 55


class SyncScheduler:
    """
    Owns the APScheduler instance and the job handlers.

    Every handler catches and logs its own failures so a broken sync never
    takes down the scheduler loop.
    """

    def __init__(self, engine: SyncEngine, health_monitor=None, config=default_settings):
        self.engine = engine
        self.health_monitor = health_monitor
        self.timezone = config.BUSINESS_TIMEZONE
        self.health_interval_minutes = config.HEALTH_CHECK_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler(timezone=get_timezone(self.timezone))
        self.jobs: Dict[str, ScheduledJob] = {job.id: job for job in SCHEDULE}

    # ==================================================================
    # Handlers
    # ==================================================================

    async def _publication_check(self) -> SyncOutcome:
        yesterday = self.engine.today() - timedelta(days=1)
        completeness = await self.engine.is_date_complete(yesterday)

        if completeness.is_complete:
            return SyncOutcome(
                status=SyncStatus.SKIPPED,
                message=f"{yesterday} already complete"
            )

        logger.info(f"{yesterday} incomplete ({completeness.country_counts}), syncing")
        outcome = await self.engine.perform_efficient_sync()

        today = await self.engine.is_date_complete(self.engine.today())
        logger.info(f"Today's data after sync: {today.country_counts}")
        return outcome

    async def _next_day_check(self) -> SyncOutcome:
        if not await self.engine.needs_next_day_sync():
            return SyncOutcome(status=SyncStatus.SKIPPED, message="Next day data already available")
        return await self.engine.perform_efficient_sync()

    async def _guarded(self, sync_type: SyncType, operation) -> Optional[SyncResult]:
        try:
            return await self.engine.run_exclusive(sync_type, operation)
        except Exception as e:
            logger.error(f"Scheduled {sync_type.value} failed: {e}")
            return None

    async def run_publication_check(self) -> Optional[SyncResult]:
        """Sync only if yesterday is still incomplete."""
        return await self._guarded(SyncType.PUBLICATION_WINDOW, self._publication_check)

    async def run_next_day_check(self) -> Optional[SyncResult]:
        return await self._guarded(SyncType.NEXT_DAY, self._next_day_check)

    async def run_weekly_sync(self) -> Optional[SyncResult]:
        return await self._guarded(SyncType.WEEKLY, self.engine.perform_efficient_sync)

    async def run_health_check(self):
        if self.health_monitor is None:
            return None
        try:
            return await self.health_monitor.perform_health_check()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return None

    async def reconcile_on_startup(self) -> Optional[SyncResult]:
        """
        Resume or start the initial backfill, or recover a missed daily sync.

        If the backfill is marked complete, only yesterday's completeness is
        checked and repaired.
        """
        try:
            status = await self.engine.get_initial_sync_status()
        except Exception as e:
            logger.error(f"Startup reconciliation could not read sync state: {e}")
            return None

        if not status.is_complete:
            logger.info(
                "Initial sync not complete"
                + (f", last chunk {status.last_chunk}" if status.last_chunk else "")
                + ", starting backfill"
            )
            return await self._guarded(SyncType.INITIAL_SYNC, self.engine.perform_initial_sync)

        logger.info(f"Initial sync completed at {status.completed_at}, checking for missed syncs")
        return await self._guarded(SyncType.STARTUP_RECOVERY, self._publication_check)

    # ==================================================================
    # Lifecycle
    # ==================================================================

    def register_jobs(self, run_startup: bool = True):
        for job in SCHEDULE:
            self.scheduler.add_job(
                getattr(self, job.handler),
                trigger=build_trigger(job, self.timezone),
                id=job.id,
                name=job.name,
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
            logger.info(f"Scheduled {job.id}: '{job.crontab}' ({job.timezone or self.timezone})")

        if self.health_monitor is not None:
            self.scheduler.add_job(
                self.run_health_check,
                trigger=IntervalTrigger(minutes=self.health_interval_minutes),
                id=HEALTH_JOB_ID,
                name="Health check",
                next_run_time=utcnow(),
                replace_existing=True,
                max_instances=1
            )

        if run_startup:
            self.scheduler.add_job(
                self.reconcile_on_startup,
                trigger=DateTrigger(run_date=utcnow()),
                id=STARTUP_JOB_ID,
                name="Startup reconciliation",
                replace_existing=True
            )

    def start(self, run_startup: bool = True):
        """Register all jobs and start the scheduler"""
        self.register_jobs(run_startup=run_startup)
        self.scheduler.start()
        logger.info("Sync scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    def get_status(self) -> ScheduleHealth:
        """Per-job liveness: registered and with a computable next fire time."""
        jobs: List[ScheduledJobStatus] = []
        for scheduled in SCHEDULE:
            job = self.scheduler.get_job(scheduled.id)
            next_run = getattr(job, "next_run_time", None) if job else None
            jobs.append(ScheduledJobStatus(
                job_id=scheduled.id,
                name=scheduled.name,
                scheduled=job is not None and next_run is not None,
                next_run=next_run
            ))

        return ScheduleHealth(
            is_running=self.engine.is_running,
            scheduler_running=self.scheduler.running,
            jobs=jobs
        )
