# ============================================================================
# File: ingestion/runner.py
# Description: Sync engine orchestrating fetch, transform and upsert of prices
# ============================================================================
"""
Sync Engine - Orchestrates Fetch -> Transform -> Upsert for price data.

This module provides:
- A single in-process guard so only one sync runs at a time
- Trailing-window, historical, yearly and "efficient" syncs
- Resumable half-year backfill with progress stored in settings
- Per-date completeness checks in the business timezone
- One sync log row per terminal state (success, error, skipped)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings as default_settings
from core.exceptions import (
    PriceSyncException,
    SyncStateError,
    ValidationError,
)
from core.timeutils import (
    get_timezone,
    local_date_of,
    local_day_bounds,
    parse_date,
    today_local,
    utcnow,
)
from ingestion.chunker import DateRange, span_days, split_range
from ingestion.extractors.elering_client import EleringClient
from ingestion.loaders.price_loader import PriceLoader
from ingestion.repository import PriceRepository
from ingestion.retry import retry_with_backoff
from ingestion.state import SyncStateStore
from models.base import (
    SyncStatus,
    SyncType,
    INITIAL_SYNC_COMPLETED_KEY,
    INITIAL_SYNC_LAST_CHUNK_KEY,
)
from schemas.prices import PricePoint
from schemas.sync import DateCompleteness, InitialSyncStatus, SyncResult, UpsertResult

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """What a guarded operation reports back to ``run_exclusive``"""
    created: int = 0
    updated: int = 0
    status: SyncStatus = SyncStatus.SUCCESS
    message: Optional[str] = None

    def add(self, upsert: UpsertResult):
        self.created += upsert.created
        self.updated += upsert.updated

    @property
    def processed(self) -> int:
        return self.created + self.updated


class SyncEngine:
    """
    Price sync orchestrator.

    Responsibilities:
    - Decide which date windows to fetch and how to chunk them
    - Transform provider items into validated PricePoints
    - Upsert through PriceLoader (one transaction per call)
    - Serialize syncs with an in-memory running flag
    - Record every attempt in the sync log

    Errors are not retried here. A failed sync is logged with status=error
    and re-raised; schedules and the health monitor re-invoke later.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        client: Optional[EleringClient] = None,
        config=default_settings,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.session_factory = session_factory
        self.client = client or EleringClient()
        self.countries = [c.lower() for c in config.COUNTRIES]
        self.tz = get_timezone(config.BUSINESS_TIMEZONE)
        self.earliest_date = parse_date(config.EARLIEST_DATE, "EARLIEST_DATE")
        self.completeness_threshold = config.COMPLETENESS_THRESHOLD
        self.chunk_pause = config.CHUNK_PAUSE_SECONDS
        self.chunk_threshold_days = config.HISTORICAL_CHUNK_THRESHOLD_DAYS
        self.max_span_days = config.MAX_API_SPAN_DAYS
        self.lookahead_days = config.SYNC_LOOKAHEAD_DAYS
        self.batch_size = config.ETL_BATCH_SIZE
        self.max_retries = config.MAX_RETRIES
        self.clock = clock
        self.sleep = sleep

        self._running = False
        self._current_sync: Optional[SyncType] = None

    # ==================================================================
    # Guard
    # ==================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_sync(self) -> Optional[SyncType]:
        return self._current_sync

    async def run_exclusive(
        self,
        sync_type: SyncType,
        operation: Callable[[], Awaitable[SyncOutcome]]
    ) -> SyncResult:
        """
        Run ``operation`` unless another sync is in flight.

        A busy guard yields a ``skipped`` result and log row. Failures are
        logged with status=error and re-raised.
        """
        started_at = utcnow()

        if self._running:
            message = f"Sync already in progress ({self._current_sync.value})"
            logger.warning(f"Skipping {sync_type.value}: {message}")
            await self._write_log(sync_type, SyncStatus.SKIPPED, started_at, error_message=message)
            return SyncResult(sync_type=sync_type, status=SyncStatus.SKIPPED, message=message, duration_ms=0)

        self._running = True
        self._current_sync = sync_type
        perf_start = time.perf_counter()
        logger.info(f"Starting {sync_type.value}")

        try:
            outcome = await operation()
        except Exception as e:
            duration_ms = int((time.perf_counter() - perf_start) * 1000)
            logger.error(f"{sync_type.value} failed after {duration_ms} ms: {e}")
            await self._write_log(
                sync_type,
                SyncStatus.ERROR,
                started_at,
                completed_at=started_at + timedelta(milliseconds=duration_ms),
                error_message=str(e)
            )
            raise
        finally:
            self._running = False
            self._current_sync = None

        duration_ms = int((time.perf_counter() - perf_start) * 1000)
        await self._write_log(
            sync_type,
            outcome.status,
            started_at,
            completed_at=started_at + timedelta(milliseconds=duration_ms),
            outcome=outcome,
            error_message=outcome.message if outcome.status != SyncStatus.SUCCESS else None
        )

        logger.info(
            f"{sync_type.value} finished with {outcome.status.value} in {duration_ms} ms: "
            f"{outcome.processed} processed ({outcome.created} created, {outcome.updated} updated)"
        )
        return SyncResult(
            sync_type=sync_type,
            status=outcome.status,
            records_processed=outcome.processed,
            records_created=outcome.created,
            records_updated=outcome.updated,
            message=outcome.message,
            duration_ms=duration_ms
        )

    async def _write_log(
        self,
        sync_type: SyncType,
        status: SyncStatus,
        started_at: datetime,
        completed_at: Optional[datetime] = None,
        outcome: Optional[SyncOutcome] = None,
        error_message: Optional[str] = None
    ):
        """Write a sync log row; a failing log write is reported but does not mask the sync result."""
        outcome = outcome or SyncOutcome()
        try:
            async with self.session_factory() as session:
                await SyncStateStore(session).add_log(
                    sync_type,
                    status,
                    started_at=started_at,
                    completed_at=completed_at,
                    records_processed=outcome.processed,
                    records_created=outcome.created,
                    records_updated=outcome.updated,
                    error_message=error_message
                )
        except SyncStateError as e:
            logger.error(f"Could not record {status.value} log for {sync_type.value}: {e}")

    # ==================================================================
    # Helpers
    # ==================================================================

    def today(self) -> date:
        """Current calendar date in the business timezone"""
        return today_local(self.tz, self.clock())

    def horizon(self) -> date:
        """Last date worth requesting (day-ahead prices reach tomorrow)"""
        return self.today() + timedelta(days=self.lookahead_days)

    def resolve_countries(self, country: Optional[str] = "all") -> List[str]:
        if country is None or country.lower() == "all":
            return list(self.countries)

        code = country.lower()
        if code not in self.countries:
            raise ValidationError(
                f"Unsupported country: {country}",
                context={"field_name": "country", "field_value": country, "supported": self.countries}
            )
        return [code]

    @staticmethod
    def _to_points(items: Iterable[Union[dict, PricePoint]], country: str) -> List[PricePoint]:
        """Validate provider items; items that fail validation are dropped."""
        points = []
        rejected = 0

        for item in items:
            try:
                if isinstance(item, PricePoint):
                    points.append(item.copy(update={"country": country}))
                else:
                    points.append(PricePoint(
                        timestamp=item.get("timestamp"),
                        price=item.get("price"),
                        country=country
                    ))
            except (SchemaValidationError, AttributeError) as e:
                rejected += 1
                logger.debug(f"Rejected price item for {country}: {e}")

        if rejected:
            logger.warning(f"Rejected {rejected} invalid price items for {country.upper()}")
        return points

    async def _store(self, items_by_country: Dict[str, list], countries: List[str]) -> UpsertResult:
        total = UpsertResult()
        for country in countries:
            points = self._to_points(items_by_country.get(country) or [], country)
            if not points:
                logger.info(f"No data for {country.upper()} in this window")
                continue

            result = await self.insert_price_data(points, country)
            total.created += result.created
            total.updated += result.updated
        return total

    async def _sync_window(self, start: date, end: date, countries: List[str]) -> UpsertResult:
        """Fetch and store one window small enough for a single provider call."""
        if len(countries) == 1:
            country = countries[0]
            items = await self.client.fetch_range(start, end, country)
            return await self._store({country: items}, countries)

        items_by_country = await self.client.fetch_all_countries(start, end)
        return await self._store(items_by_country, countries)

    async def perform_range_sync(self, start: date, end: date, countries: List[str]) -> SyncOutcome:
        """
        Sync ``start``..``end`` for ``countries`` without taking the guard.

        Spans longer than the chunk threshold are split into half-year chunks
        with a pause between them. The first failing chunk aborts the rest.
        """
        outcome = SyncOutcome()

        if start > end:
            logger.info(f"Empty range {start}..{end}, nothing to sync")
            outcome.message = "Empty date range"
            return outcome

        if span_days(start, end) <= self.chunk_threshold_days:
            outcome.add(await self._sync_window(start, end, countries))
            return outcome

        chunks = split_range(start, end)
        logger.info(f"Syncing {start}..{end} in {len(chunks)} half-year chunks")

        for index, chunk in enumerate(chunks):
            if index:
                await self.sleep(self.chunk_pause)
            logger.info(f"Chunk {index + 1}/{len(chunks)}: {chunk}")
            outcome.add(await self._sync_window(chunk.start, chunk.end, countries))

        outcome.message = f"{len(chunks)} chunks synced"
        return outcome

    # ==================================================================
    # Trailing-window syncs
    # ==================================================================

    def _trailing_window(self, days_back: int):
        if days_back < 0:
            raise ValidationError(
                "days_back must not be negative",
                context={"field_name": "days_back", "field_value": days_back}
            )
        today = self.today()
        return today - timedelta(days=days_back), today + timedelta(days=1)

    async def sync_country_days(self, country: str, days_back: int = 1) -> SyncResult:
        """Sync a trailing window ending tomorrow for one country."""
        countries = self.resolve_countries(country)
        start, end = self._trailing_window(days_back)
        return await self.run_exclusive(
            SyncType.COUNTRY_DAYS,
            lambda: self.perform_range_sync(start, end, countries)
        )

    async def sync_all_countries_days(self, days_back: int = 1) -> SyncResult:
        """Sync a trailing window ending tomorrow for all countries in one combined call."""
        start, end = self._trailing_window(days_back)
        return await self.run_exclusive(
            SyncType.ALL_COUNTRIES_DAYS,
            lambda: self.perform_range_sync(start, end, list(self.countries))
        )

    # ==================================================================
    # Historical syncs
    # ==================================================================

    async def sync_historical_range(self, start_date, end_date, country: str = "all") -> SyncResult:
        """Backfill an arbitrary date range for one country or all of them."""
        start = parse_date(start_date, "start_date")
        end = parse_date(end_date, "end_date")
        countries = self.resolve_countries(country)
        sync_type = SyncType.HISTORICAL_ALL if len(countries) > 1 else SyncType.HISTORICAL

        return await self.run_exclusive(
            sync_type,
            lambda: self.perform_range_sync(start, end, countries)
        )

    def _year_bounds(self, start_year: int, end_year: int):
        if start_year > end_year:
            raise ValidationError(
                "start_year must not be after end_year",
                context={"start_year": start_year, "end_year": end_year}
            )

        start = max(date(start_year, 1, 1), self.earliest_date)
        end = min(date(end_year, 12, 31), self.horizon())
        if start > end:
            raise ValidationError(
                f"No data can exist for {start_year}-{end_year}",
                context={"earliest_date": self.earliest_date.isoformat(), "horizon": self.horizon().isoformat()}
            )
        return start, end

    async def sync_year(self, year: int, country: str = "all") -> SyncResult:
        countries = self.resolve_countries(country)
        start, end = self._year_bounds(year, year)
        return await self.run_exclusive(
            SyncType.YEAR,
            lambda: self.perform_range_sync(start, end, countries)
        )

    async def sync_year_range(self, start_year: int, end_year: int, country: str = "all") -> SyncResult:
        countries = self.resolve_countries(country)
        start, end = self._year_bounds(start_year, end_year)
        return await self.run_exclusive(
            SyncType.YEAR_RANGE,
            lambda: self.perform_range_sync(start, end, countries)
        )

    async def sync_all_historical(self, country: str = "all") -> SyncResult:
        """Sync everything from the earliest published date through tomorrow."""
        countries = self.resolve_countries(country)
        return await self.run_exclusive(
            SyncType.ALL_HISTORICAL,
            lambda: self.perform_range_sync(self.earliest_date, self.horizon(), countries)
        )

    # ==================================================================
    # Efficient sync
    # ==================================================================

    async def efficient_envelope(self) -> DateRange:
        """
        Smallest window that brings every country up to date.

        Per country the resume point is the local date of its latest price
        minus one day, or the earliest date when it has no data.
        """
        async with self.session_factory() as session:
            latest = await PriceRepository(session).latest_timestamps(self.countries)

        starts = []
        for country, ts in latest.items():
            if ts is None:
                start = self.earliest_date
            else:
                start = max(local_date_of(ts, self.tz) - timedelta(days=1), self.earliest_date)
            logger.debug(f"{country.upper()} resumes from {start}")
            starts.append(start)

        return DateRange(min(starts), self.horizon())

    async def perform_efficient_sync(self) -> SyncOutcome:
        """Efficient sync body; the caller must hold the guard."""
        envelope = await self.efficient_envelope()
        logger.info(f"Efficient sync envelope: {envelope} ({envelope.days} days)")

        if span_days(envelope.start, envelope.end) > self.max_span_days:
            logger.info("Envelope exceeds one provider call, falling back to chunked historical sync")
            return await self.perform_range_sync(envelope.start, envelope.end, list(self.countries))

        outcome = SyncOutcome()
        outcome.add(await self._sync_window(envelope.start, envelope.end, list(self.countries)))
        return outcome

    async def sync_efficient(self, sync_type: SyncType = SyncType.EFFICIENT) -> SyncResult:
        return await self.run_exclusive(sync_type, self.perform_efficient_sync)

    async def retry_sync(self, max_retries: Optional[int] = None, base_delay: float = 1.0) -> SyncResult:
        """Re-run the efficient sync with exponential backoff between failed attempts."""
        return await retry_with_backoff(
            lambda: self.sync_efficient(SyncType.RETRY),
            max_retries=max_retries or self.max_retries,
            base_delay=base_delay,
            retry_on=(PriceSyncException,),
            sleep=self.sleep
        )

    # ==================================================================
    # Initial backfill
    # ==================================================================

    async def plan_initial_sync(self) -> List[DateRange]:
        """Chunks still to be fetched, resuming after the last completed chunk."""
        async with self.session_factory() as session:
            last_chunk = await SyncStateStore(session).get_last_completed_chunk()

        start = last_chunk + timedelta(days=1) if last_chunk else self.earliest_date
        if last_chunk:
            logger.info(f"Resuming backfill after chunk ending {last_chunk}")
        return split_range(start, self.horizon())

    async def perform_initial_sync(self) -> SyncOutcome:
        """Backfill body; the caller must hold the guard."""
        chunks = await self.plan_initial_sync()
        outcome = SyncOutcome()
        logger.info(f"Initial backfill: {len(chunks)} chunks to sync")

        for index, chunk in enumerate(chunks):
            if index:
                await self.sleep(self.chunk_pause)

            chunk_started = utcnow()
            upsert = await self._sync_window(chunk.start, chunk.end, list(self.countries))
            outcome.add(upsert)

            async with self.session_factory() as session:
                await SyncStateStore(session).record_chunk_completion(chunk.end, upsert.total, chunk_started)
            logger.info(f"Backfill chunk {index + 1}/{len(chunks)} ({chunk}) stored {upsert.total} prices")

        async with self.session_factory() as session:
            await SyncStateStore(session).mark_initial_sync_complete()

        outcome.message = f"Backfill complete ({len(chunks)} chunks)"
        return outcome

    async def run_initial_sync(self) -> SyncResult:
        return await self.run_exclusive(SyncType.INITIAL_SYNC, self.perform_initial_sync)

    async def get_initial_sync_status(self) -> InitialSyncStatus:
        async with self.session_factory() as session:
            store = SyncStateStore(session)
            completed_at = await store.get_setting(INITIAL_SYNC_COMPLETED_KEY)
            last_chunk = await store.get_setting(INITIAL_SYNC_LAST_CHUNK_KEY)
            last_error = await store.last_initial_sync_error()
            records = await PriceRepository(session).total_records()

        return InitialSyncStatus(
            is_complete=completed_at is not None,
            completed_at=completed_at,
            last_chunk=last_chunk,
            records_count=records,
            last_error=last_error
        )

    async def reset_initial_sync(self) -> int:
        """Forget backfill progress so the next startup runs it again."""
        async with self.session_factory() as session:
            removed = await SyncStateStore(session).delete_settings(
                INITIAL_SYNC_COMPLETED_KEY, INITIAL_SYNC_LAST_CHUNK_KEY
            )
        logger.info(f"Initial sync state reset ({removed} settings removed)")
        return removed

    # ==================================================================
    # Completeness
    # ==================================================================

    async def is_date_complete(self, day) -> DateCompleteness:
        """
        Count records per country for one business-timezone day.

        The day is complete only when every tracked country has at least
        ``completeness_threshold`` hourly records.
        """
        day = parse_date(day)
        start_ts, end_ts = local_day_bounds(day, self.tz)

        async with self.session_factory() as session:
            counts = await PriceRepository(session).count_by_country(start_ts, end_ts, self.countries)

        is_complete = all(counts[c] >= self.completeness_threshold for c in self.countries)
        logger.debug(f"Completeness for {day}: {counts} -> {is_complete}")

        return DateCompleteness(
            date=day.isoformat(),
            country_counts=counts,
            is_complete=is_complete,
            threshold=self.completeness_threshold
        )

    async def recent_completeness(self) -> Dict[str, DateCompleteness]:
        today = self.today()
        return {
            "yesterday": await self.is_date_complete(today - timedelta(days=1)),
            "today": await self.is_date_complete(today),
        }

    async def needs_next_day_sync(self) -> bool:
        """True if any country's prices stop short of the last hour of tomorrow."""
        tomorrow = self.today() + timedelta(days=1)
        tomorrow_start, _ = local_day_bounds(tomorrow, self.tz)
        last_hour = tomorrow_start + 23 * 3600

        async with self.session_factory() as session:
            latest = await PriceRepository(session).latest_timestamps(self.countries)

        missing = [c for c, ts in latest.items() if ts is None or ts < last_hour]
        if missing:
            logger.info(f"Next-day data missing for: {', '.join(c.upper() for c in missing)}")
        return bool(missing)

    # ==================================================================
    # Upsert
    # ==================================================================

    async def insert_price_data(self, points: Iterable[Union[dict, PricePoint]], country: str) -> UpsertResult:
        """Upsert points for one country in a single transaction."""
        validated = self._to_points(points, country.lower())
        async with self.session_factory() as session:
            return await PriceLoader(session, batch_size=self.batch_size).upsert(validated)
