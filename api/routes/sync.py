"""
Manual sync triggers and sync status endpoints
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List
from api.dependencies import get_db, get_scheduler, get_sync_engine
from core.exceptions import ValidationError
from core.timeutils import parse_date
from ingestion.runner import SyncEngine
from ingestion.scheduler import SyncScheduler
from ingestion.state import SyncStateStore
from models.base import SyncStatus
from schemas.api import ErrorResponse, SyncLogItem
from schemas.health import ScheduleHealth
from schemas.sync import (
    CountrySyncRequest,
    DateCompleteness,
    DateRangeSyncRequest,
    HistoricalSyncRequest,
    InitialSyncStatus,
    RetrySyncRequest,
    SyncResult,
    YearRangeSyncRequest,
    YearSyncRequest,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sync", tags=["Sync"])

SYNC_RESPONSES = {409: {"model": ErrorResponse, "description": "Another sync is in progress"}}


def _respond(result: SyncResult):
    """409 when the guard skipped the request, the result otherwise."""
    if result.status == SyncStatus.SKIPPED:
        return JSONResponse(
            status_code=409,
            content=ErrorResponse(
                error=result.message or "Sync already in progress",
                code="SYNC_IN_PROGRESS"
            ).model_dump()
        )
    return result


def _validated_range(start_date: str, end_date: str):
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    if start > end:
        raise ValidationError(
            "start_date must not be after end_date",
            context={"start_date": start_date, "end_date": end_date}
        )
    return start, end


# ============================================================================
# Triggers
# ============================================================================

@router.post("/historical", response_model=SyncResult, responses=SYNC_RESPONSES)
async def sync_historical(body: HistoricalSyncRequest, engine: SyncEngine = Depends(get_sync_engine)):
    start, end = _validated_range(body.start_date, body.end_date)
    return _respond(await engine.sync_historical_range(start, end, body.country))


@router.post("/all-countries-historical", response_model=SyncResult, responses=SYNC_RESPONSES)
async def sync_all_countries_historical(
    body: DateRangeSyncRequest,
    engine: SyncEngine = Depends(get_sync_engine)
):
    start, end = _validated_range(body.start_date, body.end_date)
    return _respond(await engine.sync_historical_range(start, end, "all"))


@router.post("/year", response_model=SyncResult, responses=SYNC_RESPONSES)
async def sync_year(body: YearSyncRequest, engine: SyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.sync_year(body.year, body.country))


@router.post("/years", response_model=SyncResult, responses=SYNC_RESPONSES)
async def sync_years(body: YearRangeSyncRequest, engine: SyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.sync_year_range(body.start_year, body.end_year, body.country))


@router.post("/all-historical", response_model=SyncResult, responses=SYNC_RESPONSES)
async def sync_all_historical(body: CountrySyncRequest, engine: SyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.sync_all_historical(body.country))


@router.post("/efficient", response_model=SyncResult, responses=SYNC_RESPONSES)
async def sync_efficient(engine: SyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.sync_efficient())


@router.post("/retry", response_model=SyncResult, responses=SYNC_RESPONSES)
async def retry_sync(body: RetrySyncRequest, engine: SyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.retry_sync(body.max_retries))


@router.post("/reset-initial")
async def reset_initial_sync(engine: SyncEngine = Depends(get_sync_engine)):
    """Clear backfill markers; the next startup runs the initial sync again."""
    removed = await engine.reset_initial_sync()
    return {"success": True, "removed": removed}


# ============================================================================
# Status
# ============================================================================

@router.get("/initial-status", response_model=InitialSyncStatus)
async def initial_sync_status(engine: SyncEngine = Depends(get_sync_engine)):
    return await engine.get_initial_sync_status()


@router.get("/date-complete/{date}", response_model=DateCompleteness)
async def date_complete(date: str, engine: SyncEngine = Depends(get_sync_engine)):
    return await engine.is_date_complete(parse_date(date, "date"))


@router.get("/recent-completeness", response_model=Dict[str, DateCompleteness])
async def recent_completeness(engine: SyncEngine = Depends(get_sync_engine)):
    return await engine.recent_completeness()


@router.get("/schedule", response_model=ScheduleHealth)
async def schedule_status(scheduler: SyncScheduler = Depends(get_scheduler)):
    return scheduler.get_status()


@router.get("/logs", response_model=List[SyncLogItem])
async def sync_logs(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    return await SyncStateStore(db).recent_logs(limit)
