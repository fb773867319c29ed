"""
Health report schemas
"""

from datetime import datetime
from pydantic import Field
from typing import Optional, List
from schemas.sync import CamelModel, InitialSyncStatus


class DatabaseHealth(CamelModel):
    connected: bool
    last_sync: Optional[datetime] = None
    last_sync_type: Optional[str] = None
    error: Optional[str] = None


class ScheduledJobStatus(CamelModel):
    job_id: str
    name: str
    scheduled: bool
    next_run: Optional[datetime] = None


class ScheduleHealth(CamelModel):
    is_running: bool = Field(..., description="Whether a sync is currently in flight")
    scheduler_running: bool
    jobs: List[ScheduledJobStatus] = Field(default_factory=list)


class CountryFreshness(CamelModel):
    country: str
    latest_timestamp: Optional[int] = None
    latest_time: Optional[datetime] = None
    is_recent: bool
    hours_old: Optional[float] = None


class CountryCompleteness(CamelModel):
    """Hours still missing between the latest stored price and the end of tomorrow"""
    country: str
    covered_until: Optional[datetime] = None
    missing_hours: int


class HealthReport(CamelModel):
    """Aggregated self-check of database, schedules and data freshness"""
    success: bool = True
    timestamp: datetime
    overall_status: str = Field(..., description="healthy or degraded")
    issues: List[str] = Field(default_factory=list)
    database: DatabaseHealth
    sync_schedule: ScheduleHealth
    data_freshness: List[CountryFreshness] = Field(default_factory=list)
    data_completeness: List[CountryCompleteness] = Field(default_factory=list)
    initial_sync: Optional[InitialSyncStatus] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "timestamp": "2024-01-15T10:30:00Z",
                "overallStatus": "degraded",
                "issues": ["Stale data detected: LV (30h old)"],
                "database": {"connected": True, "lastSync": "2024-01-15T09:00:00Z"},
                "syncSchedule": {"isRunning": False, "schedulerRunning": True, "jobs": []},
                "dataFreshness": [
                    {"country": "lt", "latestTimestamp": 1705352400, "isRecent": True, "hoursOld": 2.5}
                ]
            }
        }
