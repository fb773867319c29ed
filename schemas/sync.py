"""
Pydantic schemas for sync outcomes, completeness and backfill status
"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, Dict
from models.base import SyncStatus, SyncType


class CamelModel(BaseModel):
    """Serialises to camelCase while accepting snake_case in Python code"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class UpsertResult(BaseModel):
    """Counts from one transactional upsert"""
    created: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated


class SyncResult(CamelModel):
    """Outcome of one guarded sync invocation"""
    sync_type: SyncType
    status: SyncStatus
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    message: Optional[str] = None
    duration_ms: Optional[int] = None

    def add(self, upsert: UpsertResult):
        """Accumulate counts from an upsert into this result"""
        self.records_created += upsert.created
        self.records_updated += upsert.updated
        self.records_processed += upsert.total

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "syncType": "efficient_sync",
                "status": "success",
                "recordsProcessed": 288,
                "recordsCreated": 96,
                "recordsUpdated": 192,
                "message": None,
                "durationMs": 1840
            }
        }


class DateCompleteness(CamelModel):
    """Per-country record counts for one business-timezone calendar day"""
    date: str = Field(..., description="YYYY-MM-DD")
    country_counts: Dict[str, int] = Field(default_factory=dict)
    is_complete: bool
    threshold: int


class InitialSyncStatus(CamelModel):
    """State of the full historical backfill"""
    is_complete: bool
    completed_at: Optional[str] = None
    last_chunk: Optional[str] = None
    records_count: int = 0
    last_error: Optional[str] = None


# ============================================================================
# Manual Sync Requests
# ============================================================================

class HistoricalSyncRequest(CamelModel):
    start_date: str = Field(..., description="YYYY-MM-DD")
    end_date: str = Field(..., description="YYYY-MM-DD")
    country: str = Field("all", description="Country code or 'all'")


class DateRangeSyncRequest(CamelModel):
    start_date: str = Field(..., description="YYYY-MM-DD")
    end_date: str = Field(..., description="YYYY-MM-DD")


class YearSyncRequest(CamelModel):
    year: int = Field(..., ge=2012, le=2100)
    country: str = Field("all", description="Country code or 'all'")


class YearRangeSyncRequest(CamelModel):
    start_year: int = Field(..., ge=2012, le=2100)
    end_year: int = Field(..., ge=2012, le=2100)
    country: str = Field("all", description="Country code or 'all'")


class CountrySyncRequest(CamelModel):
    country: str = Field("all", description="Country code or 'all'")


class RetrySyncRequest(CamelModel):
    max_retries: int = Field(3, ge=1, le=10)
