"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


# ============================================================================
# Price Query Schemas
# ============================================================================

class PriceItem(BaseModel):
    """One hourly price as served over HTTP"""
    timestamp: int = Field(..., description="Epoch seconds at the start of the hour")
    price: float = Field(..., description="Price in EUR/MWh")
    country: Optional[str] = None


class PriceQueryMeta(BaseModel):
    country: str
    start: int = Field(..., description="Inclusive epoch lower bound")
    end: int = Field(..., description="Inclusive epoch upper bound")
    count: int
    price_unit: str
    timezone: str


class PriceListResponse(BaseModel):
    success: bool = True
    data: List[PriceItem]
    meta: PriceQueryMeta

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "data": [{"timestamp": 1704060000, "price": 85.32, "country": "lt"}],
                "meta": {
                    "country": "lt",
                    "start": 1704060000,
                    "end": 1704146399,
                    "count": 24,
                    "price_unit": "EUR/MWh",
                    "timezone": "Europe/Vilnius"
                }
            }
        }


class CountryPriceResponse(BaseModel):
    """Latest or current-hour price response; ``data`` holds one item per country"""
    success: bool = True
    data: List[PriceItem]
    price_unit: str


class CountryInfo(BaseModel):
    code: str
    name: str
    has_data: bool = False


class CountriesResponse(BaseModel):
    success: bool = True
    data: List[CountryInfo]


# ============================================================================
# Sync Log Schemas
# ============================================================================

class SyncLogItem(BaseModel):
    id: int
    sync_type: str
    status: str
    records_processed: int
    records_created: int
    records_updated: int
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    class Config:
        from_attributes = True


# ============================================================================
# Error / Liveness Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str


class LivenessResponse(BaseModel):
    status: str = Field(..., description="ok or unavailable")
    database_connected: bool
    timestamp: datetime
