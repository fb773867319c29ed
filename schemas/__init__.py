"""
Pydantic schemas for data validation and serialization.

Schemas:
    prices: PricePoint, the validated unit of upsert
    sync: Sync outcomes, completeness verdicts, backfill status, manual sync requests
    health: Aggregated health report
    api: HTTP response payloads

Usage:
    from schemas.prices import PricePoint
    from schemas.sync import SyncResult, DateCompleteness
    from schemas.health import HealthReport
"""

__all__ = [
    "PricePoint",
    "SyncResult",
    "UpsertResult",
    "DateCompleteness",
    "InitialSyncStatus",
    "HealthReport",
    "PriceListResponse",
    "ErrorResponse",
]
