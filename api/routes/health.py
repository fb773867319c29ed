"""
Health endpoints: process liveness and the aggregated monitor report
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db, get_health_monitor
from core.timeutils import utcnow
from ingestion.health import HealthMonitor
from schemas.api import LivenessResponse
from schemas.health import HealthReport
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=LivenessResponse)
async def liveness(db: AsyncSession = Depends(get_db)):
    """Database connectivity only; cheap enough for container probes."""
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    return LivenessResponse(
        status="ok" if db_connected else "unavailable",
        database_connected=db_connected,
        timestamp=utcnow()
    )


@router.get("/api/v1/health", response_model=HealthReport)
async def health_report(
    request: Request,
    monitor: HealthMonitor = Depends(get_health_monitor)
):
    """
    Aggregated health report.

    Returns:
    - Database connectivity and last successful sync
    - Schedule liveness per cron job
    - Per-country data freshness and completeness
    - overallStatus (healthy/degraded) with human-readable issues
    """
    report = await monitor.assess()
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] Health {report.overall_status} ({len(report.issues)} issues)")
    return report
