"""
FastAPI dependency providers.

Long-lived services are built once at import time in ``api.main`` and kept on
``app.state``; tests replace them through ``app.dependency_overrides``.
"""

from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from ingestion.health import HealthMonitor
from ingestion.runner import SyncEngine
from ingestion.scheduler import SyncScheduler


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


def get_sync_engine(request: Request) -> SyncEngine:
    return request.app.state.sync_engine


def get_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler


def get_health_monitor(request: Request) -> HealthMonitor:
    return request.app.state.health_monitor
