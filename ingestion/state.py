"""
Persisted sync state: key-value settings and the append-only sync log.

Replaces per-source checkpoints with the two backfill keys stored in
``user_settings``:

- ``initial_sync_completed``: ISO UTC time the full backfill finished
- ``initial_sync_last_chunk``: end date of the last completed backfill chunk
"""

from datetime import date, datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_
from core.database import dialect_insert
from core.exceptions import SyncStateError
from core.timeutils import utcnow
from models.base import (
    SyncStatus,
    SyncType,
    INITIAL_SYNC_COMPLETED_KEY,
    INITIAL_SYNC_LAST_CHUNK_KEY,
)
from models.sync_log import SyncLog
from models.user_setting import UserSetting
import logging

logger = logging.getLogger(__name__)

INITIAL_SYNC_TYPES = (SyncType.INITIAL_SYNC.value, SyncType.INITIAL_SYNC_CHUNK.value)


class SyncStateStore:
    """Settings and sync log access bound to one session."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_setting(self, key: str) -> Optional[str]:
        result = await self.db.execute(
            select(UserSetting.setting_value).where(UserSetting.setting_key == key)
        )
        return result.scalar_one_or_none()

    async def set_setting(self, key: str, value: str):
        """Insert or update a setting and commit"""
        now = utcnow()
        try:
            stmt = dialect_insert(self.db, UserSetting).values(
                setting_key=key,
                setting_value=value,
                created_at=now,
                updated_at=now
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["setting_key"],
                set_={
                    "setting_value": stmt.excluded.setting_value,
                    "updated_at": stmt.excluded.updated_at,
                }
            )
            await self.db.execute(stmt)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise SyncStateError(
                f"Failed to store setting {key}",
                context={"setting_key": key, "operation": "upsert"},
                original_exception=e
            )

    async def delete_settings(self, *keys: str) -> int:
        try:
            result = await self.db.execute(
                delete(UserSetting).where(UserSetting.setting_key.in_(keys))
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise SyncStateError(
                "Failed to delete settings",
                context={"setting_keys": list(keys), "operation": "delete"},
                original_exception=e
            )
        return result.rowcount or 0

    async def get_last_completed_chunk(self) -> Optional[date]:
        """End date of the last completed backfill chunk, ignoring unparseable values."""
        value = await self.get_setting(INITIAL_SYNC_LAST_CHUNK_KEY)
        if not value:
            return None
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            logger.warning(f"Ignoring invalid {INITIAL_SYNC_LAST_CHUNK_KEY} value: {value!r}")
            return None

    # ------------------------------------------------------------------
    # Sync log
    # ------------------------------------------------------------------

    async def add_log(
        self,
        sync_type: SyncType,
        status: SyncStatus,
        started_at: datetime,
        completed_at: Optional[datetime] = None,
        records_processed: int = 0,
        records_created: int = 0,
        records_updated: int = 0,
        error_message: Optional[str] = None
    ) -> SyncLog:
        """Append one sync log row and commit"""
        completed_at = completed_at or utcnow()
        entry = SyncLog(
            sync_type=SyncType(sync_type).value,
            status=SyncStatus(status).value,
            records_processed=records_processed,
            records_created=records_created,
            records_updated=records_updated,
            error_message=error_message,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=max(0, int((completed_at - started_at).total_seconds() * 1000))
        )
        try:
            self.db.add(entry)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise SyncStateError(
                "Failed to write sync log entry",
                context={"sync_type": entry.sync_type, "status": entry.status},
                original_exception=e
            )
        return entry

    async def record_chunk_completion(self, chunk_end: date, records: int, started_at: datetime):
        """Persist backfill progress after one chunk succeeded."""
        await self.set_setting(INITIAL_SYNC_LAST_CHUNK_KEY, chunk_end.isoformat())
        await self.add_log(
            SyncType.INITIAL_SYNC_CHUNK,
            SyncStatus.SUCCESS,
            started_at=started_at,
            records_processed=records,
            error_message=f"Chunk completed: {chunk_end.isoformat()}"
        )
        logger.info(f"Backfill progress saved: chunk ending {chunk_end}")

    async def mark_initial_sync_complete(self) -> str:
        completed_at = utcnow().isoformat()
        await self.set_setting(INITIAL_SYNC_COMPLETED_KEY, completed_at)
        logger.info(f"Initial sync marked complete at {completed_at}")
        return completed_at

    async def recent_logs(self, limit: int = 50) -> List[SyncLog]:
        result = await self.db.execute(
            select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def last_successful_sync(self) -> Optional[SyncLog]:
        """Most recent successful sync, excluding health checks."""
        result = await self.db.execute(
            select(SyncLog)
            .where(
                and_(
                    SyncLog.status == SyncStatus.SUCCESS.value,
                    SyncLog.sync_type != SyncType.HEALTH_CHECK.value
                )
            )
            .order_by(SyncLog.completed_at.desc(), SyncLog.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def last_initial_sync_error(self) -> Optional[str]:
        result = await self.db.execute(
            select(SyncLog.error_message)
            .where(
                and_(
                    SyncLog.sync_type.in_(INITIAL_SYNC_TYPES),
                    SyncLog.status == SyncStatus.ERROR.value
                )
            )
            .order_by(SyncLog.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
