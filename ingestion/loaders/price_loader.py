"""
Load price points with transactional upsert logic (idempotency)
"""

from typing import Dict, List, Optional, Set, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from core.config import settings
from core.database import dialect_insert
from core.exceptions import UpsertError
from core.timeutils import utcnow, utc_date_string
from models.price_data import PriceData
from schemas.prices import PricePoint
from schemas.sync import UpsertResult
import logging

logger = logging.getLogger(__name__)


class PriceLoader:
    """
    Upsert price points into ``price_data``.

    Ensures:
    - No duplicate rows for a (timestamp, country) key on repeated runs
    - Existing rows get the new price in place
    - All statements of one ``upsert`` call commit together or not at all
    """

    def __init__(self, db_session: AsyncSession, batch_size: Optional[int] = None):
        self.db = db_session
        self.batch_size = batch_size or settings.ETL_BATCH_SIZE

    @staticmethod
    def _dedupe(points: List[PricePoint]) -> List[PricePoint]:
        """Keep the last point per key; ON CONFLICT cannot touch a row twice in one statement."""
        by_key: Dict[Tuple[int, str], PricePoint] = {}
        for point in points:
            by_key[(point.timestamp, point.country)] = point
        return list(by_key.values())

    async def _existing_keys(self, points: List[PricePoint]) -> Set[Tuple[int, str]]:
        """Keys among ``points`` that are already stored, looked up per country by timestamp range."""
        by_country: Dict[str, List[int]] = {}
        for point in points:
            by_country.setdefault(point.country, []).append(point.timestamp)

        existing: Set[Tuple[int, str]] = set()
        for country, timestamps in by_country.items():
            result = await self.db.execute(
                select(PriceData.timestamp).where(
                    and_(
                        PriceData.country == country,
                        PriceData.timestamp >= min(timestamps),
                        PriceData.timestamp <= max(timestamps)
                    )
                )
            )
            wanted = set(timestamps)
            existing.update((ts, country) for ts in result.scalars().all() if ts in wanted)
        return existing

    async def upsert(self, points: List[PricePoint]) -> UpsertResult:
        """
        Upsert points in batches inside a single transaction.

        Returns:
            UpsertResult with created/updated counts

        Raises:
            UpsertError: On any failure; the transaction is rolled back
        """
        if not points:
            return UpsertResult()

        points = self._dedupe(points)
        now = utcnow()

        try:
            existing = await self._existing_keys(points)

            for i in range(0, len(points), self.batch_size):
                batch = points[i:i + self.batch_size]
                rows = [
                    {
                        "timestamp": p.timestamp,
                        "price": p.price,
                        "country": p.country,
                        "date": utc_date_string(p.timestamp),
                        "created_at": now,
                        "updated_at": now,
                    }
                    for p in batch
                ]

                stmt = dialect_insert(self.db, PriceData).values(rows)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["timestamp", "country"],
                    set_={
                        "price": stmt.excluded.price,
                        "date": stmt.excluded.date,
                        "updated_at": stmt.excluded.updated_at,
                    }
                )
                await self.db.execute(stmt)

            await self.db.commit()

        except Exception as e:
            await self.db.rollback()
            raise UpsertError(
                "Price upsert failed, batch rolled back",
                context={
                    "batch_size": len(points),
                    "countries": sorted({p.country for p in points})
                },
                original_exception=e
            )

        updated = sum(1 for p in points if (p.timestamp, p.country) in existing)
        result = UpsertResult(created=len(points) - updated, updated=updated)

        logger.info(f"Upserted {result.total} prices ({result.created} created, {result.updated} updated)")
        return result
