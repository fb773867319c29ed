"""
Read-side queries over stored prices
"""

from typing import Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from models.price_data import PriceData
import logging

logger = logging.getLogger(__name__)


class PriceRepository:
    """Point-in-time queries used by the sync engine, health monitor and API routes."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def latest_timestamps(self, countries: Iterable[str]) -> Dict[str, Optional[int]]:
        """Latest stored timestamp per country (``None`` where a country has no rows)."""
        countries = list(countries)
        result = await self.db.execute(
            select(PriceData.country, func.max(PriceData.timestamp))
            .where(PriceData.country.in_(countries))
            .group_by(PriceData.country)
        )
        found = {country: int(ts) for country, ts in result.all() if ts is not None}
        return {country: found.get(country) for country in countries}

    async def count_by_country(
        self,
        start_ts: int,
        end_ts: int,
        countries: Iterable[str]
    ) -> Dict[str, int]:
        """Record counts per country with ``start_ts <= timestamp <= end_ts``."""
        countries = list(countries)
        result = await self.db.execute(
            select(PriceData.country, func.count(PriceData.id))
            .where(
                and_(
                    PriceData.timestamp >= start_ts,
                    PriceData.timestamp <= end_ts,
                    PriceData.country.in_(countries)
                )
            )
            .group_by(PriceData.country)
        )
        found = dict(result.all())
        return {country: int(found.get(country, 0)) for country in countries}

    async def get_prices(
        self,
        start_ts: int,
        end_ts: int,
        country: Optional[str] = None
    ) -> List[PriceData]:
        query = select(PriceData).where(
            and_(PriceData.timestamp >= start_ts, PriceData.timestamp <= end_ts)
        )
        if country:
            query = query.where(PriceData.country == country)
        query = query.order_by(PriceData.timestamp, PriceData.country)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def latest_price(self, country: str) -> Optional[PriceData]:
        result = await self.db.execute(
            select(PriceData)
            .where(PriceData.country == country)
            .order_by(PriceData.timestamp.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def price_at(self, timestamp: int, country: str) -> Optional[PriceData]:
        result = await self.db.execute(
            select(PriceData).where(
                and_(PriceData.timestamp == timestamp, PriceData.country == country)
            )
        )
        return result.scalar_one_or_none()

    async def countries_with_data(self) -> List[str]:
        result = await self.db.execute(
            select(PriceData.country).distinct().order_by(PriceData.country)
        )
        return list(result.scalars().all())

    async def total_records(self) -> int:
        result = await self.db.execute(select(func.count(PriceData.id)))
        return int(result.scalar() or 0)
