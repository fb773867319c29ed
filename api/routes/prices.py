"""
Price query endpoints
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from api.dependencies import get_db
from core.config import settings
from core.exceptions import NoDataFoundError, ValidationError
from core.timeutils import get_timezone, hour_start, local_range_bounds, parse_date
from ingestion.repository import PriceRepository
from models.price_data import PriceData
from schemas.api import (
    CountriesResponse,
    CountryInfo,
    CountryPriceResponse,
    PriceItem,
    PriceListResponse,
    PriceQueryMeta,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Prices"])

COUNTRY_NAMES = {
    "lt": "Lithuania",
    "ee": "Estonia",
    "lv": "Latvia",
    "fi": "Finland",
}

MAX_QUERY_DAYS = 366


def _country_filter(country: str) -> Optional[str]:
    """Tracked country code, or None for 'all'."""
    code = country.lower()
    if code == "all":
        return None
    if code not in settings.COUNTRIES:
        raise ValidationError(
            f"Unsupported country: {country}",
            context={"field_name": "country", "field_value": country}
        )
    return code


def _item(row: PriceData) -> PriceItem:
    return PriceItem(timestamp=row.timestamp, price=float(row.price), country=row.country)


@router.get("/countries", response_model=CountriesResponse)
async def get_countries(db: AsyncSession = Depends(get_db)):
    """Tracked countries and whether any prices are stored for them."""
    with_data = set(await PriceRepository(db).countries_with_data())
    return CountriesResponse(
        data=[
            CountryInfo(code=code, name=COUNTRY_NAMES.get(code, code.upper()), has_data=code in with_data)
            for code in settings.COUNTRIES
        ]
    )


@router.get("/nps/prices", response_model=PriceListResponse)
async def get_prices(
    request: Request,
    date: Optional[str] = Query(None, description="Single day, YYYY-MM-DD"),
    start: Optional[str] = Query(None, description="First day, YYYY-MM-DD"),
    end: Optional[str] = Query(None, description="Last day, YYYY-MM-DD"),
    country: str = Query("lt", description="Country code or 'all'"),
    db: AsyncSession = Depends(get_db)
):
    """
    Prices for a business-timezone day or day range.

    Days follow the local calendar, so DST days return 23 or 25 hours.
    """
    if date:
        start_day = end_day = parse_date(date, "date")
    elif start and end:
        start_day = parse_date(start, "start")
        end_day = parse_date(end, "end")
    else:
        raise ValidationError("Provide either date or both start and end")

    if start_day > end_day:
        raise ValidationError(
            "start must not be after end",
            context={"start": start_day.isoformat(), "end": end_day.isoformat()}
        )
    if (end_day - start_day).days >= MAX_QUERY_DAYS:
        raise ValidationError(f"Query range is limited to {MAX_QUERY_DAYS} days")

    country_code = _country_filter(country)
    start_ts, end_ts = local_range_bounds(start_day, end_day, get_timezone())

    rows = await PriceRepository(db).get_prices(start_ts, end_ts, country_code)

    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] {len(rows)} prices for {country} {start_day}..{end_day}")

    return PriceListResponse(
        data=[_item(row) for row in rows],
        meta=PriceQueryMeta(
            country=country.lower(),
            start=start_ts,
            end=end_ts,
            count=len(rows),
            price_unit=settings.PRICE_UNIT,
            timezone=settings.BUSINESS_TIMEZONE
        )
    )


async def _latest_rows(repo: PriceRepository, country: str) -> List[PriceData]:
    code = _country_filter(country)
    countries = [code] if code else settings.COUNTRIES

    rows = []
    for c in countries:
        row = await repo.latest_price(c)
        if row is not None:
            rows.append(row)
    return rows


@router.get("/nps/price/{country}/latest", response_model=CountryPriceResponse)
async def get_latest_price(country: str, db: AsyncSession = Depends(get_db)):
    rows = await _latest_rows(PriceRepository(db), country)
    if not rows:
        raise NoDataFoundError(f"No price data found for {country}", context={"country": country})
    return CountryPriceResponse(data=[_item(row) for row in rows], price_unit=settings.PRICE_UNIT)


@router.get("/nps/price/{country}/current", response_model=CountryPriceResponse)
async def get_current_price(country: str, db: AsyncSession = Depends(get_db)):
    """Price of the hour containing now."""
    code = _country_filter(country)
    countries = [code] if code else settings.COUNTRIES
    current_hour = hour_start()

    repo = PriceRepository(db)
    rows = []
    for c in countries:
        row = await repo.price_at(current_hour, c)
        if row is not None:
            rows.append(row)

    if not rows:
        raise NoDataFoundError(
            f"No current price found for {country}",
            context={"country": country, "timestamp": current_hour}
        )
    return CountryPriceResponse(data=[_item(row) for row in rows], price_unit=settings.PRICE_UNIT)


@router.get("/latest", response_model=CountryPriceResponse)
async def get_latest_all(db: AsyncSession = Depends(get_db)):
    """Latest stored price for every tracked country."""
    return await get_latest_price("all", db)
