"""
Date and timezone helpers.

Prices are stored as UTC epoch seconds, but calendar days (completeness,
range queries, "yesterday") are always evaluated in the business timezone.
The upstream provider labels a delivery day D as the UTC window
22:00 on D-1 through 21:59:59 on D.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.config import settings
from core.exceptions import ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SECONDS_PER_HOUR = 3600


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def get_timezone(name: Optional[str] = None) -> ZoneInfo:
    tz_name = name or settings.BUSINESS_TIMEZONE
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as e:
        raise ValidationError(
            f"Unknown timezone: {tz_name}",
            context={"field_name": "timezone", "field_value": tz_name},
            original_exception=e
        )


def parse_date(value, field_name: str = "date") -> date:
    """
    Parse a strict ``YYYY-MM-DD`` string.

    ``date`` instances pass through unchanged.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(
            f"Invalid {field_name}, expected YYYY-MM-DD",
            context={"field_name": field_name, "field_value": value}
        )
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid {field_name}: {value}",
            context={"field_name": field_name, "field_value": value},
            original_exception=e
        )


def today_local(tz: ZoneInfo, now: Optional[datetime] = None) -> date:
    return (now or utcnow()).astimezone(tz).date()


def local_day_bounds(day: date, tz: ZoneInfo) -> Tuple[int, int]:
    """
    Inclusive epoch-second bounds of a calendar day in ``tz``.

    DST transition days are 23 or 25 hours long.
    """
    start = datetime.combine(day, time.min, tzinfo=tz)
    next_start = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return int(start.timestamp()), int(next_start.timestamp()) - 1


def local_range_bounds(start_day: date, end_day: date, tz: ZoneInfo) -> Tuple[int, int]:
    start_ts, _ = local_day_bounds(start_day, tz)
    _, end_ts = local_day_bounds(end_day, tz)
    return start_ts, end_ts


def provider_window(start_day: date, end_day: date) -> Tuple[datetime, datetime]:
    """UTC window the provider uses for delivery days ``start_day``..``end_day``."""
    window_start = datetime.combine(
        start_day - timedelta(days=1), time(22, 0, 0), tzinfo=timezone.utc
    )
    window_end = datetime.combine(
        end_day, time(21, 59, 59, 999000), tzinfo=timezone.utc
    )
    return window_start, window_end


def to_iso_z(value: datetime) -> str:
    """Format an aware datetime as ``2024-01-01T22:00:00.000Z``."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_to_utc(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def utc_date_string(timestamp: int) -> str:
    """UTC calendar date of an epoch timestamp, stored alongside each price."""
    return epoch_to_utc(timestamp).strftime("%Y-%m-%d")


def local_date_of(timestamp: int, tz: ZoneInfo) -> date:
    return epoch_to_utc(timestamp).astimezone(tz).date()


def hour_start(now: Optional[datetime] = None) -> int:
    """Epoch seconds of the start of the current hour."""
    ts = int((now or utcnow()).timestamp())
    return ts - (ts % SECONDS_PER_HOUR)
