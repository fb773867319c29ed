"""
Split date spans into upstream-safe sub-ranges.

Half-year chunks (Jan 1 - Jun 30, Jul 1 - Dec 31) are the unit of historical
backfill and of its resume checkpoint. ``split_span`` produces the looser
windows needed to respect the provider's one-year-per-call limit.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-date range"""
    start: date
    end: date

    @property
    def days(self) -> int:
        """Number of calendar days covered, inclusive"""
        return (self.end - self.start).days + 1

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


def half_year_end(day: date) -> date:
    """Last day of the calendar half-year containing ``day``."""
    if day.month <= 6:
        return date(day.year, 6, 30)
    return date(day.year, 12, 31)


def split_range(start: date, end: date) -> List[DateRange]:
    """
    Split ``start``..``end`` (inclusive) into half-year chunks.

    Chunks are contiguous and ordered. ``start == end`` yields a single
    one-day chunk; ``start > end`` yields an empty list.
    """
    chunks: List[DateRange] = []
    current = start

    while current <= end:
        chunk_end = min(half_year_end(current), end)
        chunks.append(DateRange(current, chunk_end))
        current = chunk_end + timedelta(days=1)

    return chunks


def split_span(start: date, end: date, max_days: int = 365) -> List[DateRange]:
    """Split ``start``..``end`` into consecutive windows of at most ``max_days`` days."""
    if max_days < 1:
        raise ValueError("max_days must be positive")

    windows: List[DateRange] = []
    current = start

    while current <= end:
        window_end = min(current + timedelta(days=max_days - 1), end)
        windows.append(DateRange(current, window_end))
        current = window_end + timedelta(days=1)

    return windows


def span_days(start: date, end: date) -> int:
    """Distance in days between two dates (0 for the same day)."""
    return (end - start).days
