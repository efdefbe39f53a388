import calendar
import datetime
from typing import Iterable, Optional, TypeVar
from zoneinfo import ZoneInfo

from app.core.config import settings

# Business timezone for turning absolute instants into calendar days
PROPERTY_TZ = ZoneInfo(settings.property_timezone)

T = TypeVar("T")


def to_day(value: datetime.date) -> datetime.date:
    """
    Normalize a date or datetime to the calendar day it denotes.

    Aware datetimes (e.g. UTC feed timestamps) are read in the property
    timezone; naive datetimes are taken at face value.
    """
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(PROPERTY_TZ)
        return value.date()
    return value


def day_key(value: datetime.date) -> str:
    """YYYY-MM-DD key shared by every per-day map."""
    return to_day(value).isoformat()


def each_day(start: datetime.date, end: datetime.date) -> list[datetime.date]:
    """Inclusive day-by-day expansion of [start, end]."""
    first, last = to_day(start), to_day(end)
    if last < first:
        raise ValueError(f"Invalid range: {first} is after {last}")
    return [
        first + datetime.timedelta(days=offset)
        for offset in range((last - first).days + 1)
    ]


def get_month_dates(year: int, month: int) -> list[datetime.date]:
    _, days_in_month = calendar.monthrange(year, month)
    return [
        datetime.date(year, month, day)
        for day in range(1, days_in_month + 1)
    ]


def month_grid(year: int, month: int) -> list[Optional[datetime.date]]:
    """Month days preceded by empty cells so that weeks start on Sunday."""
    dates = get_month_dates(year, month)
    leading = (dates[0].weekday() + 1) % 7
    return [None] * leading + dates


def bookings_for_day(bookings: Iterable[T], day: datetime.date) -> list[T]:
    """Bookings touching a day, check-out day included (dashboard view)."""
    return [b for b in bookings if b.check_in <= day <= b.check_out]
