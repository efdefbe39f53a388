"""
Owner availability management and the guest-facing disabled-days view.

The owner's calendar (feed intervals, manual blocks, overrides, notes) lives
in process memory per owner; bookings are re-read from the database on every
view and merged in as extra busy intervals.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.domain.availability import AvailabilityCalendar, SelectedRange
from app.domain.calendar import PROPERTY_TZ, each_day
from app.schemas.calendar import (
    AvailabilityIn,
    BlockResultOut,
    CalendarMonthOut,
    CompactResultOut,
    DayStateOut,
    FeedLoadOut,
    GuestAvailabilityOut,
    IntervalOut,
    NoteIn,
    RangeIn,
    SelectionStateOut,
    UpdateResultOut,
)
from app.services.booking_service import BookingService
from app.services.feed_loader import feed_loader
from app.state.calendar import is_day_blocked, live_calendars
from app.web.deps import get_owner_calendar

router = APIRouter(prefix="/api", tags=["availability"])
logger = logging.getLogger(__name__)

# Guest calendar never shows more than this many days at once
MAX_GUEST_WINDOW_DAYS = 400


def _today() -> date:
    return datetime.now(PROPERTY_TZ).date()


@router.get("/calendar", response_model=CalendarMonthOut)
async def calendar_month(
    year: Optional[int] = Query(default=None, ge=1970, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
    db: AsyncSession = Depends(get_db),
):
    today = _today()
    year = year or today.year
    month = month or today.month

    booked = await BookingService.occupancy_intervals(db)
    states = calendar.month_states(year, month, extra=booked)

    return CalendarMonthOut(
        year=year,
        month=month,
        intervals_count=len(calendar.intervals),
        feed_error=calendar.feed_error,
        feed_loaded_at=calendar.feed_loaded_at,
        days=[
            DayStateOut(
                day=s.day,
                occupied=s.occupied,
                unavailable=s.unavailable,
                noted=s.noted,
                note=s.note,
            )
            for s in states
        ],
    )


@router.get("/calendar/intervals", response_model=list[IntervalOut])
async def calendar_intervals(
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
):
    return [
        IntervalOut(start=i.first_day, end=i.last_day) for i in calendar.intervals
    ]


@router.post("/calendar/feed/reload", response_model=FeedLoadOut)
async def reload_feed(calendar: AvailabilityCalendar = Depends(get_owner_calendar)):
    result = await feed_loader.reload(calendar)
    return FeedLoadOut(ok=result.ok, intervals_count=result.intervals_count, error=result.error)


@router.post("/calendar/feed/upload", response_model=FeedLoadOut)
async def upload_feed(
    file: UploadFile = File(...),
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
):
    data = await file.read()
    result = feed_loader.load_from_upload(calendar, data, file.filename or "")
    return FeedLoadOut(ok=result.ok, intervals_count=result.intervals_count, error=result.error)


@router.get("/calendar/selection", response_model=SelectionStateOut)
async def selection_state(
    start: Optional[date] = Query(default=None, alias="from"),
    end: Optional[date] = Query(default=None, alias="to"),
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
):
    if start and end and end < start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="'to' must not be before 'from'",
        )
    selection = SelectedRange(start, end)
    return SelectionStateOut(
        available=calendar.is_selection_available(selection),
        days=len(selection.days()),
    )


@router.post("/calendar/availability", response_model=UpdateResultOut)
async def apply_availability(
    payload: AvailabilityIn,
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
):
    updated = calendar.apply_availability(payload.to_selection(), payload.available)
    logger.info(f"Availability set to {payload.available} for {updated} day(s)")
    return UpdateResultOut(days_updated=updated)


@router.post("/calendar/block", response_model=BlockResultOut)
async def block_range(
    payload: RangeIn,
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
):
    interval = calendar.block_range(payload.to_selection())
    blocked = None
    if interval is not None:
        logger.info(f"Blocked {interval.first_day} - {interval.last_day}")
        blocked = IntervalOut(start=interval.first_day, end=interval.last_day)
    return BlockResultOut(blocked=blocked, intervals_count=len(calendar.intervals))


@router.post("/calendar/notes", response_model=UpdateResultOut)
async def save_note(
    payload: NoteIn,
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
):
    updated = calendar.save_note(payload.to_selection(), payload.text)
    return UpdateResultOut(days_updated=updated)


@router.post("/calendar/compact", response_model=CompactResultOut)
async def compact_calendar(
    before: Optional[date] = Query(default=None),
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
):
    removed = calendar.compact(before or _today())
    return CompactResultOut(removed=removed)


@router.get("/availability", response_model=GuestAvailabilityOut)
async def guest_availability(
    start: Optional[date] = Query(default=None, alias="from"),
    end: Optional[date] = Query(default=None, alias="to"),
    db: AsyncSession = Depends(get_db),
):
    """
    Days a guest cannot pick: past days, booked nights, the published feed
    and whatever the owner's calendars currently render as disabled.
    """
    today = _today()
    start = start or today.replace(day=1)
    end = end or (start + timedelta(days=62))
    if end < start or (end - start).days > MAX_GUEST_WINDOW_DAYS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Window must be ordered and at most {MAX_GUEST_WINDOW_DAYS} days",
        )

    booked = await BookingService.occupancy_intervals(db, since=start)
    await feed_loader.ensure_property_feed()
    calendars = live_calendars()

    disabled = []
    for day in each_day(start, end):
        if day < today:
            disabled.append(day)
        elif any(i.contains(day) for i in booked):
            disabled.append(day)
        elif is_day_blocked(day, calendars):
            disabled.append(day)

    return GuestAvailabilityOut(start=start, end=end, disabled=disabled)
