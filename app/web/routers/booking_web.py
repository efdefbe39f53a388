import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.messages import messages
from app.core.rate_limiter import limiter
from app.database import get_db
from app.domain.calendar import PROPERTY_TZ, bookings_for_day, get_month_dates, month_grid
from app.schemas.booking import (
    BookingCheckoutOut,
    BookingCreate,
    BookingMonthOut,
    BookingOut,
    BookingStats,
    BookingStatusUpdate,
    CalendarBookingOut,
    CalendarDayOut,
)
from app.schemas.message import MessageCreate, MessageOut
from app.services.booking_service import (
    BookingDatesError,
    BookingNotFoundError,
    BookingService,
    BookingUnavailableError,
    InvalidStatusTransitionError,
)
from app.services.feed_loader import feed_loader
from app.services.message_service import MessageAccessError, MessageService
from app.services.payment_service import PaymentError
from app.services.profile_service import ProfileService
from app.state.calendar import live_calendars
from app.web.deps import SessionContext, get_session_context, require_owner

router = APIRouter(prefix="/api/bookings", tags=["bookings"])
logger = logging.getLogger(__name__)


@router.post("", response_model=BookingCheckoutOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_booking)
async def create_booking(
    request: Request,
    payload: BookingCreate,
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Guest reservation: validate dates against bookings and the live
    calendars, store a pending booking, then ask the payment provider for a
    checkout page.

    If the provider fails the booking stays pending and the response is 502
    with the booking attached, so the guest is not asked to book twice.
    """
    await ProfileService.ensure_profile(db, context.user_id, context.email)
    await feed_loader.ensure_property_feed()

    try:
        booking = await BookingService.create_booking(
            db, context.user_id, payload, calendars=live_calendars()
        )
    except BookingDatesError as e:
        logger.info(f"Rejected booking from {context.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=messages.DATES_UNAVAILABLE,
        )
    except BookingUnavailableError as e:
        logger.info(f"Rejected booking from {context.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=messages.DATES_UNAVAILABLE
        )

    try:
        payment_url = await BookingService.start_payment(db, booking)
    except PaymentError as e:
        logger.error(f"Payment start failed for booking #{booking.id}: {e}")
        body = BookingCheckoutOut(
            booking=BookingOut.model_validate(booking),
            payment_url=None,
            message=messages.PAYMENT_FAILED,
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=body.model_dump(mode="json"),
        )

    return BookingCheckoutOut(
        booking=BookingOut.model_validate(booking),
        payment_url=payment_url,
        message=messages.BOOKING_CREATED,
    )


@router.get("/mine", response_model=list[BookingOut])
async def my_bookings(
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.list_user_bookings(db, context.user_id)


@router.get("", response_model=list[BookingOut])
async def list_bookings(
    owner: SessionContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db),
):
    return await BookingService.list_bookings(db)


@router.get("/stats", response_model=BookingStats)
async def booking_stats(
    owner: SessionContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db),
):
    return BookingStats(**await BookingService.get_stats(db))


@router.get("/calendar", response_model=BookingMonthOut)
async def booking_calendar(
    year: Optional[int] = Query(default=None, ge=1970, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    owner: SessionContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db),
):
    """Dashboard month grid: every booking on each day it touches."""
    today = datetime.now(PROPERTY_TZ).date()
    year = year or today.year
    month = month or today.month

    dates = get_month_dates(year, month)
    leading = len(month_grid(year, month)) - len(dates)
    bookings = await BookingService.list_bookings_between(db, dates[0], dates[-1])

    days = []
    for day in dates:
        days.append(
            CalendarDayOut(
                day=day,
                is_today=day == today,
                bookings=[
                    CalendarBookingOut(
                        id=b.id,
                        guest_name=b.guest_name,
                        status=b.status,
                        is_check_in=b.check_in == day,
                        is_check_out=b.check_out == day,
                    )
                    for b in bookings_for_day(bookings, day)
                ],
            )
        )

    return BookingMonthOut(year=year, month=month, leading_blanks=leading, days=days)


@router.patch("/{booking_id}/status", response_model=BookingOut)
async def update_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    owner: SessionContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await BookingService.update_status(db, booking_id, payload.status)
    except BookingNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=messages.BOOKING_NOT_FOUND
        )
    except InvalidStatusTransitionError as e:
        logger.warning(str(e))
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=messages.STATUS_UPDATE_FAILED
        )


@router.get("/{booking_id}/messages", response_model=list[MessageOut])
async def list_booking_messages(
    booking_id: int,
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await MessageService.list_messages(
            db, booking_id, context.user_id, context.is_owner
        )
    except BookingNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=messages.BOOKING_NOT_FOUND
        )
    except MessageAccessError as e:
        logger.warning(str(e))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail=messages.BOOKING_ACCESS_DENIED
        )


@router.post(
    "/{booking_id}/messages",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
)
async def post_booking_message(
    booking_id: int,
    payload: MessageCreate,
    context: SessionContext = Depends(get_session_context),
    db: AsyncSession = Depends(get_db),
):
    """Sender side comes from the session, never from the request body."""
    try:
        return await MessageService.post_message(
            db, booking_id, context.user_id, context.is_owner, payload.message
        )
    except BookingNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=messages.BOOKING_NOT_FOUND
        )
    except MessageAccessError as e:
        logger.warning(str(e))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail=messages.BOOKING_ACCESS_DENIED
        )
