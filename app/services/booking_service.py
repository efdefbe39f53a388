import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.domain.availability import AvailabilityCalendar, BusyInterval, intervals_from_stays
from app.domain.calendar import PROPERTY_TZ, each_day
from app.models import Booking, BookingStatus
from app.schemas.booking import BookingCreate
from app.services.payment_service import PaymentService, payment_service
from app.state.calendar import is_day_blocked

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for booking rule violations."""


class BookingNotFoundError(BookingError):
    pass


class BookingDatesError(BookingError):
    pass


class BookingUnavailableError(BookingError):
    pass


class InvalidStatusTransitionError(BookingError):
    pass


class BookingService:
    """Bookings: reservation flow, owner status changes, occupancy reads."""

    ALLOWED_TRANSITIONS = {
        BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
        BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
        BookingStatus.COMPLETED: {BookingStatus.CANCELLED},
    }

    # Statuses counted as revenue on the dashboard
    REVENUE_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)

    @classmethod
    def can_transition(cls, current: BookingStatus, target: BookingStatus) -> bool:
        return target in cls.ALLOWED_TRANSITIONS.get(current, set())

    @staticmethod
    def quote(check_in: date, check_out: date) -> Decimal:
        nights = (check_out - check_in).days
        return settings.price_per_night * max(nights, 0)

    @staticmethod
    async def check_availability(
        db: AsyncSession,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        """
        True if no active booking overlaps [check_in, check_out).
        Adjacent stays (checkout day = next check-in) do not overlap.
        """
        query = select(Booking.id).where(
            Booking.status != BookingStatus.CANCELLED,
            and_(Booking.check_in < check_out, Booking.check_out > check_in),
        )
        if exclude_booking_id:
            query = query.where(Booking.id != exclude_booking_id)

        result = await db.execute(query.limit(1))
        return result.scalar_one_or_none() is None

    @staticmethod
    async def create_booking(
        db: AsyncSession,
        user_id: str,
        data: BookingCreate,
        today: Optional[date] = None,
        calendars: Iterable[AvailabilityCalendar] = (),
    ) -> Booking:
        """
        Create a pending booking priced at nights x nightly rate.

        `calendars` are the live availability calendars; a night they show
        as occupied or blocked cannot be booked, same as on the guest view.

        Note: the availability check and the insert are not atomic; two guests
        racing for the same dates can both pass the check.
        """
        today = today or datetime.now(PROPERTY_TZ).date()
        if data.check_in < today:
            raise BookingDatesError(f"check_in {data.check_in} is in the past")

        calendars = list(calendars)
        for night in each_day(data.check_in, data.check_out - timedelta(days=1)):
            if is_day_blocked(night, calendars):
                logger.warning(f"Cannot create booking: {night} is blocked on the calendar")
                raise BookingUnavailableError(f"{night} is not available")

        is_available = await BookingService.check_availability(
            db, data.check_in, data.check_out
        )
        if not is_available:
            logger.warning(
                f"Cannot create booking: dates {data.check_in} - {data.check_out} not available"
            )
            raise BookingUnavailableError(
                f"{data.check_in} - {data.check_out} overlaps an existing booking"
            )

        now = datetime.now(timezone.utc)
        booking = Booking(
            user_id=user_id,
            guest_name=data.guest_name,
            guest_email=data.guest_email,
            guest_phone=data.guest_phone,
            check_in=data.check_in,
            check_out=data.check_out,
            number_of_guests=data.number_of_guests,
            total_price=BookingService.quote(data.check_in, data.check_out),
            notes=data.notes,
            status=BookingStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        db.add(booking)
        await db.commit()
        await db.refresh(booking)

        logger.info(
            f"Booking #{booking.id} created: {booking.check_in} - {booking.check_out}, "
            f"{booking.nights} night(s), {booking.total_price}"
        )
        return booking

    @staticmethod
    async def start_payment(
        db: AsyncSession,
        booking: Booking,
        payments: PaymentService = payment_service,
    ) -> str:
        """
        Ask the payment provider for a checkout page, once.
        PaymentError propagates; the booking stays pending either way.
        """
        checkout = await asyncio.to_thread(
            payments.create_checkout, booking.id, booking.total_price
        )
        if checkout.get("reference"):
            booking.payment_reference = checkout["reference"]
            await db.commit()
        logger.info(f"Checkout created for booking #{booking.id}")
        return checkout["url"]

    @staticmethod
    async def get_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
        return await db.get(Booking, booking_id)

    @staticmethod
    async def list_bookings(db: AsyncSession) -> List[Booking]:
        result = await db.execute(select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def list_user_bookings(db: AsyncSession, user_id: str) -> List[Booking]:
        result = await db.execute(
            select(Booking)
            .where(Booking.user_id == user_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_bookings_between(
        db: AsyncSession, first_day: date, last_day: date
    ) -> List[Booking]:
        """Bookings touching [first_day, last_day], check-out day included."""
        result = await db.execute(
            select(Booking)
            .where(Booking.check_in <= last_day, Booking.check_out >= first_day)
            .order_by(Booking.check_in)
        )
        return list(result.scalars().all())

    @staticmethod
    async def update_status(
        db: AsyncSession, booking_id: int, status: BookingStatus
    ) -> Booking:
        booking = await db.get(Booking, booking_id)
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        if not BookingService.can_transition(booking.status, status):
            raise InvalidStatusTransitionError(
                f"Booking {booking_id}: {booking.status.value} -> {status.value} not allowed"
            )

        old_status = booking.status
        booking.status = status
        booking.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(booking)

        logger.info(f"Booking #{booking_id}: {old_status.value} -> {status.value}")
        return booking

    @staticmethod
    async def get_stats(db: AsyncSession) -> dict:
        total = await db.scalar(select(func.count(Booking.id)))
        confirmed = await db.scalar(
            select(func.count(Booking.id)).where(
                Booking.status == BookingStatus.CONFIRMED
            )
        )
        revenue = await db.scalar(
            select(func.coalesce(func.sum(Booking.total_price), 0)).where(
                Booking.status.in_(BookingService.REVENUE_STATUSES)
            )
        )
        return {
            "total": total or 0,
            "confirmed": confirmed or 0,
            "revenue": Decimal(str(revenue or 0)),
        }

    @staticmethod
    async def occupancy_intervals(
        db: AsyncSession, since: Optional[date] = None
    ) -> List[BusyInterval]:
        """Booked nights of every non-cancelled booking, as busy intervals."""
        query = select(Booking.check_in, Booking.check_out).where(
            Booking.status != BookingStatus.CANCELLED
        )
        if since is not None:
            query = query.where(Booking.check_out > since)
        result = await db.execute(query.order_by(Booking.check_in))
        return intervals_from_stays(result.all())
