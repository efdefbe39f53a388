import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Booking, BookingMessage
from app.services.booking_service import BookingNotFoundError

logger = logging.getLogger(__name__)


class MessageAccessError(Exception):
    """The caller is neither the booking's guest nor the owner."""


class MessageService:
    """Per-booking thread between the guest who booked and the owner."""

    @staticmethod
    async def get_thread_booking(
        db: AsyncSession, booking_id: int, user_id: str, is_owner: bool
    ) -> Booking:
        booking = await db.get(Booking, booking_id)
        if not booking:
            raise BookingNotFoundError(f"Booking #{booking_id} not found")
        if not is_owner and booking.user_id != user_id:
            raise MessageAccessError(
                f"{user_id} is not a participant of booking #{booking_id}"
            )
        return booking

    @staticmethod
    async def list_messages(
        db: AsyncSession, booking_id: int, user_id: str, is_owner: bool
    ) -> List[BookingMessage]:
        """Oldest first."""
        await MessageService.get_thread_booking(db, booking_id, user_id, is_owner)
        result = await db.execute(
            select(BookingMessage)
            .where(BookingMessage.booking_id == booking_id)
            .order_by(BookingMessage.created_at, BookingMessage.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def post_message(
        db: AsyncSession, booking_id: int, user_id: str, is_owner: bool, text: str
    ) -> BookingMessage:
        await MessageService.get_thread_booking(db, booking_id, user_id, is_owner)

        entry = BookingMessage(
            booking_id=booking_id,
            sender_id=user_id,
            message=text,
            is_from_owner=is_owner,
            created_at=datetime.now(timezone.utc),
        )
        db.add(entry)
        await db.commit()
        await db.refresh(entry)

        logger.info(
            f"Message #{entry.id} on booking #{booking_id} from "
            f"{'owner' if is_owner else 'guest'} {user_id}"
        )
        return entry
