from datetime import date, datetime
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    String,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Profile(Base):
    __tablename__ = "profiles"

    # Identity id issued by the external auth provider
    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    bookings: Mapped[list["Booking"]] = relationship(back_populates="user")


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("profiles.id"), nullable=True, index=True
    )
    user: Mapped[Optional["Profile"]] = relationship(back_populates="bookings")

    # Guest details
    guest_name: Mapped[str] = mapped_column(String)
    guest_email: Mapped[str] = mapped_column(String)
    guest_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # check_out is the departure day, not a booked night
    check_in: Mapped[date] = mapped_column(Date, index=True)
    check_out: Mapped[date] = mapped_column(Date, index=True)
    number_of_guests: Mapped[int] = mapped_column(Integer, default=1)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    notes: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus), default=BookingStatus.PENDING
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String, nullable=True, index=True
    )  # Checkout session id at the payment provider
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    messages: Mapped[list["BookingMessage"]] = relationship(
        back_populates="booking", order_by="BookingMessage.id"
    )

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


class CalendarSync(Base):
    __tablename__ = "calendar_sync"

    id: Mapped[int] = mapped_column(primary_key=True)
    platform: Mapped[str] = mapped_column(String)  # Airbnb, Booking.com, ...
    ical_url: Mapped[str] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class BookingMessage(Base):
    """One entry of the guest/owner thread attached to a booking."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), index=True)
    sender_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("profiles.id"), nullable=True
    )
    message: Mapped[str] = mapped_column(String)
    is_from_owner: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    booking: Mapped["Booking"] = relationship(back_populates="messages")
