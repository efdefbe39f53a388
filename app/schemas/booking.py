from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings
from app.models import BookingStatus


class BookingCreate(BaseModel):
    guest_name: str = Field(min_length=1, max_length=120)
    guest_email: str = Field(min_length=3, max_length=254)
    guest_phone: Optional[str] = Field(default=None, max_length=32)
    check_in: date
    check_out: date
    number_of_guests: int = Field(default=1, ge=1)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("guest_name", "guest_email")
    @classmethod
    def not_blank(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("guest_email")
    @classmethod
    def looks_like_email(cls, v: str):
        if "@" not in v:
            raise ValueError("invalid email")
        return v

    @field_validator("number_of_guests")
    @classmethod
    def within_capacity(cls, v: int):
        if v > settings.max_guests:
            raise ValueError(f"at most {settings.max_guests} guests")
        return v

    @field_validator("check_out")
    @classmethod
    def validate_dates(cls, v: date, info):
        ci = info.data.get("check_in")
        if ci and v <= ci:
            raise ValueError("check_out must be after check_in")
        return v


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingOut(BaseModel):
    id: int
    user_id: Optional[str] = None
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    check_in: date
    check_out: date
    nights: int
    number_of_guests: int
    total_price: Decimal
    notes: Optional[str] = None
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingCheckoutOut(BaseModel):
    booking: BookingOut
    payment_url: Optional[str] = None
    message: str


class BookingStats(BaseModel):
    total: int
    confirmed: int
    revenue: Decimal


class CalendarBookingOut(BaseModel):
    id: int
    guest_name: str
    status: BookingStatus
    is_check_in: bool
    is_check_out: bool


class CalendarDayOut(BaseModel):
    day: date
    is_today: bool
    bookings: list[CalendarBookingOut]


class BookingMonthOut(BaseModel):
    year: int
    month: int
    leading_blanks: int
    days: list[CalendarDayOut]
