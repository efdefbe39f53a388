from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from app.domain.availability import SelectedRange


class RangeIn(BaseModel):
    """Selection sent by the management view; an open end makes the call a no-op."""

    start: Optional[date] = Field(default=None, alias="from")
    end: Optional[date] = Field(default=None, alias="to")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def ordered(self):
        if self.start and self.end and self.end < self.start:
            raise ValueError("'to' must not be before 'from'")
        return self

    def to_selection(self) -> SelectedRange:
        return SelectedRange(self.start, self.end)


class AvailabilityIn(RangeIn):
    available: bool


class NoteIn(RangeIn):
    text: str = Field(default="", max_length=2000)


class IntervalOut(BaseModel):
    start: date
    end: date


class DayStateOut(BaseModel):
    day: date
    occupied: bool
    unavailable: bool
    noted: bool
    note: Optional[str] = None


class CalendarMonthOut(BaseModel):
    year: int
    month: int
    intervals_count: int
    feed_error: Optional[str] = None
    feed_loaded_at: Optional[datetime] = None
    days: list[DayStateOut]


class SelectionStateOut(BaseModel):
    available: bool
    days: int


class UpdateResultOut(BaseModel):
    days_updated: int


class BlockResultOut(BaseModel):
    blocked: Optional[IntervalOut] = None
    intervals_count: int


class FeedLoadOut(BaseModel):
    ok: bool
    intervals_count: int
    error: Optional[str] = None


class CompactResultOut(BaseModel):
    removed: int


class GuestAvailabilityOut(BaseModel):
    start: date
    end: date
    disabled: list[date]
