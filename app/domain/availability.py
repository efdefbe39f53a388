"""
Availability engine.

Merges busy intervals (calendar feed, manual blocks, booked stays) with the
owner's per-day overrides and notes, and answers per-day questions for the
calendar view. All state is plain in-memory data; every operation is a
synchronous update with last-write-wins semantics.
"""
import datetime
from dataclasses import dataclass, field
from typing import Iterable, Optional

from app.domain.calendar import day_key, each_day, get_month_dates, to_day


@dataclass(frozen=True)
class BusyInterval:
    """Occupied stretch, inclusive on both ends."""

    start: datetime.date
    end: datetime.date

    def __post_init__(self):
        if to_day(self.end) < to_day(self.start):
            raise ValueError(
                f"Interval ends ({to_day(self.end)}) before it starts ({to_day(self.start)})"
            )

    @property
    def first_day(self) -> datetime.date:
        return to_day(self.start)

    @property
    def last_day(self) -> datetime.date:
        return to_day(self.end)

    def contains(self, day: datetime.date) -> bool:
        return self.first_day <= to_day(day) <= self.last_day

    @classmethod
    def from_stay(
        cls, check_in: datetime.date, check_out: datetime.date
    ) -> Optional["BusyInterval"]:
        """Booked nights of a stay; the check-out day itself stays free."""
        if check_out <= check_in:
            return None
        return cls(check_in, check_out - datetime.timedelta(days=1))


def intervals_from_stays(
    stays: Iterable[tuple[datetime.date, datetime.date]],
) -> list[BusyInterval]:
    intervals = []
    for check_in, check_out in stays:
        interval = BusyInterval.from_stay(check_in, check_out)
        if interval is not None:
            intervals.append(interval)
    return intervals


@dataclass(frozen=True)
class SelectedRange:
    """Owner's working selection; either end may still be unset."""

    start: Optional[datetime.date] = None
    end: Optional[datetime.date] = None

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None

    def days(self) -> list[datetime.date]:
        if not self.is_complete:
            return []
        return each_day(self.start, self.end)


@dataclass(frozen=True)
class DayState:
    day: datetime.date
    occupied: bool
    unavailable: bool
    noted: bool
    note: Optional[str] = None

    @property
    def key(self) -> str:
        return day_key(self.day)


@dataclass
class AvailabilityCalendar:
    intervals: list[BusyInterval] = field(default_factory=list)
    overrides: dict[str, bool] = field(default_factory=dict)
    notes: dict[str, str] = field(default_factory=dict)
    # Label of the last failed feed load, None when the last load succeeded
    feed_error: Optional[str] = None
    feed_loaded_at: Optional[datetime.datetime] = None

    def replace_intervals(self, intervals: Iterable[BusyInterval]) -> None:
        self.intervals = list(intervals)

    # -- queries ---------------------------------------------------------

    def is_occupied(
        self, day: datetime.date, extra: Iterable[BusyInterval] = ()
    ) -> bool:
        if any(interval.contains(day) for interval in self.intervals):
            return True
        return any(interval.contains(day) for interval in extra)

    def is_unavailable(self, day: datetime.date) -> bool:
        return self.overrides.get(day_key(day)) is False

    def is_noted(self, day: datetime.date) -> bool:
        return day_key(day) in self.notes

    def day_state(
        self, day: datetime.date, extra: Iterable[BusyInterval] = ()
    ) -> DayState:
        key = day_key(day)
        return DayState(
            day=to_day(day),
            occupied=self.is_occupied(day, extra),
            unavailable=self.is_unavailable(day),
            noted=key in self.notes,
            note=self.notes.get(key),
        )

    def month_states(
        self, year: int, month: int, extra: Iterable[BusyInterval] = ()
    ) -> list[DayState]:
        extra = list(extra)
        return [self.day_state(day, extra) for day in get_month_dates(year, month)]

    def unavailable_days(self) -> list[datetime.date]:
        return sorted(
            datetime.date.fromisoformat(key)
            for key, available in self.overrides.items()
            if available is False
        )

    def noted_days(self) -> list[datetime.date]:
        return sorted(datetime.date.fromisoformat(key) for key in self.notes)

    def is_selection_available(self, selection: SelectedRange) -> bool:
        """Switch state for a selection: on only if no day is overridden to blocked."""
        return all(
            self.overrides.get(day_key(day), True) for day in selection.days()
        )

    # -- mutations -------------------------------------------------------

    def apply_availability(self, selection: SelectedRange, available: bool) -> int:
        days = selection.days()
        for day in days:
            self.overrides[day_key(day)] = available
        return len(days)

    def block_range(self, selection: SelectedRange) -> Optional[BusyInterval]:
        if not selection.is_complete:
            return None
        interval = BusyInterval(selection.start, selection.end)
        self.intervals.append(interval)
        return interval

    def save_note(self, selection: SelectedRange, text: str) -> int:
        text = (text or "").strip()
        if not text:
            return 0
        days = selection.days()
        for day in days:
            self.notes[day_key(day)] = text
        return len(days)

    def compact(self, before: datetime.date) -> int:
        """Drop overrides and notes for days strictly before `before`."""
        cutoff = day_key(before)
        stale_overrides = [key for key in self.overrides if key < cutoff]
        stale_notes = [key for key in self.notes if key < cutoff]
        for key in stale_overrides:
            del self.overrides[key]
        for key in stale_notes:
            del self.notes[key]
        return len(stale_overrides) + len(stale_notes)
