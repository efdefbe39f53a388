from datetime import date
from typing import Iterable

from app.domain.availability import AvailabilityCalendar

# owner profile id -> calendar being managed in this process
calendar_states: dict[str, AvailabilityCalendar] = {}

# Published feed as seen by guests, independent of any owner session
PROPERTY_FEED = "feed"
property_states: dict[str, AvailabilityCalendar] = {}


def _get_or_create(
    states: dict[str, AvailabilityCalendar], key: str
) -> tuple[AvailabilityCalendar, bool]:
    calendar = states.get(key)
    if calendar is not None:
        return calendar, False
    calendar = AvailabilityCalendar()
    states[key] = calendar
    return calendar, True


def get_calendar(owner_id: str) -> tuple[AvailabilityCalendar, bool]:
    """Returns the owner's calendar and whether it was just created."""
    return _get_or_create(calendar_states, owner_id)


def get_property_calendar() -> tuple[AvailabilityCalendar, bool]:
    return _get_or_create(property_states, PROPERTY_FEED)


def live_calendars() -> list[AvailabilityCalendar]:
    """Every calendar whose busy days and blocks guests must respect."""
    return [*property_states.values(), *calendar_states.values()]


def is_day_blocked(day: date, calendars: Iterable[AvailabilityCalendar]) -> bool:
    return any(c.is_occupied(day) or c.is_unavailable(day) for c in calendars)
