"""
Occupancy feed (ICS) reading and writing.

Reading is a tolerant line scanner over VEVENT blocks: only DTSTART/DTEND
matter, and an event missing either of them is dropped without an error.
An event that ends on or before its start day still covers that day.
Whether that silence is intended robustness is unclear, so it stays the
default and `strict=True` turns dropped or reversed events into a
FeedParseError.

Value forms:
- YYYYMMDD          -> calendar date
- YYYYMMDDTHHMMSSZ  -> UTC instant
- anything else     -> datetime.fromisoformat(), which raises ValueError on
                       garbage; callers treat that as an unreadable feed.
"""
import datetime
import logging
import re
from typing import Iterable, Optional

from icalendar import Calendar, Event

from app.domain.availability import BusyInterval
from app.domain.calendar import to_day

logger = logging.getLogger(__name__)

DATE_ONLY_RE = re.compile(r"^\d{8}$")
UTC_TIMESTAMP_RE = re.compile(r"^\d{8}T\d{6}Z$")


class FeedParseError(ValueError):
    """Raised by strict parsing when an event cannot become an interval."""


def parse_feed_value(value: str) -> datetime.date:
    if DATE_ONLY_RE.match(value):
        return datetime.date(int(value[0:4]), int(value[4:6]), int(value[6:8]))
    if UTC_TIMESTAMP_RE.match(value):
        return datetime.datetime(
            int(value[0:4]),
            int(value[4:6]),
            int(value[6:8]),
            int(value[9:11]),
            int(value[11:13]),
            int(value[13:15]),
            tzinfo=datetime.timezone.utc,
        )
    return datetime.datetime.fromisoformat(value)


def _field_value(line: str) -> Optional[str]:
    # DTSTART;VALUE=DATE:20240601 -> 20240601
    _, sep, value = line.partition(":")
    value = value.strip()
    return value if sep and value else None


def _close_event(
    fields: dict, lineno: int, strict: bool
) -> Optional[BusyInterval]:
    if "start" not in fields or "end" not in fields:
        missing = "DTSTART" if "start" not in fields else "DTEND"
        if strict:
            raise FeedParseError(f"line {lineno}: event without {missing}")
        logger.debug(f"Dropping event ending at line {lineno}: no {missing}")
        return None

    start_day = to_day(fields["start"])
    if to_day(fields["end"]) < start_day:
        if strict:
            raise FeedParseError(f"line {lineno}: DTEND is before DTSTART")
        logger.debug(f"Event ending at line {lineno} has DTEND before DTSTART")

    # Feed end is exclusive, interval end is inclusive. Same-day and
    # shorter-than-a-day events still cover their start day.
    end_day = to_day(fields["end"] - datetime.timedelta(days=1))
    return BusyInterval(start_day, max(start_day, end_day))


def parse_feed(text: str, strict: bool = False) -> list[BusyInterval]:
    """
    Turn feed text into busy intervals, one per complete event, in feed
    order. No sorting, de-duplication or coalescing of overlaps.
    """
    intervals: list[BusyInterval] = []
    fields: dict = {}
    in_event = False

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()

        if line.startswith("BEGIN:VEVENT"):
            if strict and in_event:
                raise FeedParseError(
                    f"line {lineno}: event opened before the previous one was closed"
                )
            fields = {}
            in_event = True
            continue

        if line.startswith("DTSTART"):
            value = _field_value(line)
            if value:
                fields["start"] = parse_feed_value(value)
            continue

        if line.startswith("DTEND"):
            value = _field_value(line)
            if value:
                fields["end"] = parse_feed_value(value)
            continue

        if line.startswith("END:VEVENT"):
            interval = _close_event(fields, lineno, strict)
            if interval is not None:
                intervals.append(interval)
            fields = {}
            in_event = False

    if strict and in_event:
        raise FeedParseError("feed ended inside an unclosed event")

    return intervals


def build_feed(
    intervals: Iterable[BusyInterval],
    calendar_name: str,
    prodid: str = "-//Casa de Praia//Occupancy//PT",
    summary: str = "Reservado",
) -> bytes:
    """Serialize intervals as all-day events with exclusive DTEND."""
    cal = Calendar()
    cal.add("prodid", prodid)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", calendar_name)

    stamp = datetime.datetime.now(datetime.timezone.utc)
    for index, interval in enumerate(intervals):
        event = Event()
        event.add(
            "uid",
            f"{interval.first_day:%Y%m%d}-{interval.last_day:%Y%m%d}-{index}@occupancy",
        )
        event.add("dtstamp", stamp)
        event.add("dtstart", interval.first_day)
        event.add("dtend", interval.last_day + datetime.timedelta(days=1))
        event.add("summary", summary)
        cal.add_component(event)

    return cal.to_ical()
