"""
Loading the occupancy feed into an owner calendar.

A load is all-or-nothing: the calendar's intervals are replaced only when the
whole feed was read and parsed; otherwise the previous intervals stay and the
calendar carries the failure label until the next successful load.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import requests

from app.core.config import settings
from app.core.messages import messages
from app.domain.availability import AvailabilityCalendar, BusyInterval
from app.domain.feed import parse_feed
from app.state.calendar import get_property_calendar

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Base class for feed loading failures."""


class FeedNotFoundError(FeedError):
    """The source answered but has no feed (HTTP not-ok, missing file)."""


class FeedUnreadableError(FeedError):
    """The source could not be read or decoded."""


@dataclass
class FeedLoadResult:
    ok: bool
    intervals_count: int
    error: Optional[str] = None


class FeedLoader:
    def __init__(self, timeout: Optional[int] = None, strict: Optional[bool] = None):
        self.timeout = timeout or settings.feed_fetch_timeout_seconds
        self.strict = settings.feed_strict_mode if strict is None else strict

    @staticmethod
    def decode(data: bytes) -> str:
        return data.decode("utf-8-sig")

    def fetch_text(self, source: str) -> str:
        """Blocking read of a feed from an http(s) URL or a local path."""
        if source.startswith(("http://", "https://")):
            try:
                response = requests.get(
                    source,
                    timeout=self.timeout,
                    headers={"Accept": "text/calendar"},
                )
            except requests.exceptions.RequestException as e:
                raise FeedUnreadableError(f"Request to {source} failed: {e}") from e

            if not response.ok:
                raise FeedNotFoundError(f"{source} answered {response.status_code}")
            data = response.content
        else:
            path = Path(source)
            if not path.is_file():
                raise FeedNotFoundError(f"{source} does not exist")
            try:
                data = path.read_bytes()
            except OSError as e:
                raise FeedUnreadableError(f"Cannot read {source}: {e}") from e

        try:
            return self.decode(data)
        except UnicodeDecodeError as e:
            raise FeedUnreadableError(f"{source} is not valid UTF-8: {e}") from e

    def parse(self, text: str) -> list[BusyInterval]:
        return parse_feed(text, strict=self.strict)

    async def load_from_source(
        self, calendar: AvailabilityCalendar, source: Optional[str] = None
    ) -> FeedLoadResult:
        source = source or settings.feed_source
        try:
            text = await asyncio.to_thread(self.fetch_text, source)
            intervals = self.parse(text)
        except FeedNotFoundError as e:
            logger.warning(f"Feed not found: {e}")
            return self._fail(calendar, messages.FEED_NOT_FOUND)
        except (FeedUnreadableError, ValueError) as e:
            # ValueError covers strict-mode errors and unparseable date values
            logger.warning(f"Feed from {source} unreadable: {e}")
            return self._fail(calendar, messages.FEED_UNREADABLE)

        logger.info(f"Loaded {len(intervals)} busy interval(s) from {source}")
        return self._succeed(calendar, intervals)

    async def ensure_property_feed(self) -> AvailabilityCalendar:
        """The guest-facing copy of the published feed, read on first use."""
        calendar, created = get_property_calendar()
        if created:
            await self.load_from_source(calendar)
        return calendar

    async def reload(self, calendar: AvailabilityCalendar) -> FeedLoadResult:
        """Reload an owner calendar; a good read also refreshes the guest copy."""
        result = await self.load_from_source(calendar)
        if result.ok:
            property_calendar, _ = get_property_calendar()
            self._succeed(property_calendar, list(calendar.intervals))
        return result

    def load_from_upload(
        self, calendar: AvailabilityCalendar, data: bytes, filename: str = ""
    ) -> FeedLoadResult:
        try:
            intervals = self.parse(self.decode(data))
        except ValueError as e:
            logger.warning(f"Uploaded feed {filename!r} rejected: {e}")
            return self._fail(calendar, messages.FEED_UPLOAD_FAILED)

        logger.info(f"Loaded {len(intervals)} busy interval(s) from upload {filename!r}")
        return self._succeed(calendar, intervals)

    @staticmethod
    def _succeed(
        calendar: AvailabilityCalendar, intervals: list[BusyInterval]
    ) -> FeedLoadResult:
        calendar.replace_intervals(intervals)
        calendar.feed_error = None
        calendar.feed_loaded_at = datetime.now(timezone.utc)
        return FeedLoadResult(ok=True, intervals_count=len(intervals))

    @staticmethod
    def _fail(calendar: AvailabilityCalendar, label: str) -> FeedLoadResult:
        calendar.feed_error = label
        return FeedLoadResult(
            ok=False, intervals_count=len(calendar.intervals), error=label
        )


feed_loader = FeedLoader()
