"""
External calendar subscriptions (Airbnb, Booking.com, ... iCal URLs).

"Sync now" is a manual, one-shot action. What it actually does is decided by
a CalendarSynchronizer chosen from CALENDAR_SYNC_MODE:
- "stamp":  only records last_synced_at (no data is fetched)
- "import": fetches the subscription feed into the owner's calendar
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.domain.availability import AvailabilityCalendar
from app.models import CalendarSync
from app.schemas.calendar_sync import CalendarSyncCreate
from app.services.feed_loader import FeedLoader, FeedLoadResult, feed_loader

logger = logging.getLogger(__name__)


class CalendarSyncNotFoundError(Exception):
    pass


class CalendarSynchronizer(ABC):
    @abstractmethod
    async def sync(
        self, entry: CalendarSync, calendar: AvailabilityCalendar
    ) -> FeedLoadResult:
        """Bring `calendar` up to date with `entry`; must not raise on feed errors."""


class TimestampSynchronizer(CalendarSynchronizer):
    """Placeholder: records the attempt, leaves the calendar untouched."""

    async def sync(
        self, entry: CalendarSync, calendar: AvailabilityCalendar
    ) -> FeedLoadResult:
        logger.info(f"Sync requested for {entry.platform} (timestamp only)")
        return FeedLoadResult(ok=True, intervals_count=len(calendar.intervals))


class FeedImportSynchronizer(CalendarSynchronizer):
    """Replaces the calendar's busy intervals with the subscription's feed."""

    def __init__(self, loader: FeedLoader = feed_loader):
        self.loader = loader

    async def sync(
        self, entry: CalendarSync, calendar: AvailabilityCalendar
    ) -> FeedLoadResult:
        logger.info(f"Importing {entry.platform} feed from {entry.ical_url}")
        return await self.loader.load_from_source(calendar, entry.ical_url)


def get_synchronizer(mode: Optional[str] = None) -> CalendarSynchronizer:
    mode = (mode or settings.calendar_sync_mode).lower()
    if mode == "import":
        return FeedImportSynchronizer()
    if mode != "stamp":
        logger.warning(f"Unknown CALENDAR_SYNC_MODE {mode!r}, using 'stamp'")
    return TimestampSynchronizer()


class CalendarSyncService:
    @staticmethod
    async def list_syncs(db: AsyncSession) -> List[CalendarSync]:
        result = await db.execute(
            select(CalendarSync).order_by(CalendarSync.created_at.desc(), CalendarSync.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def create_sync(db: AsyncSession, data: CalendarSyncCreate) -> CalendarSync:
        now = datetime.now(timezone.utc)
        entry = CalendarSync(
            platform=data.platform,
            ical_url=data.ical_url,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        db.add(entry)
        await db.commit()
        await db.refresh(entry)
        logger.info(f"Calendar sync #{entry.id} added for {entry.platform}")
        return entry

    @staticmethod
    async def delete_sync(db: AsyncSession, sync_id: int) -> bool:
        entry = await db.get(CalendarSync, sync_id)
        if not entry:
            return False
        await db.delete(entry)
        await db.commit()
        logger.info(f"Calendar sync #{sync_id} removed")
        return True

    @staticmethod
    async def sync_now(
        db: AsyncSession,
        sync_id: int,
        calendar: AvailabilityCalendar,
        synchronizer: Optional[CalendarSynchronizer] = None,
    ) -> tuple[CalendarSync, FeedLoadResult]:
        """Run one sync; last_synced_at moves only when the sync succeeded."""
        entry = await db.get(CalendarSync, sync_id)
        if not entry:
            raise CalendarSyncNotFoundError(f"Calendar sync {sync_id} not found")

        synchronizer = synchronizer or get_synchronizer()
        result = await synchronizer.sync(entry, calendar)

        if result.ok:
            entry.last_synced_at = datetime.now(timezone.utc)
            entry.updated_at = entry.last_synced_at
            await db.commit()
            await db.refresh(entry)
        else:
            logger.warning(f"Calendar sync #{sync_id} failed: {result.error}")

        return entry, result
