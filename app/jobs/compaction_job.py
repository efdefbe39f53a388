"""
Daily cleanup of per-day overrides and notes that lie in the past.
"""
import logging
from datetime import datetime

from app.domain.calendar import PROPERTY_TZ

logger = logging.getLogger(__name__)


async def compact_calendars_job():
    """
    Drop override and note entries dated before today from every live
    owner calendar. Busy intervals are left alone; the next feed load
    replaces them anyway.
    """
    logger.info("Starting calendar compaction...")

    try:
        from app.state.calendar import calendar_states

        today = datetime.now(PROPERTY_TZ).date()
        removed = 0
        for owner_id, calendar in list(calendar_states.items()):
            count = calendar.compact(today)
            if count:
                logger.info(f"Compacted {count} past entries for owner {owner_id}")
            removed += count

        logger.info(f"Calendar compaction done: {removed} entries removed")

    except Exception as e:
        logger.error(f"Calendar compaction job failed: {e}", exc_info=True)
