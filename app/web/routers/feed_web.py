"""Public iCalendar export of the property's booked nights."""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.database import get_db
from app.domain.feed import build_feed
from app.services.booking_service import BookingService

router = APIRouter(tags=["feed"])


@router.get("/export.ics")
async def export_feed(db: AsyncSession = Depends(get_db)):
    intervals = await BookingService.occupancy_intervals(db)
    return Response(
        content=build_feed(intervals, settings.project_name),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'inline; filename="export.ics"'},
    )
