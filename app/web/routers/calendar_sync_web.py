import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.messages import messages
from app.database import get_db
from app.schemas.calendar_sync import CalendarSyncCreate, CalendarSyncOut, CalendarSyncResultOut
from app.services.calendar_sync_service import CalendarSyncNotFoundError, CalendarSyncService
from app.domain.availability import AvailabilityCalendar
from app.web.deps import SessionContext, get_owner_calendar, require_owner

router = APIRouter(prefix="/api/calendar-sync", tags=["calendar-sync"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[CalendarSyncOut])
async def list_syncs(
    owner: SessionContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db),
):
    return await CalendarSyncService.list_syncs(db)


@router.post("", response_model=CalendarSyncOut, status_code=status.HTTP_201_CREATED)
async def create_sync(
    payload: CalendarSyncCreate,
    owner: SessionContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db),
):
    return await CalendarSyncService.create_sync(db, payload)


@router.delete("/{sync_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sync(
    sync_id: int,
    owner: SessionContext = Depends(require_owner),
    db: AsyncSession = Depends(get_db),
):
    if not await CalendarSyncService.delete_sync(db, sync_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=messages.SYNC_NOT_FOUND
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{sync_id}/sync", response_model=CalendarSyncResultOut)
async def sync_now(
    sync_id: int,
    calendar: AvailabilityCalendar = Depends(get_owner_calendar),
    db: AsyncSession = Depends(get_db),
):
    try:
        entry, result = await CalendarSyncService.sync_now(db, sync_id, calendar)
    except CalendarSyncNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=messages.SYNC_NOT_FOUND
        )

    return CalendarSyncResultOut(
        sync=CalendarSyncOut.model_validate(entry),
        ok=result.ok,
        intervals_count=result.intervals_count,
        message=messages.SYNC_STARTED if result.ok else (result.error or messages.SYNC_FAILED),
    )
