from dataclasses import dataclass
from typing import Optional

from fastapi import Request, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.messages import messages
from app.core.security import decode_access_token
from app.database import get_db
from app.domain.availability import AvailabilityCalendar
from app.services.feed_loader import feed_loader
from app.services.profile_service import ProfileService
from app.state.calendar import get_calendar


@dataclass(frozen=True)
class SessionContext:
    """Who is calling, resolved once per request and passed explicitly."""

    user_id: str
    is_owner: bool
    email: Optional[str] = None


def _extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get("access_token")


async def get_session_context(
    request: Request, db: AsyncSession = Depends(get_db)
) -> SessionContext:
    """
    Identity from the provider's token; owner flag looked up in the
    profile store on every request.
    """
    token = _extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=messages.LOGIN_REQUIRED
        )

    payload = decode_access_token(token)
    user_id = payload.get("sub") if payload else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=messages.LOGIN_REQUIRED
        )

    is_owner = await ProfileService.is_owner(db, user_id)
    return SessionContext(user_id=user_id, is_owner=is_owner, email=payload.get("email"))


async def require_owner(
    context: SessionContext = Depends(get_session_context),
) -> SessionContext:
    if not context.is_owner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail=messages.OWNER_ONLY
        )
    return context


async def get_owner_calendar(
    context: SessionContext = Depends(require_owner),
) -> AvailabilityCalendar:
    calendar, created = get_calendar(context.user_id)
    if created:
        # One-shot load of the published feed when the calendar is first opened
        await feed_loader.load_from_source(calendar)
    return calendar
