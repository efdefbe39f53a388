import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Profile

logger = logging.getLogger(__name__)


class ProfileService:
    @staticmethod
    async def is_owner(db: AsyncSession, user_id: str) -> bool:
        """Owner flag, read fresh from the store on every call."""
        result = await db.execute(select(Profile.is_owner).where(Profile.id == user_id))
        return bool(result.scalar_one_or_none())

    @staticmethod
    async def ensure_profile(
        db: AsyncSession,
        user_id: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> Profile:
        """Create the profile row for a first-time identity."""
        profile = await db.get(Profile, user_id)
        if profile:
            return profile

        profile = Profile(id=user_id, email=email, full_name=full_name, is_owner=False)
        db.add(profile)
        await db.commit()
        await db.refresh(profile)
        logger.info(f"Profile created for {user_id}")
        return profile
