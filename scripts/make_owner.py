import asyncio
import sys
import os
import argparse

# Add project root to path
sys.path.append(os.getcwd())

from app.database import AsyncSessionLocal, init_db
from app.models import Profile
from app.core.security import create_access_token


async def make_owner(user_id, email=None, revoke=False):
    await init_db()
    async with AsyncSessionLocal() as session:
        profile = await session.get(Profile, user_id)
        if not profile:
            profile = Profile(id=user_id, email=email)
            session.add(profile)

        profile.is_owner = not revoke
        await session.commit()

    if revoke:
        print(f"Owner access revoked for {user_id}")
    else:
        print(f"{user_id} is now an owner")
        print(f"Token (1h): {create_access_token(user_id)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Grant or revoke owner access")
    parser.add_argument("user_id", help="Profile id issued by the auth provider")
    parser.add_argument("--email", help="Email for a new profile")
    parser.add_argument("--revoke", action="store_true", help="Remove owner access")
    args = parser.parse_args()

    asyncio.run(make_owner(args.user_id, args.email, args.revoke))
