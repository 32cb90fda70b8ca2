"""
Seed a platform administrator.

Creates tables (development only), provisions or promotes the user, and
prints a development access token.

Usage:
    python scripts/seed_admin.py admin@example.com
"""

import asyncio
import sys
import uuid
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import get_db_context, init_db, close_db
from schemas.enums import PlatformRole
from services.identity import get_user_by_email
from services.signup import provision_user
from api.auth.jwt import create_access_token


async def seed_admin(email: str):
    """Create or promote a platform admin."""
    await init_db()

    async with get_db_context() as db:
        user = await get_user_by_email(db, email)
        if user is None:
            user = await provision_user(db, uuid.uuid4(), email)
            print(f"Created user {user.email}")

        if user.role == PlatformRole.ADMIN.value:
            print(f"User '{user.email}' is already an admin, skipping")
        else:
            user.role = PlatformRole.ADMIN.value
            print(f"Promoted {user.email} to admin")

        user_id, user_email = user.id, user.email

    await close_db()

    token = create_access_token(str(user_id), user_email, PlatformRole.ADMIN.value)
    print(f"\nDevelopment token:\n{token}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(seed_admin(sys.argv[1]))
