"""
Signup Handling

Provisions the user row for an identity-provider signup and runs the
auto-join check.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User
from schemas.enums import PlatformRole
from services.autojoin import SignupCheck, check_signup
from services.identity import get_user

logger = logging.getLogger("rfp_portal.signup")


async def provision_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None
) -> User:
    """Create the user row if it does not exist yet. Idempotent."""
    user = await get_user(db, user_id)
    if user is not None:
        return user

    user = User(
        id=user_id,
        email=email.strip().lower(),
        first_name=first_name,
        last_name=last_name,
        role=PlatformRole.BIDDER.value
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await get_user(db, user_id)
        if existing is None:
            raise
        return existing

    logger.info(f"Provisioned user {user_id} ({user.email})")
    return user


async def handle_signup(
    db: AsyncSession,
    user_id: uuid.UUID,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None
) -> SignupCheck:
    """SIGNED_UP webhook: provision the user, then look for auto-join matches."""
    user = await provision_user(db, user_id, email, first_name, last_name)
    return await check_signup(db, user.id, user.email)
