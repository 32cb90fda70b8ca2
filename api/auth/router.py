"""
Authentication Router

Identity-provider webhook and the caller's resolved identity.
Sign-in itself happens at the identity provider.
"""

import hmac
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.connection import get_db
from schemas.identity import Affiliation, Identity
from services.autojoin import SignupCheck
from services.identity import get_user
from services.signup import handle_signup
from api.auth.dependencies import get_current_identity
from api.middleware.error_handler import AuthenticationError, ValidationError
from api.middleware.rate_limit import limiter, LIMIT_AUTH_HOOK


router = APIRouter(prefix="/auth", tags=["Authentication"])


# ============================================================================
# Request/Response Models
# ============================================================================

class AuthHookUser(BaseModel):
    """User payload sent by the identity provider."""
    id: uuid.UUID
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class AuthHookEvent(BaseModel):
    """Identity-provider webhook body."""
    type: str
    user: AuthHookUser


class MeResponse(BaseModel):
    """Resolved identity of the caller."""
    user_id: uuid.UUID
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    platform_role: Optional[str] = None
    primary_company_id: Optional[uuid.UUID] = None
    primary_company_role: Optional[str] = None
    affiliations: list[Affiliation] = []


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/hooks", response_model=SignupCheck)
@limiter.limit(LIMIT_AUTH_HOOK)
async def auth_hook(
    request: Request,
    event: AuthHookEvent,
    x_auth_hook_secret: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db)
):
    """
    Identity-provider webhook.

    SIGNED_UP provisions the user row and runs the auto-join check.
    """
    if not x_auth_hook_secret or not hmac.compare_digest(
        x_auth_hook_secret.encode("utf-8"), settings.auth_hook_secret.encode("utf-8")
    ):
        raise AuthenticationError("Invalid hook secret")

    if event.type != "SIGNED_UP":
        raise ValidationError(f"Unsupported event type: {event.type}")

    return await handle_signup(
        db,
        event.user.id,
        event.user.email,
        event.user.first_name,
        event.user.last_name
    )


@router.get("/me", response_model=MeResponse)
async def get_me(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Get the caller's platform role and company affiliations."""
    user = await get_user(db, identity.user_id)

    return MeResponse(
        user_id=identity.user_id,
        email=identity.email,
        first_name=user.first_name if user else None,
        last_name=user.last_name if user else None,
        platform_role=identity.platform_role.value if identity.platform_role else None,
        primary_company_id=identity.primary_company_id,
        primary_company_role=identity.primary_company_role,
        affiliations=identity.affiliations
    )
