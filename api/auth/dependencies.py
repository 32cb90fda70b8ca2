"""
Authentication Dependencies

FastAPI dependencies that turn a bearer token into a resolved Identity.
"""

import uuid
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.enums import PlatformRole
from schemas.identity import Identity
from schemas.results import ClientInfo
from services.identity import resolve_identity
from api.auth.jwt import verify_token, TokenError
from api.middleware.error_handler import AuthenticationError, AuthorizationError


# Tokens are issued by the identity provider; tokenUrl is documentation only
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)

PLATFORM_ROLES = {role.value for role in PlatformRole}


async def get_optional_identity(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Identity:
    """
    Resolve the caller, or an anonymous identity when no token is sent.

    Raises AuthenticationError for a token that is present but invalid,
    or that names an unknown or inactive user.
    """
    if token is None:
        return Identity.anonymous()

    try:
        payload = verify_token(token)
        user_id = uuid.UUID(payload["sub"])
    except (TokenError, ValueError) as e:
        raise AuthenticationError(str(e))

    role_claim = payload.get("role")
    if role_claim is not None and role_claim not in PLATFORM_ROLES:
        raise AuthenticationError("Invalid role claim")

    identity = await resolve_identity(db, user_id, role_claim)
    if identity is None:
        raise AuthenticationError("User not found or inactive")

    request.state.user_id = str(identity.user_id)
    return identity


async def get_current_identity(
    identity: Identity = Depends(get_optional_identity)
) -> Identity:
    """Resolve the caller, requiring authentication."""
    if not identity.is_authenticated:
        raise AuthenticationError()
    return identity


def require_platform_roles(*roles: PlatformRole) -> Callable:
    """
    Dependency factory for platform-role checks.

    Usage:
        identity: Identity = Depends(require_platform_roles(PlatformRole.ADMIN))
    """
    async def role_checker(
        identity: Identity = Depends(get_current_identity)
    ) -> Identity:
        # Admin always wins
        if identity.is_admin or identity.platform_role in roles:
            return identity
        raise AuthorizationError(
            f"Requires one of these roles: {', '.join(r.value for r in roles)}"
        )

    return role_checker


require_admin = require_platform_roles(PlatformRole.ADMIN)
require_reviewer = require_platform_roles(PlatformRole.ADMIN, PlatformRole.CLIENT_REVIEWER)


def client_info(request: Request) -> ClientInfo:
    """Capture signer IP and user agent."""
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else None
    if not ip_address and request.client:
        ip_address = request.client.host
    return ClientInfo(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent")
    )
