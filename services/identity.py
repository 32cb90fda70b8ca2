"""
Identity & Role Resolver

Builds an Identity for a user id. The platform role comes from the signed
token claim when present, otherwise from a direct primary-key lookup of
the users table; neither path goes through an access-filtered query.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User, CompanyMembership, CompanyJoinRequest
from schemas.enums import (
    AffiliationKind, ApprovalStatus, CompanyRole, MembershipStatus, PlatformRole
)
from schemas.identity import Affiliation, Identity


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


def _primary_affiliation(user: User) -> Optional[Affiliation]:
    if user.company_id is None:
        return None

    if user.company_role == CompanyRole.PENDING.value:
        kind = AffiliationKind.PENDING
    else:
        kind = AffiliationKind.PRIMARY

    return Affiliation(company_id=user.company_id, kind=kind, role=user.company_role)


async def resolve_identity(
    db: AsyncSession,
    user_id: uuid.UUID,
    role_claim: Optional[str] = None
) -> Optional[Identity]:
    """
    Resolve platform role and all affiliations for a user.

    Args:
        db: Database session
        user_id: Authenticated user id
        role_claim: Platform role carried by the session token, if any

    Returns:
        Identity, or None if the user does not exist or is inactive
    """
    user = await get_user(db, user_id)
    if user is None or not user.is_active:
        return None

    affiliations = []
    primary = _primary_affiliation(user)
    if primary:
        affiliations.append(primary)

    memberships = await db.execute(
        select(CompanyMembership.company_id).where(
            CompanyMembership.user_id == user_id,
            CompanyMembership.status == MembershipStatus.ACTIVE.value
        )
    )
    for company_id in memberships.scalars().all():
        if company_id == user.company_id:
            continue
        affiliations.append(Affiliation(
            company_id=company_id,
            kind=AffiliationKind.SECONDARY,
            role="collaborator"
        ))

    pending = await db.execute(
        select(CompanyJoinRequest.company_id).where(
            CompanyJoinRequest.user_id == user_id,
            CompanyJoinRequest.status == ApprovalStatus.PENDING.value
        )
    )
    for company_id in pending.scalars().all():
        affiliations.append(Affiliation(company_id=company_id, kind=AffiliationKind.PENDING))

    role = PlatformRole(role_claim) if role_claim else PlatformRole(user.role)

    return Identity(
        user_id=user.id,
        email=user.email,
        platform_role=role,
        affiliations=affiliations
    )
