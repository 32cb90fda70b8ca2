"""
Individual RFP Access Grants

Admin-managed (rfp, user) grants. An approved grant makes a confidential
RFP visible and satisfies approval-gated documents.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import RFPAccess
from schemas.enums import ApprovalStatus
from schemas.identity import Identity
from schemas.results import OperationResult
from services.identity import get_user
from services.notifications import dispatch, fan_out
from services.rfps import get_rfp

logger = logging.getLogger("rfp_portal.grants")


async def upsert_access(
    db: AsyncSession,
    rfp_id: uuid.UUID,
    user_id: uuid.UUID,
    status: ApprovalStatus,
    granted_by: Optional[uuid.UUID]
) -> RFPAccess:
    """Set the grant for (rfp, user) inside the caller's transaction."""
    for attempt in range(2):
        result = await db.execute(
            select(RFPAccess).where(
                RFPAccess.rfp_id == rfp_id,
                RFPAccess.user_id == user_id
            ).with_for_update()
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            grant = RFPAccess(rfp_id=rfp_id, user_id=user_id)
            db.add(grant)
        grant.status = status.value
        grant.granted_by = granted_by

        try:
            await db.flush()
            return grant
        except IntegrityError:
            await db.rollback()
            if attempt:
                raise


async def set_rfp_access(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    user_id: uuid.UUID,
    status: ApprovalStatus = ApprovalStatus.APPROVED
) -> OperationResult[RFPAccess]:
    """Grant or revoke a user's individual access to an RFP. Admins only."""
    if not identity.is_admin:
        return OperationResult.forbidden("Only administrators can manage RFP access")

    rfp = await get_rfp(db, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")
    user = await get_user(db, user_id)
    if user is None:
        return OperationResult.not_found("User")
    title = rfp.title

    grant = await upsert_access(db, rfp_id, user_id, status, identity.user_id)
    await db.commit()

    logger.info(f"RFP access for user {user_id} on RFP {rfp_id} set to {status.value}")
    if status == ApprovalStatus.APPROVED:
        event = ("Access Granted", f'You have been granted access to "{title}".', "access_granted")
    else:
        event = ("Access Denied", f'Your access to "{title}" has been denied.', "access_denied")
    await dispatch(fan_out([user_id], *event, reference_id=rfp_id))

    return OperationResult.ok(grant, f"Access {status.value}")


async def list_rfp_access(db: AsyncSession, rfp_id: uuid.UUID) -> list[RFPAccess]:
    result = await db.execute(
        select(RFPAccess).where(RFPAccess.rfp_id == rfp_id).order_by(RFPAccess.created_at)
    )
    return list(result.scalars().all())
