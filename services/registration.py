"""
Company Registration Approval Workflow

One interest registration per (rfp, company):

    pending -> approved   (admin)
    pending -> rejected   (admin, reason required)
    rejected -> pending   (the company registers again)

Registering while pending or approved is an idempotent no-op.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import RfpInterestRegistration, Company
from schemas.enums import ApprovalStatus
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.notifications import company_member_ids, dispatch, fan_out
from services.rfps import get_rfp, get_visible_rfp

logger = logging.getLogger("rfp_portal.registration")


async def _get_registration(
    db: AsyncSession,
    rfp_id: uuid.UUID,
    company_id: uuid.UUID
) -> Optional[RfpInterestRegistration]:
    result = await db.execute(
        select(RfpInterestRegistration).where(
            RfpInterestRegistration.rfp_id == rfp_id,
            RfpInterestRegistration.company_id == company_id
        ).with_for_update()
    )
    return result.scalar_one_or_none()


async def register_interest(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    notes: Optional[str] = None
) -> OperationResult[RfpInterestRegistration]:
    """Register the requester's primary company for an RFP."""
    company_id = identity.primary_company_id
    if company_id is None:
        return OperationResult.fail(
            ErrorKind.INVARIANT_VIOLATION,
            "You must be associated with a company to register interest"
        )

    rfp = await get_visible_rfp(db, identity, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    existing = await _get_registration(db, rfp_id, company_id)
    if existing is not None and existing.status != ApprovalStatus.REJECTED.value:
        return OperationResult.ok(existing, "Company already registered", duplicate=True)

    if existing is not None:
        existing.status = ApprovalStatus.PENDING.value
        existing.user_id = identity.user_id
        existing.notes = notes
        existing.rejected_by = None
        existing.rejected_at = None
        existing.rejection_reason = None
        registration = existing
    else:
        registration = RfpInterestRegistration(
            rfp_id=rfp_id,
            company_id=company_id,
            user_id=identity.user_id,
            notes=notes,
            status=ApprovalStatus.PENDING.value
        )
        db.add(registration)

    try:
        await db.commit()
    except IntegrityError:
        # Another member registered the company concurrently
        await db.rollback()
        existing = await _get_registration(db, rfp_id, company_id)
        return OperationResult.ok(existing, "Company already registered", duplicate=True)

    logger.info(f"Company {company_id} registered interest in RFP {rfp_id}")
    return OperationResult.ok(registration, "Registration submitted")


async def check_registration(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID
) -> dict:
    """Registration state of the requester's primary company for an RFP."""
    company_id = identity.primary_company_id
    if company_id is None:
        return {"has_company": False, "registered": False, "status": "no_company"}

    result = await db.execute(
        select(RfpInterestRegistration).where(
            RfpInterestRegistration.rfp_id == rfp_id,
            RfpInterestRegistration.company_id == company_id
        )
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        return {"has_company": True, "registered": False, "status": None}

    return {
        "has_company": True,
        "registered": True,
        "status": registration.status,
        "registration_id": registration.id,
        "registered_at": registration.created_at,
        "rejection_reason": registration.rejection_reason,
    }


async def _load_pending(
    db: AsyncSession,
    identity: Identity,
    registration_id: uuid.UUID,
    action: str
) -> OperationResult[RfpInterestRegistration]:
    if not identity.is_admin:
        return OperationResult.forbidden(f"Only administrators can {action} company registrations")

    result = await db.execute(
        select(RfpInterestRegistration)
        .where(RfpInterestRegistration.id == registration_id)
        .with_for_update()
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        return OperationResult.not_found("Registration")
    if registration.status != ApprovalStatus.PENDING.value:
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            f"Registration is already {registration.status}"
        )
    return OperationResult.ok(registration)


async def approve_registration(
    db: AsyncSession,
    identity: Identity,
    registration_id: uuid.UUID,
    notes: Optional[str] = None
) -> OperationResult[RfpInterestRegistration]:
    """Approve a pending registration and notify every primary member."""
    loaded = await _load_pending(db, identity, registration_id, "approve")
    if not loaded.success:
        return loaded
    registration = loaded.data

    registration.status = ApprovalStatus.APPROVED.value
    registration.approved_by = identity.user_id
    registration.approved_at = datetime.now(timezone.utc)
    if notes:
        registration.notes = notes

    rfp = await get_rfp(db, registration.rfp_id)
    company = await db.get(Company, registration.company_id)
    recipients = await company_member_ids(db, registration.company_id)
    await db.commit()

    logger.info(f"Registration {registration.id} approved for company {registration.company_id}")
    await dispatch(fan_out(
        recipients,
        "Company Registration Approved",
        f'Your company registration for "{rfp.title}" has been approved. '
        f"You now have access to protected documents.",
        "registration_approved",
        rfp.id
    ))
    return OperationResult.ok(
        registration,
        f"Registration for {company.name if company else 'company'} approved"
    )


async def reject_registration(
    db: AsyncSession,
    identity: Identity,
    registration_id: uuid.UUID,
    reason: str
) -> OperationResult[RfpInterestRegistration]:
    """Reject a pending registration and notify the registrant only."""
    if not reason or not reason.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "A rejection reason is required")

    loaded = await _load_pending(db, identity, registration_id, "reject")
    if not loaded.success:
        return loaded
    registration = loaded.data

    registration.status = ApprovalStatus.REJECTED.value
    registration.rejected_by = identity.user_id
    registration.rejected_at = datetime.now(timezone.utc)
    registration.rejection_reason = reason.strip()

    rfp = await get_rfp(db, registration.rfp_id)
    await db.commit()

    logger.info(f"Registration {registration.id} rejected")
    await dispatch(fan_out(
        [registration.user_id],
        "Company Registration Rejected",
        f'Your company registration for "{rfp.title}" has been rejected. '
        f"Reason: {registration.rejection_reason}",
        "registration_rejected",
        rfp.id
    ))
    return OperationResult.ok(registration, "Company registration rejected")


async def list_registrations(
    db: AsyncSession,
    rfp_id: Optional[uuid.UUID] = None,
    status: Optional[ApprovalStatus] = None
) -> list[RfpInterestRegistration]:
    query = select(RfpInterestRegistration).order_by(RfpInterestRegistration.created_at.desc())
    if rfp_id:
        query = query.where(RfpInterestRegistration.rfp_id == rfp_id)
    if status:
        query = query.where(RfpInterestRegistration.status == status.value)

    result = await db.execute(query)
    return list(result.scalars().all())
