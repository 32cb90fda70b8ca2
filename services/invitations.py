"""
Invitations

Company invitations (token, 7-day default expiry) and RFP invitations
(token, 30-day default expiry). The core only generates tokens and
records pending state; emails go out through the worker queue.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import (
    Company, CompanyInvitation, RFPInvitation, RfpInterestRegistration
)
from schemas.enums import (
    ApprovalStatus, CompanyRole, InvitationStatus, JoinMethod
)
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.audit import log_join_event
from services.email import company_invitation_email, rfp_invitation_email, schedule_email
from services.grants import upsert_access
from services.identity import get_user, get_user_by_email
from services.membership import drop_secondary, lock_user, set_primary, upsert_secondary
from services.notifications import company_member_ids, dispatch, fan_out
from services.rfp_status import ensure_utc
from services.rfps import get_rfp

logger = logging.getLogger("rfp_portal.invitations")


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def _expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    return ensure_utc(expires_at) < (now or datetime.now(timezone.utc))


def _email_matches(identity: Identity, email: str) -> bool:
    return bool(identity.email) and identity.email.lower() == email.lower()


# ============================================================================
# Company invitations
# ============================================================================

async def invite_to_company(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    email: str,
    role: CompanyRole = CompanyRole.MEMBER
) -> OperationResult[CompanyInvitation]:
    """
    Invite an email address to a company.

    Re-inviting the same address refreshes the token and expiry.
    """
    if not identity.can_manage_company(company_id):
        return OperationResult.forbidden("Only company administrators can send invitations")
    if role not in (CompanyRole.ADMIN, CompanyRole.MEMBER):
        return OperationResult.fail(ErrorKind.VALIDATION, "Role must be admin or member")

    email = email.strip().lower()
    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")

    existing_user = await get_user_by_email(db, email)
    if existing_user is not None and existing_user.company_id == company_id:
        return OperationResult.fail(ErrorKind.DUPLICATE, f"{email} is already a member of {company.name}")

    result = await db.execute(
        select(CompanyInvitation).where(
            CompanyInvitation.company_id == company_id,
            CompanyInvitation.email == email
        ).with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        invitation = CompanyInvitation(company_id=company_id, email=email)
        db.add(invitation)

    invitation.inviter_id = identity.user_id
    invitation.role = role.value
    invitation.status = InvitationStatus.PENDING.value
    invitation.token = generate_token()
    invitation.expires_at = datetime.now(timezone.utc) + timedelta(days=settings.company_invitation_days)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return OperationResult.fail(ErrorKind.DUPLICATE, "An invitation for this email was just sent")

    logger.info(f"Company {company_id} invited {email} as {role.value}")
    inviter = identity.email or "A company administrator"
    subject, text = company_invitation_email(
        company.name,
        inviter,
        f"{settings.app_base_url}/company-invitation/{invitation.token}",
        settings.company_invitation_days
    )
    await schedule_email(email, subject, text)
    return OperationResult.ok(invitation, f"Invitation sent to {email}")


async def _load_company_invitation(
    db: AsyncSession,
    identity: Identity,
    token: str
) -> OperationResult[CompanyInvitation]:
    result = await db.execute(
        select(CompanyInvitation).where(CompanyInvitation.token == token).with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        return OperationResult.not_found("Invitation")
    if not _email_matches(identity, invitation.email):
        return OperationResult.forbidden("This invitation was sent to a different email address")
    if invitation.status != InvitationStatus.PENDING.value:
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            f"This invitation has already been {invitation.status}"
        )
    if _expired(invitation.expires_at):
        invitation.status = InvitationStatus.EXPIRED.value
        await db.commit()
        return OperationResult.fail(ErrorKind.INVALID_STATE, "This invitation has expired")
    return OperationResult.ok(invitation)


async def accept_company_invitation(
    db: AsyncSession,
    identity: Identity,
    token: str
) -> OperationResult[CompanyInvitation]:
    """
    Accept a company invitation.

    Users without a primary company become primary members with the
    invited role; users who already have a different primary company
    become collaborators.
    """
    loaded = await _load_company_invitation(db, identity, token)
    if not loaded.success:
        return loaded
    invitation = loaded.data

    user = await lock_user(db, identity.user_id)
    if user is None:
        return OperationResult.not_found("User")
    company = await db.get(Company, invitation.company_id)

    if user.company_id is None or (
        user.company_id == invitation.company_id
        and user.company_role == CompanyRole.PENDING.value
    ):
        from_role = user.company_role
        set_primary(user, invitation.company_id, invitation.role)
        await drop_secondary(db, user.id, invitation.company_id)
        to_role = invitation.role
    elif user.company_id == invitation.company_id:
        from_role = to_role = user.company_role
    else:
        from_role = None
        await upsert_secondary(
            db, user.id, invitation.company_id, JoinMethod.INVITATION, invitation.inviter_id
        )
        to_role = "collaborator"

    invitation.status = InvitationStatus.ACCEPTED.value
    log_join_event(
        db, "joined", user.id, invitation.company_id,
        performed_by=user.id,
        join_method=JoinMethod.INVITATION.value,
        from_role=from_role,
        to_role=to_role,
        details={"invitation_id": str(invitation.id), "invited_by": str(invitation.inviter_id)}
    )
    admins = await company_member_ids(db, invitation.company_id, admins_only=True)
    await db.commit()

    logger.info(f"User {user.id} accepted invitation to company {invitation.company_id} ({to_role})")
    await dispatch(fan_out(
        [a for a in admins if a != user.id],
        "Invitation Accepted",
        f"{user.full_name} has joined {company.name}.",
        "invitation_accepted",
        invitation.company_id
    ))
    return OperationResult.ok(invitation, f"You have joined {company.name}")


async def decline_company_invitation(
    db: AsyncSession,
    identity: Identity,
    token: str
) -> OperationResult[CompanyInvitation]:
    loaded = await _load_company_invitation(db, identity, token)
    if not loaded.success:
        return loaded
    invitation = loaded.data

    invitation.status = InvitationStatus.DECLINED.value
    await db.commit()

    logger.info(f"Invitation {invitation.id} declined")
    return OperationResult.ok(invitation, "Invitation declined")


async def list_company_invitations(db: AsyncSession, company_id: uuid.UUID) -> list[CompanyInvitation]:
    result = await db.execute(
        select(CompanyInvitation)
        .where(CompanyInvitation.company_id == company_id)
        .order_by(CompanyInvitation.created_at.desc())
    )
    return list(result.scalars().all())


# ============================================================================
# RFP invitations
# ============================================================================

async def send_rfp_invitation(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    email: str,
    message: Optional[str] = None
) -> OperationResult[RFPInvitation]:
    """
    Invite a recipient to an RFP. Admins only.

    A still-pending invitation for the same (rfp, email) is refreshed
    rather than duplicated.
    """
    if not identity.is_admin:
        return OperationResult.forbidden("Only administrators can send RFP invitations")

    email = email.strip().lower()
    rfp = await get_rfp(db, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    recipient = await get_user_by_email(db, email)
    result = await db.execute(
        select(RFPInvitation).where(
            RFPInvitation.rfp_id == rfp_id,
            RFPInvitation.recipient_email == email,
            RFPInvitation.status == InvitationStatus.PENDING.value
        ).with_for_update()
    )
    invitation = result.scalars().first()
    if invitation is None:
        invitation = RFPInvitation(rfp_id=rfp_id, recipient_email=email)
        db.add(invitation)

    invitation.invited_by = identity.user_id
    invitation.message = message
    invitation.status = InvitationStatus.PENDING.value
    invitation.token = generate_token()
    invitation.expires_at = datetime.now(timezone.utc) + timedelta(days=settings.rfp_invitation_days)
    if recipient is not None:
        invitation.recipient_user_id = recipient.id
        invitation.recipient_company_id = recipient.company_id
        invitation.invitation_type = "user"
    else:
        invitation.invitation_type = "email"

    await db.commit()

    logger.info(f"RFP {rfp_id} invitation sent to {email}")
    link = f"{settings.app_base_url}/rfp-invitation/{invitation.token}"
    subject, text = rfp_invitation_email(rfp.title, message, link, settings.rfp_invitation_days)
    await schedule_email(email, subject, text)
    if recipient is not None:
        await dispatch(fan_out(
            [recipient.id],
            "RFP Invitation",
            f'You have been invited to participate in "{rfp.title}".',
            "rfp_invitation",
            rfp.id
        ))
    return OperationResult.ok(invitation, f"Invitation sent to {email}")


async def accept_rfp_invitation(
    db: AsyncSession,
    identity: Identity,
    token: str
) -> OperationResult[RFPInvitation]:
    """
    Accept an RFP invitation: grants the user individual access and
    approves their primary company's interest registration.
    """
    result = await db.execute(
        select(RFPInvitation).where(RFPInvitation.token == token).with_for_update()
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        return OperationResult.not_found("Invitation")
    if not _email_matches(identity, invitation.recipient_email):
        return OperationResult.forbidden("This invitation was sent to a different email address")
    if invitation.status != InvitationStatus.PENDING.value:
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            f"This invitation has already been {invitation.status}"
        )
    if _expired(invitation.expires_at):
        invitation.status = InvitationStatus.EXPIRED.value
        await db.commit()
        return OperationResult.fail(ErrorKind.INVALID_STATE, "This invitation has expired")

    user = await get_user(db, identity.user_id)
    if user is None:
        return OperationResult.not_found("User")

    invitation_id = invitation.id
    user_id, rfp_id, invited_by = user.id, invitation.rfp_id, invitation.invited_by
    await upsert_access(db, rfp_id, user_id, ApprovalStatus.APPROVED, invited_by)
    # upsert_access rolls back on a conflicting insert, expiring loaded rows
    invitation = await db.get(RFPInvitation, invitation_id)

    now = datetime.now(timezone.utc)
    invitation.status = InvitationStatus.ACCEPTED.value
    invitation.accepted_at = now
    invitation.recipient_user_id = user_id

    company_id = identity.primary_company_id
    if company_id is not None:
        registration = await db.execute(
            select(RfpInterestRegistration).where(
                RfpInterestRegistration.rfp_id == rfp_id,
                RfpInterestRegistration.company_id == company_id
            ).with_for_update()
        )
        registration = registration.scalar_one_or_none()
        if registration is None:
            registration = RfpInterestRegistration(
                rfp_id=rfp_id,
                company_id=company_id,
                user_id=user_id
            )
            db.add(registration)
        if registration.status != ApprovalStatus.APPROVED.value:
            registration.status = ApprovalStatus.APPROVED.value
            registration.approved_by = invited_by
            registration.approved_at = now
            registration.rejection_reason = None

    await db.commit()

    logger.info(f"User {user_id} accepted RFP invitation {invitation_id}")
    return OperationResult.ok(invitation, "Invitation accepted")


async def list_rfp_invitations(db: AsyncSession, rfp_id: uuid.UUID) -> list[RFPInvitation]:
    result = await db.execute(
        select(RFPInvitation)
        .where(RFPInvitation.rfp_id == rfp_id)
        .order_by(RFPInvitation.created_at.desc())
    )
    return list(result.scalars().all())
