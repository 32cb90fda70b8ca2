"""
Company Membership

Primary affiliation lives on the user row (company_id, company_role);
secondary collaborator memberships live in company_memberships. Every
change to a user's primary affiliation locks that user's row first.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User, Company, CompanyMembership, CompanyJoinRequest
from schemas.enums import (
    AffiliationKind, ApprovalStatus, CompanyRole, JoinMethod, MembershipStatus
)
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.audit import log_join_event
from services.notifications import company_member_ids, dispatch, fan_out

logger = logging.getLogger("rfp_portal.membership")

ASSIGNABLE_ROLES = (CompanyRole.ADMIN.value, CompanyRole.MEMBER.value)


async def lock_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    """Load a user row with FOR UPDATE so affiliation changes serialize."""
    result = await db.execute(
        select(User).where(User.id == user_id).with_for_update()
    )
    return result.scalar_one_or_none()


async def count_company_admins(db: AsyncSession, company_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(User.id)).where(
            User.company_id == company_id,
            User.company_role == CompanyRole.ADMIN.value
        )
    )
    return result.scalar_one()


async def _is_sole_admin(db: AsyncSession, user: User) -> bool:
    if user.company_id is None or user.company_role != CompanyRole.ADMIN.value:
        return False
    return await count_company_admins(db, user.company_id) <= 1


SOLE_ADMIN_MESSAGE = (
    "You are the last administrator of this company. Please transfer admin "
    "rights to another member or delete the company."
)


def set_primary(user: User, company_id: Optional[uuid.UUID], role: Optional[str]) -> None:
    user.company_id = company_id
    user.company_role = role


async def drop_secondary(db: AsyncSession, user_id: uuid.UUID, company_id: uuid.UUID) -> None:
    """A primary affiliation supersedes a collaborator membership on the same company."""
    await db.execute(
        delete(CompanyMembership).where(
            CompanyMembership.user_id == user_id,
            CompanyMembership.company_id == company_id
        )
    )


# ============================================================================
# Join requests
# ============================================================================

async def request_to_join(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    message: Optional[str] = None
) -> OperationResult[CompanyJoinRequest]:
    """Ask to join a company as a primary member."""
    if not identity.is_authenticated:
        return OperationResult.forbidden("Authentication required")

    user = await lock_user(db, identity.user_id)
    if user is None:
        return OperationResult.not_found("User")
    if user.company_id is not None:
        return OperationResult.fail(
            ErrorKind.INVARIANT_VIOLATION,
            "You already belong to a company. Please leave your current company first."
        )

    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")

    existing = await db.execute(
        select(CompanyJoinRequest.id).where(
            CompanyJoinRequest.company_id == company_id,
            CompanyJoinRequest.user_id == user.id,
            CompanyJoinRequest.status == ApprovalStatus.PENDING.value
        )
    )
    if existing.scalar_one_or_none() is not None:
        return OperationResult.fail(
            ErrorKind.DUPLICATE,
            "You already have a pending request to join this company."
        )

    request = CompanyJoinRequest(
        company_id=company_id,
        user_id=user.id,
        message=message,
        status=ApprovalStatus.PENDING.value
    )
    db.add(request)
    requester = user.full_name
    company_name = company.name
    admins = await company_member_ids(db, company_id, admins_only=True)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return OperationResult.fail(
            ErrorKind.DUPLICATE,
            "You already have a pending request to join this company."
        )

    logger.info(f"User {identity.user_id} requested to join company {company_id}")
    await dispatch(fan_out(
        admins,
        "Join Request",
        f"{requester} has requested to join {company_name}",
        "join_request",
        request.id
    ))
    return OperationResult.ok(request, f"Your request to join {company_name} has been submitted.")


async def _load_request_for_admin(
    db: AsyncSession,
    identity: Identity,
    request_id: uuid.UUID,
    action: str
) -> OperationResult[CompanyJoinRequest]:
    result = await db.execute(
        select(CompanyJoinRequest)
        .where(CompanyJoinRequest.id == request_id)
        .with_for_update()
    )
    request = result.scalar_one_or_none()
    if request is None:
        return OperationResult.not_found("Request")
    if not identity.can_manage_company(request.company_id):
        return OperationResult.forbidden(f"Only company administrators can {action} join requests.")
    if request.status != ApprovalStatus.PENDING.value:
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            f"This request has already been {request.status}."
        )
    return OperationResult.ok(request)


async def approve_join_request(
    db: AsyncSession,
    identity: Identity,
    request_id: uuid.UUID,
    role: CompanyRole = CompanyRole.MEMBER,
    response_message: Optional[str] = None
) -> OperationResult[CompanyJoinRequest]:
    if role.value not in ASSIGNABLE_ROLES:
        return OperationResult.fail(ErrorKind.VALIDATION, "Role must be admin or member")

    loaded = await _load_request_for_admin(db, identity, request_id, "approve")
    if not loaded.success:
        return loaded
    request = loaded.data

    user = await lock_user(db, request.user_id)
    if user is None:
        return OperationResult.not_found("User")
    if user.company_id is not None:
        return OperationResult.fail(
            ErrorKind.INVARIANT_VIOLATION,
            "The user already belongs to a company."
        )

    company = await db.get(Company, request.company_id)
    request.status = ApprovalStatus.APPROVED.value
    request.response_message = response_message
    request.responded_by = identity.user_id
    set_primary(user, request.company_id, role.value)
    await drop_secondary(db, user.id, request.company_id)
    log_join_event(
        db, "joined", user.id, request.company_id,
        performed_by=identity.user_id,
        join_method=JoinMethod.MANUAL_REQUEST.value,
        to_role=role.value,
        details={"request_id": str(request.id)}
    )
    await db.commit()

    logger.info(f"Join request {request.id} approved: user {user.id} joined {company.id} as {role.value}")
    await dispatch(fan_out(
        [user.id],
        "Join Request Approved",
        f"Your request to join {company.name} has been approved.",
        "join_request_approved",
        request.id
    ))
    return OperationResult.ok(
        request,
        f"Join request approved. {user.full_name} has been added to your company."
    )


async def reject_join_request(
    db: AsyncSession,
    identity: Identity,
    request_id: uuid.UUID,
    response_message: Optional[str] = None
) -> OperationResult[CompanyJoinRequest]:
    loaded = await _load_request_for_admin(db, identity, request_id, "reject")
    if not loaded.success:
        return loaded
    request = loaded.data

    company = await db.get(Company, request.company_id)
    request.status = ApprovalStatus.REJECTED.value
    request.response_message = response_message
    request.responded_by = identity.user_id
    await db.commit()

    logger.info(f"Join request {request.id} rejected")
    message = f"Your request to join {company.name} has been rejected."
    if response_message:
        message += f" Reason: {response_message}"
    await dispatch(fan_out(
        [request.user_id],
        "Join Request Rejected",
        message,
        "join_request_rejected",
        request.id
    ))
    return OperationResult.ok(request, "Join request rejected.")


async def list_join_requests(
    db: AsyncSession,
    company_id: uuid.UUID,
    status: Optional[ApprovalStatus] = ApprovalStatus.PENDING
) -> list[CompanyJoinRequest]:
    query = (
        select(CompanyJoinRequest)
        .where(CompanyJoinRequest.company_id == company_id)
        .order_by(CompanyJoinRequest.created_at.desc())
    )
    if status:
        query = query.where(CompanyJoinRequest.status == status.value)
    result = await db.execute(query)
    return list(result.scalars().all())


# ============================================================================
# Leaving and role changes
# ============================================================================

async def leave_company(db: AsyncSession, identity: Identity) -> OperationResult[uuid.UUID]:
    """Leave the primary company. The sole admin may not leave."""
    if not identity.is_authenticated:
        return OperationResult.forbidden("Authentication required")

    user = await lock_user(db, identity.user_id)
    if user is None:
        return OperationResult.not_found("User")
    if user.company_id is None:
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            "You are not currently associated with any company."
        )
    if await _is_sole_admin(db, user):
        return OperationResult.fail(ErrorKind.INVARIANT_VIOLATION, SOLE_ADMIN_MESSAGE)

    company_id = user.company_id
    from_role = user.company_role
    company = await db.get(Company, company_id)
    set_primary(user, None, None)
    log_join_event(
        db, "left", user.id, company_id,
        performed_by=user.id,
        from_role=from_role
    )
    await db.commit()

    logger.info(f"User {user.id} left company {company_id}")
    return OperationResult.ok(company_id, f"You have left {company.name}.")


async def leave_collaboration(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID
) -> OperationResult[CompanyMembership]:
    """Deactivate the requester's collaborator membership on a company."""
    result = await db.execute(
        select(CompanyMembership).where(
            CompanyMembership.user_id == identity.user_id,
            CompanyMembership.company_id == company_id,
            CompanyMembership.status == MembershipStatus.ACTIVE.value
        )
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        return OperationResult.not_found("Membership")

    membership.status = MembershipStatus.INACTIVE.value
    log_join_event(db, "left", identity.user_id, company_id, performed_by=identity.user_id,
                   from_role="collaborator")
    await db.commit()

    logger.info(f"User {identity.user_id} left collaboration with company {company_id}")
    return OperationResult.ok(membership, "Collaboration ended.")


async def change_member_role(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    role: CompanyRole
) -> OperationResult[User]:
    """
    Set a primary member's company role.

    Also used to confirm `pending` members. Demoting the sole admin is
    rejected.
    """
    if not identity.can_manage_company(company_id):
        return OperationResult.forbidden("Only company administrators can change member roles")
    if role.value not in ASSIGNABLE_ROLES:
        return OperationResult.fail(ErrorKind.VALIDATION, "Role must be admin or member")

    user = await lock_user(db, user_id)
    if user is None or user.company_id != company_id:
        return OperationResult.not_found("Member")
    if user.company_role == role.value:
        return OperationResult.ok(user, "Role unchanged", duplicate=True)
    if role != CompanyRole.ADMIN and await _is_sole_admin(db, user):
        return OperationResult.fail(ErrorKind.INVARIANT_VIOLATION, SOLE_ADMIN_MESSAGE)

    from_role = user.company_role
    user.company_role = role.value
    log_join_event(
        db, "role_changed", user.id, company_id,
        performed_by=identity.user_id,
        from_role=from_role,
        to_role=role.value
    )
    await db.commit()

    logger.info(f"User {user.id} role in company {company_id}: {from_role} -> {role.value}")
    return OperationResult.ok(user, "Member role updated")


async def list_members(db: AsyncSession, company_id: uuid.UUID) -> dict:
    """Primary members and active collaborators of a company."""
    primary = await db.execute(
        select(User).where(User.company_id == company_id).order_by(User.email)
    )
    secondary = await db.execute(
        select(User, CompanyMembership)
        .join(CompanyMembership, CompanyMembership.user_id == User.id)
        .where(
            CompanyMembership.company_id == company_id,
            CompanyMembership.status == MembershipStatus.ACTIVE.value
        )
        .order_by(User.email)
    )
    return {
        "primary": list(primary.scalars().all()),
        "secondary": [(user, membership) for user, membership in secondary.all()],
    }


# ============================================================================
# Platform admin assignment
# ============================================================================

async def upsert_secondary(
    db: AsyncSession,
    user_id: uuid.UUID,
    company_id: uuid.UUID,
    joined_via: JoinMethod,
    invited_by: Optional[uuid.UUID]
) -> CompanyMembership:
    result = await db.execute(
        select(CompanyMembership).where(
            CompanyMembership.user_id == user_id,
            CompanyMembership.company_id == company_id
        )
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        membership = CompanyMembership(user_id=user_id, company_id=company_id)
        db.add(membership)
    membership.role = "collaborator"
    membership.status = MembershipStatus.ACTIVE.value
    membership.joined_via = joined_via.value
    membership.invited_by = invited_by
    return membership


async def admin_assign(
    db: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
    company_id: uuid.UUID,
    role: CompanyRole = CompanyRole.MEMBER,
    kind: AffiliationKind = AffiliationKind.PRIMARY
) -> OperationResult[User]:
    """Assign a user to a company directly, bypassing requests. Platform admins only."""
    if not identity.is_admin:
        return OperationResult.forbidden("Only administrators can assign users to companies")
    if kind == AffiliationKind.PENDING:
        return OperationResult.fail(ErrorKind.VALIDATION, "Assign as primary or secondary")
    if kind == AffiliationKind.PRIMARY and role.value not in ASSIGNABLE_ROLES:
        return OperationResult.fail(ErrorKind.VALIDATION, "Role must be admin or member")

    user = await lock_user(db, user_id)
    if user is None:
        return OperationResult.not_found("User")
    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")

    if kind == AffiliationKind.PRIMARY:
        if user.company_id not in (None, company_id) and await _is_sole_admin(db, user):
            return OperationResult.fail(ErrorKind.INVARIANT_VIOLATION, SOLE_ADMIN_MESSAGE)
        if (
            user.company_id == company_id
            and role != CompanyRole.ADMIN
            and await _is_sole_admin(db, user)
        ):
            return OperationResult.fail(ErrorKind.INVARIANT_VIOLATION, SOLE_ADMIN_MESSAGE)
        from_role = user.company_role if user.company_id == company_id else None
        set_primary(user, company_id, role.value)
        await drop_secondary(db, user.id, company_id)
        role_label = role.value
    else:
        if user.company_id == company_id:
            return OperationResult.fail(
                ErrorKind.INVARIANT_VIOLATION,
                "User is already a primary member of this company"
            )
        from_role = None
        await upsert_secondary(db, user.id, company_id, JoinMethod.ADMIN_ADDED, identity.user_id)
        role_label = "collaborator"

    log_join_event(
        db, "admin_assigned", user.id, company_id,
        performed_by=identity.user_id,
        join_method=JoinMethod.ADMIN_ADDED.value,
        from_role=from_role,
        to_role=role_label,
        details={"membership_type": kind.value}
    )
    await db.commit()

    logger.info(f"Admin {identity.user_id} assigned user {user.id} to {company_id} ({kind.value}, {role_label})")
    await dispatch(fan_out(
        [user.id],
        "Company Assignment",
        f"You have been assigned to {company.name} as a {role_label} by an administrator.",
        "admin_company_assignment",
        company_id
    ))
    return OperationResult.ok(user, f"{user.full_name} assigned to {company.name}")


async def admin_remove(
    db: AsyncSession,
    identity: Identity,
    user_id: uuid.UUID,
    company_id: uuid.UUID,
    kind: AffiliationKind = AffiliationKind.PRIMARY
) -> OperationResult[User]:
    """Remove a primary or secondary affiliation. Platform admins only."""
    if not identity.is_admin:
        return OperationResult.forbidden("Only administrators can remove users from companies")

    user = await lock_user(db, user_id)
    if user is None:
        return OperationResult.not_found("User")

    if kind == AffiliationKind.PRIMARY:
        if user.company_id != company_id:
            return OperationResult.not_found("Membership")
        if await _is_sole_admin(db, user):
            return OperationResult.fail(ErrorKind.INVARIANT_VIOLATION, SOLE_ADMIN_MESSAGE)
        from_role = user.company_role
        set_primary(user, None, None)
    else:
        result = await db.execute(
            delete(CompanyMembership).where(
                CompanyMembership.user_id == user_id,
                CompanyMembership.company_id == company_id
            )
        )
        if not result.rowcount:
            return OperationResult.not_found("Membership")
        from_role = "collaborator"

    log_join_event(
        db, "admin_removed", user.id, company_id,
        performed_by=identity.user_id,
        from_role=from_role,
        details={"removed_by_admin": True, "membership_type": kind.value}
    )
    await db.commit()

    logger.info(f"Admin {identity.user_id} removed user {user.id} from {company_id} ({kind.value})")
    return OperationResult.ok(user, "User removed from company")
