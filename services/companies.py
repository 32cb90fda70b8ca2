"""
Company Service

Company creation, the verification workflow and auto-join settings.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Company
from schemas.enums import CompanyRole, JoinMethod, VerificationStatus
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.audit import log_join_event
from services.autojoin import email_domain, is_corporate_domain
from services.membership import lock_user, set_primary
from services.notifications import company_member_ids, dispatch, fan_out, platform_admin_ids

logger = logging.getLogger("rfp_portal.companies")

_UNSET = object()


async def get_company(db: AsyncSession, company_id: uuid.UUID) -> Optional[Company]:
    return await db.get(Company, company_id)


async def list_companies(db: AsyncSession, search: Optional[str] = None) -> list[Company]:
    query = select(Company).order_by(Company.name)
    if search:
        query = query.where(func.lower(Company.name).contains(search.lower()))
    result = await db.execute(query)
    return list(result.scalars().all())


async def _domain_auto_joined_elsewhere(
    db: AsyncSession,
    domain: str,
    company_id: Optional[uuid.UUID] = None
) -> bool:
    """Whether another company already auto-joins on this domain."""
    query = select(Company.id).where(
        func.lower(Company.verified_domain) == domain.lower(),
        Company.auto_join_enabled.is_(True)
    )
    if company_id is not None:
        query = query.where(Company.id != company_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def _domain_verified_elsewhere(db: AsyncSession, domain: str) -> bool:
    result = await db.execute(
        select(Company.id).where(func.lower(Company.verified_domain) == domain.lower()).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def create_company(
    db: AsyncSession,
    identity: Identity,
    name: str,
    website: Optional[str] = None,
    industry: Optional[str] = None,
    description: Optional[str] = None,
    auto_join_enabled: bool = True,
    blocked_domains: Optional[list[str]] = None
) -> OperationResult[Company]:
    """
    Create a company with the requester as its primary admin.

    The creator's corporate email domain becomes the verified domain
    unless another company already holds it; auto-join stays off
    otherwise.
    """
    if not name or not name.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Company name is required")

    user = await lock_user(db, identity.user_id)
    if user is None:
        return OperationResult.not_found("User")
    if user.company_id is not None:
        return OperationResult.fail(
            ErrorKind.INVARIANT_VIOLATION,
            "You already belong to a company. Please leave your current company first."
        )

    domain = email_domain(user.email)
    corporate = is_corporate_domain(domain)
    claim_domain = corporate and not await _domain_verified_elsewhere(db, domain)

    company = Company(
        name=name.strip(),
        website=website,
        industry=industry,
        description=description,
        created_by=user.id,
        email_domain=domain,
        verified_domain=domain if claim_domain else None,
        auto_join_enabled=bool(auto_join_enabled and claim_domain),
        blocked_domains=[d.lower() for d in (blocked_domains or [])],
        verification_status=VerificationStatus.UNVERIFIED.value
    )
    db.add(company)
    await db.flush()

    set_primary(user, company.id, CompanyRole.ADMIN.value)
    log_join_event(
        db, "joined", user.id, company.id,
        performed_by=user.id,
        join_method=JoinMethod.ADMIN_ACTION.value,
        to_role=CompanyRole.ADMIN.value,
        details={
            "company_created": True,
            "auto_join_enabled": company.auto_join_enabled,
            "verified_domain": company.verified_domain,
            "is_corporate_domain": corporate,
        }
    )
    await db.commit()

    logger.info(f"Company {company.id} created by user {user.id} (auto_join={company.auto_join_enabled})")
    return OperationResult.ok(
        company,
        "Company created successfully. You are now the company administrator."
    )


async def admin_create_company(
    db: AsyncSession,
    identity: Identity,
    name: str,
    website: Optional[str] = None,
    industry: Optional[str] = None,
    description: Optional[str] = None,
    verified_domain: Optional[str] = None
) -> OperationResult[Company]:
    """Create a company without affiliating the creating platform admin."""
    if not identity.is_admin:
        return OperationResult.forbidden("Only administrators can create companies directly")
    if not name or not name.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Company name is required")
    if verified_domain and not is_corporate_domain(verified_domain.lower()):
        return OperationResult.fail(ErrorKind.VALIDATION, "Consumer email domains cannot be verified")

    company = Company(
        name=name.strip(),
        website=website,
        industry=industry,
        description=description,
        created_by=identity.user_id,
        verified_domain=verified_domain.lower() if verified_domain else None,
        auto_join_enabled=False,
        blocked_domains=[]
    )
    db.add(company)
    await db.commit()

    logger.info(f"Company {company.id} created by admin {identity.user_id}")
    return OperationResult.ok(company, "Company created")


# ============================================================================
# Verification workflow
# ============================================================================

async def request_verification(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    notes: Optional[str] = None
) -> OperationResult[Company]:
    if not identity.is_company_admin(company_id):
        return OperationResult.forbidden("Only company administrators can request verification")

    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")
    if company.verification_status not in (
        VerificationStatus.UNVERIFIED.value, VerificationStatus.REJECTED.value
    ):
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            f"Company verification is already {company.verification_status}"
        )

    company.verification_status = VerificationStatus.PENDING.value
    company.verification_requested_at = datetime.now(timezone.utc)
    company.verification_notes = notes
    admins = await platform_admin_ids(db)
    await db.commit()

    logger.info(f"Verification requested for company {company.id}")
    await dispatch(fan_out(
        admins,
        "Company Verification Requested",
        f"{company.name} has requested verification.",
        "verification_requested",
        company.id
    ))
    return OperationResult.ok(company, "Verification requested")


async def _decide_verification(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    status: VerificationStatus,
    notes: Optional[str]
) -> OperationResult[Company]:
    if not identity.is_admin:
        return OperationResult.forbidden("Only administrators can decide company verification")

    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")
    if company.verification_status == status.value:
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            f"Company is already {status.value}"
        )

    company.verification_status = status.value
    company.verification_notes = notes
    company.verified_by = identity.user_id
    company.verified_at = datetime.now(timezone.utc) if status == VerificationStatus.VERIFIED else None
    recipients = await company_member_ids(db, company.id, admins_only=True)
    await db.commit()

    logger.info(f"Company {company.id} verification -> {status.value}")
    if status == VerificationStatus.VERIFIED:
        event = ("Company Verified", f"{company.name} has been verified.", "company_verified")
    else:
        event = (
            "Company Verification Rejected",
            f"Verification for {company.name} was rejected. Reason: {notes}",
            "company_verification_rejected"
        )
    await dispatch(fan_out(recipients, *event, reference_id=company.id))
    return OperationResult.ok(company, f"Company {status.value}")


async def verify_company(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    notes: Optional[str] = None
) -> OperationResult[Company]:
    return await _decide_verification(db, identity, company_id, VerificationStatus.VERIFIED, notes)


async def reject_verification(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    reason: str
) -> OperationResult[Company]:
    if not reason or not reason.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "A rejection reason is required")
    return await _decide_verification(
        db, identity, company_id, VerificationStatus.REJECTED, reason.strip()
    )


# ============================================================================
# Auto-join settings
# ============================================================================

async def update_autojoin_settings(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    auto_join_enabled: bool,
    blocked_domains: Optional[list[str]] = None,
    verified_domain=_UNSET
) -> OperationResult[Company]:
    """
    Toggle auto-join and edit blocked domains.

    Only platform admins may change the verified domain, or enable
    auto-join on a domain another company already auto-joins on.
    """
    if not identity.can_manage_company(company_id):
        return OperationResult.forbidden("Only company administrators can update auto-join settings")

    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")

    domain = company.verified_domain
    if verified_domain is not _UNSET:
        if not identity.is_admin:
            return OperationResult.forbidden("Only platform administrators can change the verified domain")
        domain = verified_domain.strip().lower() if verified_domain else None
        if domain and not is_corporate_domain(domain):
            return OperationResult.fail(
                ErrorKind.VALIDATION,
                "Consumer email domains cannot be verified"
            )

    if auto_join_enabled:
        if not domain:
            return OperationResult.fail(
                ErrorKind.VALIDATION,
                "A verified domain is required to enable auto-join"
            )
        if not identity.is_admin and await _domain_auto_joined_elsewhere(db, domain, company.id):
            return OperationResult.forbidden(
                "Another company already auto-joins on this domain; a platform administrator must enable it"
            )

    company.verified_domain = domain
    company.auto_join_enabled = auto_join_enabled
    if blocked_domains is not None:
        company.blocked_domains = sorted({d.strip().lower() for d in blocked_domains if d.strip()})

    log_join_event(
        db, "settings_updated", identity.user_id, company.id,
        performed_by=identity.user_id,
        details={
            "auto_join_enabled": auto_join_enabled,
            "blocked_domains": company.blocked_domains,
            "verified_domain": domain,
        }
    )
    await db.commit()

    logger.info(f"Auto-join settings updated for company {company.id}: enabled={auto_join_enabled}")
    return OperationResult.ok(company, "Auto-join settings updated")
