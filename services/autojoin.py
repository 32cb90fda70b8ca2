"""
Auto-Join Engine

Domain-based automatic primary membership at signup. Consumer mail
domains never match. A single match joins immediately; several matches
are returned for the user to choose from.
"""

import logging
import uuid
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import Company, User
from schemas.enums import CompanyRole, JoinMethod
from schemas.results import ErrorKind, OperationResult
from services.audit import log_join_event
from services.membership import drop_secondary, lock_user, set_primary
from services.notifications import company_member_ids, dispatch, fan_out

logger = logging.getLogger("rfp_portal.autojoin")


class AutoJoinMatch(BaseModel):
    """A company the user could auto-join."""
    id: uuid.UUID
    name: str
    industry: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    verified_domain: Optional[str] = None
    member_count: int = 0


class AutoJoinLookup(BaseModel):
    domain: Optional[str] = None
    is_corporate: bool = False
    reason: Optional[str] = None
    matches: list[AutoJoinMatch] = Field(default_factory=list)


class SignupCheck(BaseModel):
    lookup: AutoJoinLookup
    auto_joined: bool = False
    company_id: Optional[uuid.UUID] = None


def email_domain(email: str) -> Optional[str]:
    """Lower-cased domain part of an address, or None if there is none."""
    if not email or "@" not in email:
        return None
    domain = email.rsplit("@", 1)[1].strip().lower()
    return domain or None


def is_corporate_domain(domain: Optional[str]) -> bool:
    return bool(domain) and domain not in settings.consumer_domains


def _blocked(company: Company, domain: str) -> bool:
    return domain in {d.strip().lower() for d in (company.blocked_domains or [])}


async def find_autojoin_companies(db: AsyncSession, email: str) -> AutoJoinLookup:
    """Companies with auto-join enabled whose verified domain matches the email."""
    domain = email_domain(email)
    if domain is None:
        return AutoJoinLookup(reason="invalid_email")
    if not is_corporate_domain(domain):
        return AutoJoinLookup(domain=domain, reason="consumer_domain")

    result = await db.execute(
        select(Company).where(
            Company.auto_join_enabled.is_(True),
            func.lower(Company.verified_domain) == domain
        ).order_by(Company.name)
    )
    companies = [c for c in result.scalars().all() if not _blocked(c, domain)]

    counts = {}
    if companies:
        rows = await db.execute(
            select(User.company_id, func.count(User.id))
            .where(User.company_id.in_([c.id for c in companies]))
            .group_by(User.company_id)
        )
        counts = dict(rows.all())

    return AutoJoinLookup(
        domain=domain,
        is_corporate=True,
        matches=[
            AutoJoinMatch(
                id=c.id,
                name=c.name,
                industry=c.industry,
                website=c.website,
                description=c.description,
                verified_domain=c.verified_domain,
                member_count=counts.get(c.id, 0)
            )
            for c in companies
        ]
    )


async def auto_join(
    db: AsyncSession,
    user_id: uuid.UUID,
    company_id: uuid.UUID
) -> OperationResult[Company]:
    """
    Join a company by domain match.

    Idempotent: joining a company the user already belongs to is a
    duplicate no-op.
    """
    user = await lock_user(db, user_id)
    if user is None:
        return OperationResult.not_found("User")

    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")

    if user.company_id == company_id:
        return OperationResult.ok(company, f"Already a member of {company.name}", duplicate=True)
    if user.company_id is not None:
        return OperationResult.fail(
            ErrorKind.INVARIANT_VIOLATION,
            "You already belong to a company. Please leave your current company first."
        )

    domain = email_domain(user.email)
    if not is_corporate_domain(domain):
        return OperationResult.fail(
            ErrorKind.FORBIDDEN,
            "Auto-join is not available for consumer email domains"
        )
    if not company.auto_join_enabled:
        return OperationResult.fail(ErrorKind.FORBIDDEN, "Auto-join is disabled for this company")
    if (company.verified_domain or "").lower() != domain:
        return OperationResult.fail(
            ErrorKind.FORBIDDEN,
            "Email domain does not match company domain"
        )
    if _blocked(company, domain):
        return OperationResult.fail(
            ErrorKind.FORBIDDEN,
            "This email domain is blocked from auto-joining"
        )

    set_primary(user, company.id, CompanyRole.MEMBER.value)
    await drop_secondary(db, user.id, company.id)
    log_join_event(
        db, "auto_joined", user.id, company.id,
        performed_by=user.id,
        join_method=JoinMethod.AUTO_DOMAIN.value,
        to_role=CompanyRole.MEMBER.value,
        details={"email_domain": domain, "verified_domain": company.verified_domain}
    )
    admins = await company_member_ids(db, company.id, admins_only=True)
    user_label = f"{user.full_name} ({user.email})"
    await db.commit()

    logger.info(f"User {user.id} auto-joined company {company.id} via {domain}")
    await dispatch(fan_out(
        [a for a in admins if a != user.id],
        "New Team Member Auto-Joined",
        f"{user_label} has automatically joined {company.name} via domain matching.",
        "auto_join_notification",
        company.id
    ))
    return OperationResult.ok(company, f"Successfully auto-joined {company.name}")


async def check_signup(db: AsyncSession, user_id: uuid.UUID, email: str) -> SignupCheck:
    """Run at signup: auto-join when exactly one company matches."""
    lookup = await find_autojoin_companies(db, email)
    check = SignupCheck(lookup=lookup)

    if len(lookup.matches) != 1:
        if len(lookup.matches) > 1:
            logger.info(f"User {user_id}: {len(lookup.matches)} auto-join candidates, awaiting choice")
        return check

    result = await auto_join(db, user_id, lookup.matches[0].id)
    if result.success:
        check.auto_joined = True
        check.company_id = lookup.matches[0].id
    else:
        logger.info(f"Auto-join skipped for user {user_id}: {result.message}")
    return check
