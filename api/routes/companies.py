"""
Companies Router (v1)

Companies, membership (join requests, invitations, leaving, roles),
auto-join, verification and platform-admin assignment.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.enums import AffiliationKind, ApprovalStatus, CompanyRole
from schemas.identity import Identity
from services import autojoin as autojoin_service
from services import companies as company_service
from services import invitations as invitation_service
from services import membership as membership_service
from services.autojoin import AutoJoinLookup
from api.auth.dependencies import get_current_identity, require_admin
from api.middleware.error_handler import AuthorizationError, NotFoundError, raise_for_result
from api.middleware.rate_limit import limiter, LIMIT_INVITE


router = APIRouter(tags=["Companies"])


# ============================================================================
# Request/Response Models
# ============================================================================

class CompanyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    website: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    auto_join_enabled: bool = True
    blocked_domains: List[str] = []


class AdminCompanyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    website: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    verified_domain: Optional[str] = None


class CompanyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    website: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    verification_status: str
    verified_domain: Optional[str] = None
    auto_join_enabled: bool
    blocked_domains: List[str] = []
    created_at: Optional[datetime] = None


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    email: str
    full_name: str
    kind: AffiliationKind
    role: Optional[str] = None


class RoleChange(BaseModel):
    role: CompanyRole


class JoinRequestCreate(BaseModel):
    message: Optional[str] = None


class JoinRequestDecision(BaseModel):
    role: CompanyRole = CompanyRole.MEMBER
    response_message: Optional[str] = None


class JoinRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    user_id: uuid.UUID
    status: str
    message: Optional[str] = None
    response_message: Optional[str] = None
    created_at: Optional[datetime] = None


class InvitationCreate(BaseModel):
    email: EmailStr
    role: CompanyRole = CompanyRole.MEMBER


class InvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    email: str
    role: str
    status: str
    expires_at: datetime
    created_at: Optional[datetime] = None


class AutoJoinSettings(BaseModel):
    """Omit `verified_domain` to leave it unchanged."""
    auto_join_enabled: bool
    blocked_domains: Optional[List[str]] = None
    verified_domain: Optional[str] = None


class VerificationRequest(BaseModel):
    notes: Optional[str] = None


class VerificationRejection(BaseModel):
    reason: str = Field(min_length=1)


class AdminAssignment(BaseModel):
    user_id: uuid.UUID
    role: CompanyRole = CompanyRole.MEMBER
    kind: AffiliationKind = AffiliationKind.PRIMARY


class LeaveResponse(BaseModel):
    success: bool = True
    message: str
    company_id: Optional[uuid.UUID] = None


# ============================================================================
# Companies
# ============================================================================

@router.get("/companies", response_model=List[CompanyResponse])
async def list_companies(
    search: Optional[str] = None,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    return await company_service.list_companies(db, search)


@router.post("/companies", response_model=CompanyResponse, status_code=201)
async def create_company(
    body: CompanyCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Create a company; the caller becomes its admin."""
    result = raise_for_result(await company_service.create_company(
        db,
        identity,
        name=body.name,
        website=body.website,
        industry=body.industry,
        description=body.description,
        auto_join_enabled=body.auto_join_enabled,
        blocked_domains=body.blocked_domains
    ))
    return result.data


@router.get("/companies/autojoin/matches", response_model=AutoJoinLookup)
async def find_autojoin_matches(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Companies the caller could auto-join with their email domain."""
    return await autojoin_service.find_autojoin_companies(db, identity.email or "")


@router.post("/companies/leave", response_model=LeaveResponse)
async def leave_company(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Leave the primary company. Rejected for the sole admin."""
    result = raise_for_result(await membership_service.leave_company(db, identity))
    return LeaveResponse(message=result.message, company_id=result.data)


@router.get("/companies/{company_id}", response_model=CompanyResponse)
async def get_company(
    company_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    company = await company_service.get_company(db, company_id)
    if company is None:
        raise NotFoundError("Company not found")
    return company


@router.post("/companies/{company_id}/autojoin", response_model=CompanyResponse)
async def confirm_autojoin(
    company_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Join one of the matching companies."""
    result = raise_for_result(
        await autojoin_service.auto_join(db, identity.user_id, company_id)
    )
    return result.data


@router.put("/companies/{company_id}/autojoin", response_model=CompanyResponse)
async def update_autojoin_settings(
    company_id: uuid.UUID,
    body: AutoJoinSettings,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    kwargs = {}
    if "verified_domain" in body.model_fields_set:
        kwargs["verified_domain"] = body.verified_domain

    result = raise_for_result(await company_service.update_autojoin_settings(
        db,
        identity,
        company_id,
        auto_join_enabled=body.auto_join_enabled,
        blocked_domains=body.blocked_domains,
        **kwargs
    ))
    return result.data


# ============================================================================
# Verification
# ============================================================================

@router.post("/companies/{company_id}/verification", response_model=CompanyResponse)
async def request_verification(
    company_id: uuid.UUID,
    body: VerificationRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await company_service.request_verification(
        db, identity, company_id, body.notes
    ))
    return result.data


@router.post("/companies/{company_id}/verification/approve", response_model=CompanyResponse)
async def verify_company(
    company_id: uuid.UUID,
    body: VerificationRequest,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await company_service.verify_company(
        db, identity, company_id, body.notes
    ))
    return result.data


@router.post("/companies/{company_id}/verification/reject", response_model=CompanyResponse)
async def reject_verification(
    company_id: uuid.UUID,
    body: VerificationRejection,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await company_service.reject_verification(
        db, identity, company_id, body.reason
    ))
    return result.data


# ============================================================================
# Members
# ============================================================================

@router.get("/companies/{company_id}/members", response_model=List[MemberResponse])
async def list_members(
    company_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Primary members and collaborators. Visible to anyone affiliated."""
    affiliated = (
        identity.primary_company_id == company_id
        or company_id in identity.secondary_company_ids
    )
    if not (identity.is_admin or affiliated):
        raise AuthorizationError("Not a member of this company")

    members = await membership_service.list_members(db, company_id)
    response = [
        MemberResponse(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            kind=AffiliationKind.PRIMARY,
            role=user.company_role
        )
        for user in members["primary"]
    ]
    response.extend(
        MemberResponse(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            kind=AffiliationKind.SECONDARY,
            role=membership.role
        )
        for user, membership in members["secondary"]
    )
    return response


@router.patch("/companies/{company_id}/members/{user_id}", response_model=MemberResponse)
async def change_member_role(
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    body: RoleChange,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Promote or demote a primary member. The last admin cannot be demoted."""
    result = raise_for_result(await membership_service.change_member_role(
        db, identity, company_id, user_id, body.role
    ))
    user = result.data
    return MemberResponse(
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        kind=AffiliationKind.PRIMARY,
        role=user.company_role
    )


@router.delete("/companies/{company_id}/collaboration", response_model=LeaveResponse)
async def leave_collaboration(
    company_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """End a secondary (collaborator) membership."""
    result = raise_for_result(
        await membership_service.leave_collaboration(db, identity, company_id)
    )
    return LeaveResponse(message=result.message, company_id=company_id)


# ============================================================================
# Join requests
# ============================================================================

@router.post("/companies/{company_id}/join-requests", response_model=JoinRequestResponse, status_code=201)
async def request_to_join(
    company_id: uuid.UUID,
    body: JoinRequestCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await membership_service.request_to_join(
        db, identity, company_id, body.message
    ))
    return result.data


@router.get("/companies/{company_id}/join-requests", response_model=List[JoinRequestResponse])
async def list_join_requests(
    company_id: uuid.UUID,
    status: Optional[ApprovalStatus] = ApprovalStatus.PENDING,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    if not identity.can_manage_company(company_id):
        raise AuthorizationError("Only company administrators can view join requests")
    return await membership_service.list_join_requests(db, company_id, status)


@router.post("/join-requests/{request_id}/approve", response_model=JoinRequestResponse)
async def approve_join_request(
    request_id: uuid.UUID,
    body: JoinRequestDecision,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await membership_service.approve_join_request(
        db, identity, request_id, body.role, body.response_message
    ))
    return result.data


@router.post("/join-requests/{request_id}/reject", response_model=JoinRequestResponse)
async def reject_join_request(
    request_id: uuid.UUID,
    body: JoinRequestDecision,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await membership_service.reject_join_request(
        db, identity, request_id, body.response_message
    ))
    return result.data


# ============================================================================
# Invitations
# ============================================================================

@router.post("/companies/{company_id}/invitations", response_model=InvitationResponse, status_code=201)
@limiter.limit(LIMIT_INVITE)
async def invite_to_company(
    request: Request,
    company_id: uuid.UUID,
    body: InvitationCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await invitation_service.invite_to_company(
        db, identity, company_id, body.email, body.role
    ))
    return result.data


@router.get("/companies/{company_id}/invitations", response_model=List[InvitationResponse])
async def list_company_invitations(
    company_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    if not identity.can_manage_company(company_id):
        raise AuthorizationError("Only company administrators can view invitations")
    return await invitation_service.list_company_invitations(db, company_id)


@router.post("/company-invitations/{token}/accept", response_model=InvitationResponse)
async def accept_company_invitation(
    token: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(
        await invitation_service.accept_company_invitation(db, identity, token)
    )
    return result.data


@router.post("/company-invitations/{token}/decline", response_model=InvitationResponse)
async def decline_company_invitation(
    token: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(
        await invitation_service.decline_company_invitation(db, identity, token)
    )
    return result.data


# ============================================================================
# Platform admin
# ============================================================================

@router.post("/admin/companies", response_model=CompanyResponse, status_code=201)
async def admin_create_company(
    body: AdminCompanyCreate,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await company_service.admin_create_company(
        db,
        identity,
        name=body.name,
        website=body.website,
        industry=body.industry,
        description=body.description,
        verified_domain=body.verified_domain
    ))
    return result.data


@router.post("/admin/companies/{company_id}/members", response_model=MemberResponse)
async def admin_assign(
    company_id: uuid.UUID,
    body: AdminAssignment,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Assign a user to a company as primary member/admin or collaborator."""
    result = raise_for_result(await membership_service.admin_assign(
        db, identity, body.user_id, company_id, body.role, body.kind
    ))
    user = result.data
    return MemberResponse(
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        kind=body.kind,
        role=user.company_role if body.kind == AffiliationKind.PRIMARY else "collaborator"
    )


@router.delete("/admin/companies/{company_id}/members/{user_id}", response_model=LeaveResponse)
async def admin_remove(
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    kind: AffiliationKind = AffiliationKind.PRIMARY,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await membership_service.admin_remove(
        db, identity, user_id, company_id, kind
    ))
    return LeaveResponse(message=result.message, company_id=company_id)
