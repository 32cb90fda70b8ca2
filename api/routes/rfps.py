"""
RFPs Router (v1)

RFP listing with derived status, admin RFP management, per-RFP document
lists with access decisions, individual access grants and RFP
invitations.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, UploadFile, File, Form, Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from database.models import RFP
from schemas.access import AccessReason
from schemas.enums import ApprovalStatus, RFPStatus, Visibility
from schemas.identity import Identity
from services import documents as document_service
from services import grants as grant_service
from services import invitations as invitation_service
from services import rfps as rfp_service
from services.rfp_status import rfp_effective_status, is_open_for_submissions
from services.storage import get_storage
from api.auth.dependencies import get_optional_identity, get_current_identity, require_admin
from api.middleware.error_handler import NotFoundError, ValidationError, raise_for_result
from api.middleware.rate_limit import limiter, LIMIT_UPLOAD, LIMIT_INVITE


router = APIRouter(prefix="/rfps", tags=["RFPs"])

ALLOWED_EXTENSIONS = {"pdf", "docx", "doc", "xlsx", "xls", "zip", "txt"}


# ============================================================================
# Request/Response Models
# ============================================================================

class RFPCreate(BaseModel):
    """Create an RFP."""
    title: str = Field(min_length=1, max_length=500)
    closing_date: datetime
    client_name: Optional[str] = None
    description: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC
    status: RFPStatus = RFPStatus.DRAFT
    categories: List[str] = []


NON_NULLABLE_UPDATE_FIELDS = ("title", "closing_date", "visibility", "status", "categories")


class RFPUpdate(BaseModel):
    """Partial RFP update; omitted fields are left unchanged."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    closing_date: Optional[datetime] = None
    client_name: Optional[str] = None
    description: Optional[str] = None
    visibility: Optional[Visibility] = None
    status: Optional[RFPStatus] = None
    categories: Optional[List[str]] = None


class RFPResponse(BaseModel):
    """RFP with its stored and effective status."""
    id: uuid.UUID
    title: str
    client_name: Optional[str] = None
    description: Optional[str] = None
    visibility: str
    status: str
    effective_status: str
    open_for_submissions: bool
    closing_date: datetime
    categories: List[str] = []
    created_at: Optional[datetime] = None

    @classmethod
    def from_rfp(cls, rfp: RFP) -> "RFPResponse":
        return cls(
            id=rfp.id,
            title=rfp.title,
            client_name=rfp.client_name,
            description=rfp.description,
            visibility=rfp.visibility,
            status=rfp.status,
            effective_status=rfp_effective_status(rfp).value,
            open_for_submissions=is_open_for_submissions(rfp),
            closing_date=rfp.closing_date,
            categories=rfp.categories or [],
            created_at=rfp.created_at
        )


class DocumentResponse(BaseModel):
    """Document metadata with the caller's access decision."""
    id: uuid.UUID
    rfp_id: uuid.UUID
    title: str
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    requires_nda: bool
    requires_approval: bool
    can_access: bool
    reason: AccessReason


class AccessGrantRequest(BaseModel):
    user_id: uuid.UUID
    status: ApprovalStatus = ApprovalStatus.APPROVED


class AccessGrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rfp_id: uuid.UUID
    user_id: uuid.UUID
    status: str
    granted_by: Optional[uuid.UUID] = None
    updated_at: Optional[datetime] = None


class RFPInvitationCreate(BaseModel):
    email: EmailStr
    message: Optional[str] = None


class RFPInvitationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rfp_id: uuid.UUID
    recipient_email: str
    recipient_user_id: Optional[uuid.UUID] = None
    recipient_company_id: Optional[uuid.UUID] = None
    invitation_type: str
    status: str
    message: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None


# ============================================================================
# RFPs
# ============================================================================

@router.get("", response_model=List[RFPResponse])
async def list_rfps(
    status: Optional[RFPStatus] = None,
    open_only: bool = False,
    identity: Identity = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    List RFPs visible to the caller.

    `open_only` keeps only RFPs whose effective status is active, so an
    RFP past its closing date is never offered for new submissions.
    """
    rfps = await rfp_service.list_visible_rfps(
        db, identity, status.value if status else None
    )
    if open_only:
        rfps = [rfp for rfp in rfps if is_open_for_submissions(rfp)]
    return [RFPResponse.from_rfp(rfp) for rfp in rfps]


@router.get("/{rfp_id}", response_model=RFPResponse)
async def get_rfp(
    rfp_id: uuid.UUID,
    identity: Identity = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """Get one RFP. Hidden RFPs are reported as not found."""
    rfp = await rfp_service.get_visible_rfp(db, identity, rfp_id)
    if rfp is None:
        raise NotFoundError("RFP not found")
    return RFPResponse.from_rfp(rfp)


@router.post("", response_model=RFPResponse, status_code=201)
async def create_rfp(
    body: RFPCreate,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create an RFP (platform admin)."""
    result = raise_for_result(await rfp_service.create_rfp(
        db,
        identity,
        title=body.title,
        closing_date=body.closing_date,
        client_name=body.client_name,
        description=body.description,
        visibility=body.visibility,
        status=body.status,
        categories=body.categories
    ))
    return RFPResponse.from_rfp(result.data)


@router.patch("/{rfp_id}", response_model=RFPResponse)
async def update_rfp(
    rfp_id: uuid.UUID,
    body: RFPUpdate,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Update an RFP (platform admin)."""
    changes = body.model_dump(exclude_unset=True)
    cleared = [
        key for key in NON_NULLABLE_UPDATE_FIELDS
        if key in changes and changes[key] is None
    ]
    if cleared:
        raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")
    for key in ("visibility", "status"):
        if changes.get(key) is not None:
            changes[key] = changes[key].value

    result = raise_for_result(await rfp_service.update_rfp(db, identity, rfp_id, changes))
    return RFPResponse.from_rfp(result.data)


# ============================================================================
# Documents
# ============================================================================

@router.get("/{rfp_id}/documents", response_model=List[DocumentResponse])
async def list_rfp_documents(
    rfp_id: uuid.UUID,
    identity: Identity = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    List an RFP's documents with a decision for each.

    Denied documents are still listed so the client can show what is
    needed (NDA or approval) to unlock them.
    """
    result = raise_for_result(
        await document_service.list_rfp_documents(db, identity, rfp_id)
    )
    return [
        DocumentResponse(
            id=document.id,
            rfp_id=document.rfp_id,
            title=document.title,
            content_type=document.content_type,
            file_size=document.file_size,
            requires_nda=document.requires_nda,
            requires_approval=document.requires_approval,
            can_access=decision.allowed,
            reason=decision.reason
        )
        for document, decision in result.data
    ]


@router.post("/{rfp_id}/documents", response_model=DocumentResponse, status_code=201)
@limiter.limit(LIMIT_UPLOAD)
async def upload_document(
    request: Request,
    rfp_id: uuid.UUID,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    requires_nda: bool = Form(False),
    requires_approval: bool = Form(False),
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Upload a document to an RFP (platform admin)."""
    if not file.filename:
        raise ValidationError("No filename provided")

    suffix = file.filename.lower().rsplit(".", 1)[-1]
    if suffix not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported file format. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    if await rfp_service.get_rfp(db, rfp_id) is None:
        raise NotFoundError("RFP not found")

    content = await file.read()
    storage = get_storage()
    key = storage.save(rfp_id, file.filename, content)

    result = await rfp_service.add_document(
        db,
        identity,
        rfp_id,
        title=title or file.filename,
        file_path=key,
        content_type=file.content_type,
        file_size=len(content),
        requires_nda=requires_nda,
        requires_approval=requires_approval
    )
    if not result.success:
        storage.delete(key)
    raise_for_result(result)

    document = result.data
    return DocumentResponse(
        id=document.id,
        rfp_id=document.rfp_id,
        title=document.title,
        content_type=document.content_type,
        file_size=document.file_size,
        requires_nda=document.requires_nda,
        requires_approval=document.requires_approval,
        can_access=True,
        reason=AccessReason.ADMIN_OVERRIDE
    )


# ============================================================================
# Individual access grants
# ============================================================================

@router.get("/{rfp_id}/access", response_model=List[AccessGrantResponse])
async def list_access_grants(
    rfp_id: uuid.UUID,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List individual access grants for an RFP (platform admin)."""
    return await grant_service.list_rfp_access(db, rfp_id)


@router.put("/{rfp_id}/access", response_model=AccessGrantResponse)
async def set_access_grant(
    rfp_id: uuid.UUID,
    body: AccessGrantRequest,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Grant or reject a user's access to an RFP (platform admin)."""
    result = raise_for_result(await grant_service.set_rfp_access(
        db, identity, rfp_id, body.user_id, body.status
    ))
    return result.data


# ============================================================================
# RFP invitations
# ============================================================================

@router.get("/{rfp_id}/invitations", response_model=List[RFPInvitationResponse])
async def list_rfp_invitations(
    rfp_id: uuid.UUID,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List invitations sent for an RFP (platform admin)."""
    return await invitation_service.list_rfp_invitations(db, rfp_id)


@router.post("/{rfp_id}/invitations", response_model=RFPInvitationResponse, status_code=201)
@limiter.limit(LIMIT_INVITE)
async def send_rfp_invitation(
    request: Request,
    rfp_id: uuid.UUID,
    body: RFPInvitationCreate,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Invite an email address to an RFP (platform admin)."""
    result = raise_for_result(await invitation_service.send_rfp_invitation(
        db, identity, rfp_id, body.email, body.message
    ))
    return result.data


@router.post("/invitations/{token}/accept", response_model=RFPInvitationResponse)
async def accept_rfp_invitation(
    token: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Accept an RFP invitation addressed to the caller's email."""
    result = raise_for_result(
        await invitation_service.accept_rfp_invitation(db, identity, token)
    )
    return result.data
