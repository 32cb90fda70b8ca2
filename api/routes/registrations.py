"""
Registrations Router (v1)

Company interest registrations for RFPs and their admin approval.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.enums import ApprovalStatus
from schemas.identity import Identity
from services import registration as registration_service
from api.auth.dependencies import get_current_identity, require_admin
from api.middleware.error_handler import raise_for_result


router = APIRouter(tags=["Registrations"])


class RegisterRequest(BaseModel):
    notes: Optional[str] = None


class ApproveRequest(BaseModel):
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rfp_id: uuid.UUID
    company_id: uuid.UUID
    user_id: uuid.UUID
    status: str
    notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class RegisterResponse(BaseModel):
    success: bool
    duplicate: bool
    message: str
    registration: RegistrationResponse


class RegistrationCheckResponse(BaseModel):
    has_company: bool
    registered: bool
    status: Optional[str] = None
    registration_id: Optional[uuid.UUID] = None
    registered_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


@router.post("/rfps/{rfp_id}/registration", response_model=RegisterResponse)
async def register_interest(
    rfp_id: uuid.UUID,
    body: RegisterRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """
    Register the caller's primary company's interest in an RFP.

    Registering again while pending or approved is reported as a
    duplicate, not an error.
    """
    result = raise_for_result(
        await registration_service.register_interest(db, identity, rfp_id, body.notes)
    )
    return RegisterResponse(
        success=True,
        duplicate=result.duplicate,
        message=result.message,
        registration=RegistrationResponse.model_validate(result.data)
    )


@router.get("/rfps/{rfp_id}/registration", response_model=RegistrationCheckResponse)
async def check_registration(
    rfp_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    return await registration_service.check_registration(db, identity, rfp_id)


@router.get("/registrations", response_model=List[RegistrationResponse])
async def list_registrations(
    rfp_id: Optional[uuid.UUID] = None,
    status: Optional[ApprovalStatus] = None,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Registration queue (platform admin)."""
    return await registration_service.list_registrations(db, rfp_id, status)


@router.post("/registrations/{registration_id}/approve", response_model=RegistrationResponse)
async def approve_registration(
    registration_id: uuid.UUID,
    body: ApproveRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await registration_service.approve_registration(
        db, identity, registration_id, body.notes
    ))
    return result.data


@router.post("/registrations/{registration_id}/reject", response_model=RegistrationResponse)
async def reject_registration(
    registration_id: uuid.UUID,
    body: RejectRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await registration_service.reject_registration(
        db, identity, registration_id, body.reason
    ))
    return result.data
