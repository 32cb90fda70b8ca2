"""
NDA Router (v1)

Individual and company NDA signing, status, and the reviewer queue
(countersign / reject).
"""

import uuid
from datetime import datetime
from typing import Any, Optional, List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.enums import NdaKind, NdaStatus
from schemas.identity import Identity
from services import nda as nda_service
from api.auth.dependencies import get_current_identity, require_reviewer, client_info
from api.middleware.error_handler import ValidationError, raise_for_result
from api.middleware.rate_limit import limiter, LIMIT_SIGNING


router = APIRouter(tags=["NDAs"])


# ============================================================================
# Request/Response Models
# ============================================================================

class NdaSignRequest(BaseModel):
    """Signature captured from the signing form."""
    full_name: str = Field(min_length=1, max_length=200)
    title: Optional[str] = None
    company: Optional[str] = None
    signature_data: Optional[dict[str, Any]] = None


class CompanyNdaSignRequest(NdaSignRequest):
    company_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Defaults to the signer's primary company"
    )


class CountersignRequest(BaseModel):
    countersigner_name: str = Field(min_length=1, max_length=200)
    countersigner_title: Optional[str] = None
    countersignature_data: Optional[dict[str, Any]] = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class NdaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rfp_id: uuid.UUID
    status: str
    full_name: str
    title: Optional[str] = None
    signed_at: datetime
    countersigned_at: Optional[datetime] = None
    countersigner_name: Optional[str] = None
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None


class IndividualNdaResponse(NdaResponse):
    user_id: uuid.UUID
    company: Optional[str] = None


class CompanyNdaResponse(NdaResponse):
    company_id: uuid.UUID
    signed_by: uuid.UUID


class NdaStatusResponse(BaseModel):
    individual: Optional[IndividualNdaResponse] = None
    company: Optional[CompanyNdaResponse] = None


# ============================================================================
# Signing
# ============================================================================

@router.get("/rfps/{rfp_id}/nda", response_model=NdaStatusResponse)
async def get_nda_status(
    rfp_id: uuid.UUID,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """The caller's individual NDA and their company's NDA for an RFP."""
    return await nda_service.get_nda_status(db, identity, rfp_id)


@router.post("/rfps/{rfp_id}/nda", response_model=IndividualNdaResponse)
@limiter.limit(LIMIT_SIGNING)
async def sign_nda(
    request: Request,
    rfp_id: uuid.UUID,
    body: NdaSignRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Sign an individual NDA. Re-signing a rejected NDA resubmits it."""
    result = raise_for_result(await nda_service.sign_nda(
        db,
        identity,
        rfp_id,
        full_name=body.full_name,
        title=body.title,
        company=body.company,
        signature_data=body.signature_data,
        client=client_info(request)
    ))
    return result.data


@router.post("/rfps/{rfp_id}/company-nda", response_model=CompanyNdaResponse)
@limiter.limit(LIMIT_SIGNING)
async def sign_company_nda(
    request: Request,
    rfp_id: uuid.UUID,
    body: CompanyNdaSignRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Sign an NDA on behalf of a company the caller administers."""
    company_id = body.company_id or identity.primary_company_id
    if company_id is None:
        raise ValidationError("No company specified and caller has no primary company")

    result = raise_for_result(await nda_service.sign_company_nda(
        db,
        identity,
        company_id,
        rfp_id,
        full_name=body.full_name,
        title=body.title,
        signature_data=body.signature_data,
        client=client_info(request)
    ))
    return result.data


# ============================================================================
# Review
# ============================================================================

@router.get("/ndas", response_model=List[IndividualNdaResponse])
async def list_individual_ndas(
    rfp_id: Optional[uuid.UUID] = None,
    status: Optional[NdaStatus] = None,
    identity: Identity = Depends(require_reviewer),
    db: AsyncSession = Depends(get_db)
):
    """Individual NDAs for review."""
    return await nda_service.list_ndas(db, NdaKind.INDIVIDUAL, rfp_id, status)


@router.get("/company-ndas", response_model=List[CompanyNdaResponse])
async def list_company_ndas(
    rfp_id: Optional[uuid.UUID] = None,
    status: Optional[NdaStatus] = None,
    identity: Identity = Depends(require_reviewer),
    db: AsyncSession = Depends(get_db)
):
    """Company NDAs for review."""
    return await nda_service.list_ndas(db, NdaKind.COMPANY, rfp_id, status)


@router.post("/ndas/{nda_id}/countersign", response_model=IndividualNdaResponse)
async def countersign_nda(
    request: Request,
    nda_id: uuid.UUID,
    body: CountersignRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await nda_service.countersign_nda(
        db,
        identity,
        nda_id,
        body.countersigner_name,
        body.countersigner_title,
        body.countersignature_data,
        client_info(request)
    ))
    return result.data


@router.post("/ndas/{nda_id}/reject", response_model=IndividualNdaResponse)
async def reject_nda(
    nda_id: uuid.UUID,
    body: RejectRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(
        await nda_service.reject_nda(db, identity, nda_id, body.reason)
    )
    return result.data


@router.post("/company-ndas/{nda_id}/countersign", response_model=CompanyNdaResponse)
async def countersign_company_nda(
    request: Request,
    nda_id: uuid.UUID,
    body: CountersignRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await nda_service.countersign_company_nda(
        db,
        identity,
        nda_id,
        body.countersigner_name,
        body.countersigner_title,
        body.countersignature_data,
        client_info(request)
    ))
    return result.data


@router.post("/company-ndas/{nda_id}/reject", response_model=CompanyNdaResponse)
async def reject_company_nda(
    nda_id: uuid.UUID,
    body: RejectRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(
        await nda_service.reject_company_nda(db, identity, nda_id, body.reason)
    )
    return result.data
