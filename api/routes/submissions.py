"""
Submissions Router (v1)

Proposal submissions, accepted only while an RFP is effectively active.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.enums import SubmissionMethod, SubmissionStatus
from schemas.identity import Identity
from services import submissions as submission_service
from api.auth.dependencies import get_current_identity
from api.middleware.error_handler import raise_for_result


router = APIRouter(tags=["Submissions"])


class SubmissionCreate(BaseModel):
    submission_method: SubmissionMethod = SubmissionMethod.UPLOAD
    file_count: int = Field(default=0, ge=0)
    total_file_size: int = Field(default=0, ge=0)
    notes: Optional[str] = None


class SubmissionStatusUpdate(BaseModel):
    status: SubmissionStatus


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rfp_id: uuid.UUID
    user_id: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    submission_method: str
    status: str
    file_count: int
    total_file_size: int
    notes: Optional[str] = None
    submitted_at: datetime
    updated_at: Optional[datetime] = None


@router.post("/rfps/{rfp_id}/submissions", response_model=SubmissionResponse, status_code=201)
async def submit_proposal(
    rfp_id: uuid.UUID,
    body: SubmissionCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Record a proposal submission. Closed RFPs are rejected with 409."""
    result = raise_for_result(await submission_service.submit_proposal(
        db,
        identity,
        rfp_id,
        method=body.submission_method,
        file_count=body.file_count,
        total_file_size=body.total_file_size,
        notes=body.notes
    ))
    return result.data


@router.get("/submissions", response_model=List[SubmissionResponse])
async def list_submissions(
    rfp_id: Optional[uuid.UUID] = None,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    """Admins see all submissions; bidders see their own and their company's."""
    return await submission_service.list_submissions(db, identity, rfp_id)


@router.patch("/submissions/{submission_id}", response_model=SubmissionResponse)
async def update_submission_status(
    submission_id: uuid.UUID,
    body: SubmissionStatusUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await submission_service.update_submission_status(
        db, identity, submission_id, body.status
    ))
    return result.data
