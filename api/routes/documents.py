"""
Documents Router (v1)

Batch access checks and downloads. Downloads go through the same
evaluator as listings before any bytes leave storage.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.access import DocumentAccess
from schemas.identity import Identity
from services import documents as document_service
from services.storage import StorageError
from api.auth.dependencies import get_optional_identity
from api.middleware.error_handler import NotFoundError, raise_for_result


router = APIRouter(prefix="/documents", tags=["Documents"])


class AccessCheckRequest(BaseModel):
    """Documents to evaluate in one pass."""
    document_ids: List[uuid.UUID] = Field(min_length=1, max_length=500)


class AccessCheckResponse(BaseModel):
    decisions: List[DocumentAccess]
    missing: List[uuid.UUID] = []


@router.post("/access", response_model=AccessCheckResponse)
async def check_document_access(
    body: AccessCheckRequest,
    identity: Identity = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """Evaluate access to many documents, possibly across RFPs."""
    batch = await document_service.check_documents(db, identity, body.document_ids)
    return AccessCheckResponse(decisions=batch.decisions, missing=batch.missing)


@router.get("/{document_id}/download")
async def download_document(
    document_id: uuid.UUID,
    identity: Identity = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """Stream a document if the caller may access it."""
    try:
        result = raise_for_result(
            await document_service.open_document(db, identity, document_id)
        )
    except StorageError:
        raise NotFoundError("Document file not found")

    file = result.data
    return FileResponse(
        file.path,
        media_type=file.content_type or "application/octet-stream",
        filename=file.filename
    )
