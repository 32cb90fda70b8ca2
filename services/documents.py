"""
Document Access Service

Document listing with per-document decisions, batch evaluation and
downloads, all through one AccessContext load per request.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import RFP, Document
from schemas.access import DocumentAccess
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.access import can_view_rfp, evaluate_documents, load_access_context
from services.rfps import get_document, get_rfp, list_documents
from services.storage import get_storage

logger = logging.getLogger("rfp_portal.documents")


class BatchAccess(BaseModel):
    decisions: list[DocumentAccess] = Field(default_factory=list)
    missing: list[uuid.UUID] = Field(default_factory=list)


class DocumentFile(BaseModel):
    """A file cleared for download."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    path: Path
    filename: str
    content_type: Optional[str] = None


async def list_rfp_documents(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID
) -> OperationResult[list[tuple[Document, DocumentAccess]]]:
    """All documents of a visible RFP, each with its access decision."""
    rfp = await get_rfp(db, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    context = await load_access_context(db, identity, [rfp.id])
    if not can_view_rfp(identity, rfp, context).allowed:
        return OperationResult.not_found("RFP")

    documents = await list_documents(db, rfp.id)
    decisions = evaluate_documents(identity, documents, {rfp.id: rfp}, context)
    return OperationResult.ok(list(zip(documents, decisions)))


async def check_documents(
    db: AsyncSession,
    identity: Identity,
    document_ids: Sequence[uuid.UUID]
) -> BatchAccess:
    """Evaluate many documents, across any RFPs, in one pass."""
    ids = list(dict.fromkeys(document_ids))
    if not ids:
        return BatchAccess()

    documents = list((await db.execute(
        select(Document).where(Document.id.in_(ids))
    )).scalars().all())
    found = {d.id for d in documents}

    rfp_ids = {d.rfp_id for d in documents}
    rfps = {}
    if rfp_ids:
        rows = await db.execute(select(RFP).where(RFP.id.in_(rfp_ids)))
        rfps = {rfp.id: rfp for rfp in rows.scalars().all()}

    context = await load_access_context(db, identity, rfp_ids)
    return BatchAccess(
        decisions=evaluate_documents(identity, documents, rfps, context),
        missing=[i for i in ids if i not in found]
    )


async def open_document(
    db: AsyncSession,
    identity: Identity,
    document_id: uuid.UUID
) -> OperationResult[DocumentFile]:
    """Resolve a document file for download if the requester may access it."""
    document = await get_document(db, document_id)
    if document is None:
        return OperationResult.not_found("Document")

    rfp = await get_rfp(db, document.rfp_id)
    context = await load_access_context(db, identity, [rfp.id])
    decision, path = get_storage().fetch(identity, document, rfp, context)

    if not decision.allowed:
        logger.debug(f"Download of {document.id} denied: {decision.reason.value}")
        return OperationResult.fail(ErrorKind.FORBIDDEN, decision.reason.value)

    return OperationResult.ok(DocumentFile(
        path=path,
        filename=Path(document.file_path).name.split("_", 1)[-1],
        content_type=document.content_type
    ))
