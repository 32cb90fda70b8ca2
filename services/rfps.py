"""
RFP Service

RFP and document records, filtered through the access evaluator on read.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import RFP, Document
from schemas.enums import RFPStatus, Visibility
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.access import can_view_rfp, load_access_context
from services.rfp_status import rfp_effective_status

logger = logging.getLogger("rfp_portal.rfps")


async def get_rfp(db: AsyncSession, rfp_id: uuid.UUID) -> Optional[RFP]:
    result = await db.execute(select(RFP).where(RFP.id == rfp_id))
    return result.scalar_one_or_none()


async def get_document(db: AsyncSession, document_id: uuid.UUID) -> Optional[Document]:
    result = await db.execute(select(Document).where(Document.id == document_id))
    return result.scalar_one_or_none()


async def get_visible_rfp(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID
) -> Optional[RFP]:
    """The RFP if it exists and the requester may see it, else None."""
    rfp = await get_rfp(db, rfp_id)
    if rfp is None:
        return None

    context = await load_access_context(db, identity, [rfp.id])
    if not can_view_rfp(identity, rfp, context).allowed:
        return None
    return rfp


async def list_visible_rfps(
    db: AsyncSession,
    identity: Identity,
    status: Optional[str] = None
) -> list[RFP]:
    """
    RFPs visible to the requester, newest first.

    `status` matches the effective status, so an active RFP past its
    closing date is listed as closed.
    """
    query = select(RFP).order_by(RFP.created_at.desc())
    if not identity.is_admin:
        query = query.where(RFP.status != RFPStatus.DRAFT.value)

    rfps = list((await db.execute(query)).scalars().all())
    if status:
        rfps = [rfp for rfp in rfps if rfp_effective_status(rfp).value == status]
    context = await load_access_context(db, identity, [rfp.id for rfp in rfps])
    return [rfp for rfp in rfps if can_view_rfp(identity, rfp, context).allowed]


async def create_rfp(
    db: AsyncSession,
    identity: Identity,
    title: str,
    closing_date: datetime,
    client_name: Optional[str] = None,
    description: Optional[str] = None,
    visibility: Visibility = Visibility.PUBLIC,
    status: RFPStatus = RFPStatus.DRAFT,
    categories: Optional[list[str]] = None
) -> OperationResult[RFP]:
    if not identity.is_admin:
        return OperationResult.forbidden("Only admins can create RFPs")
    if not title.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Title is required")

    rfp = RFP(
        title=title.strip(),
        client_name=client_name,
        description=description,
        visibility=visibility.value,
        status=status.value,
        closing_date=closing_date,
        categories=categories or [],
        created_by=identity.user_id
    )
    db.add(rfp)
    await db.commit()

    logger.info(f"RFP {rfp.id} created by {identity.user_id}")
    return OperationResult.ok(rfp, "RFP created")


async def update_rfp(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    changes: dict
) -> OperationResult[RFP]:
    """Apply a partial update (title, description, visibility, status, ...)."""
    if not identity.is_admin:
        return OperationResult.forbidden("Only admins can update RFPs")

    rfp = await get_rfp(db, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    for field, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        setattr(rfp, field, value)
    await db.commit()

    logger.info(f"RFP {rfp.id} updated: {sorted(changes)}")
    return OperationResult.ok(rfp, "RFP updated")


async def add_document(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    title: str,
    file_path: str,
    content_type: Optional[str] = None,
    file_size: Optional[int] = None,
    requires_nda: bool = False,
    requires_approval: bool = False
) -> OperationResult[Document]:
    if not identity.is_admin:
        return OperationResult.forbidden("Only admins can upload documents")

    rfp = await get_rfp(db, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    document = Document(
        rfp_id=rfp.id,
        title=title,
        file_path=file_path,
        content_type=content_type,
        file_size=file_size,
        requires_nda=requires_nda,
        requires_approval=requires_approval,
        uploaded_by=identity.user_id
    )
    db.add(document)
    await db.commit()

    logger.info(f"Document {document.id} added to RFP {rfp.id}")
    return OperationResult.ok(document, "Document added")


async def list_documents(db: AsyncSession, rfp_id: uuid.UUID) -> list[Document]:
    result = await db.execute(
        select(Document).where(Document.rfp_id == rfp_id).order_by(Document.created_at)
    )
    return list(result.scalars().all())
