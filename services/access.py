"""
Document Access Evaluator

Pure decision functions over (identity, RFP, document, access context),
plus the loader that fetches an AccessContext for any number of RFPs in
a fixed number of queries.
"""

import logging
import uuid
from typing import Iterable, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    RFP, Document, NdaRecord, CompanyNda, RfpInterestRegistration, RFPAccess
)
from schemas.access import AccessContext, AccessDecision, AccessReason, DocumentAccess
from schemas.enums import ApprovalStatus, NdaStatus, RFPStatus, Visibility
from schemas.identity import Identity

logger = logging.getLogger("rfp_portal.access")

NDA_VALID_STATES = (NdaStatus.SIGNED.value, NdaStatus.APPROVED.value)


def _allow(reason: AccessReason) -> AccessDecision:
    return AccessDecision(allowed=True, reason=reason)


def _deny(reason: AccessReason) -> AccessDecision:
    return AccessDecision(allowed=False, reason=reason)


def can_view_rfp(identity: Identity, rfp: RFP, context: AccessContext) -> AccessDecision:
    """
    Whether the requester may see an RFP at all.

    Drafts are admin-only (by stored status). Confidential RFPs need an
    approved individual access grant.
    """
    if identity.is_admin:
        return _allow(AccessReason.ADMIN_OVERRIDE)

    if rfp.status == RFPStatus.DRAFT.value:
        return _deny(AccessReason.RFP_NOT_VISIBLE)

    if rfp.visibility == Visibility.CONFIDENTIAL.value:
        if rfp.id not in context.access_grant_rfp_ids:
            return _deny(AccessReason.RFP_NOT_VISIBLE)
        return _allow(AccessReason.CONDITIONS_MET)

    return _allow(AccessReason.NO_RESTRICTION)


def can_access_document(
    identity: Identity,
    document: Document,
    rfp: RFP,
    context: AccessContext
) -> AccessDecision:
    """
    Decide whether the requester may see and download a document.

    Both flags must be satisfied when both are set.
    """
    if identity.is_admin:
        return _allow(AccessReason.ADMIN_OVERRIDE)

    if not can_view_rfp(identity, rfp, context).allowed:
        return _deny(AccessReason.RFP_NOT_VISIBLE)

    if not document.requires_nda and not document.requires_approval:
        return _allow(AccessReason.NO_RESTRICTION)

    if not identity.is_authenticated:
        return _deny(
            AccessReason.NDA_REQUIRED if document.requires_nda
            else AccessReason.APPROVAL_REQUIRED
        )

    if document.requires_nda and rfp.id not in context.nda_rfp_ids:
        logger.debug(f"Document {document.id}: NDA required for user {identity.user_id}")
        return _deny(AccessReason.NDA_REQUIRED)

    if document.requires_approval and not (
        rfp.id in context.registration_rfp_ids
        or rfp.id in context.access_grant_rfp_ids
    ):
        logger.debug(f"Document {document.id}: approval required for user {identity.user_id}")
        return _deny(AccessReason.APPROVAL_REQUIRED)

    return _allow(AccessReason.CONDITIONS_MET)


def evaluate_documents(
    identity: Identity,
    documents: Sequence[Document],
    rfps: Mapping[uuid.UUID, RFP],
    context: AccessContext
) -> list[DocumentAccess]:
    """Evaluate a batch of documents in one pass."""
    decisions = []
    for document in documents:
        decision = can_access_document(identity, document, rfps[document.rfp_id], context)
        decisions.append(DocumentAccess(
            document_id=document.id,
            allowed=decision.allowed,
            reason=decision.reason
        ))
    return decisions


async def load_access_context(
    db: AsyncSession,
    identity: Identity,
    rfp_ids: Optional[Iterable[uuid.UUID]] = None
) -> AccessContext:
    """
    Load the requester's NDA, registration and grant state.

    Args:
        db: Database session
        identity: Requester
        rfp_ids: Restrict to these RFPs (all RFPs when None)
    """
    if not identity.is_authenticated or identity.is_admin:
        return AccessContext()

    ids = list(rfp_ids) if rfp_ids is not None else None
    if ids is not None and not ids:
        return AccessContext()

    def scoped(query, column):
        return query.where(column.in_(ids)) if ids is not None else query

    nda = await db.execute(scoped(
        select(NdaRecord.rfp_id).where(
            NdaRecord.user_id == identity.user_id,
            NdaRecord.status.in_(NDA_VALID_STATES)
        ),
        NdaRecord.rfp_id
    ))
    nda_rfp_ids = set(nda.scalars().all())

    grants = await db.execute(scoped(
        select(RFPAccess.rfp_id).where(
            RFPAccess.user_id == identity.user_id,
            RFPAccess.status == ApprovalStatus.APPROVED.value
        ),
        RFPAccess.rfp_id
    ))
    access_grant_rfp_ids = set(grants.scalars().all())

    registration_rfp_ids = set()
    company_id = identity.primary_company_id
    if company_id is not None:
        company_nda = await db.execute(scoped(
            select(CompanyNda.rfp_id).where(
                CompanyNda.company_id == company_id,
                CompanyNda.status.in_(NDA_VALID_STATES)
            ),
            CompanyNda.rfp_id
        ))
        nda_rfp_ids.update(company_nda.scalars().all())

        registrations = await db.execute(scoped(
            select(RfpInterestRegistration.rfp_id).where(
                RfpInterestRegistration.company_id == company_id,
                RfpInterestRegistration.status == ApprovalStatus.APPROVED.value
            ),
            RfpInterestRegistration.rfp_id
        ))
        registration_rfp_ids = set(registrations.scalars().all())

    return AccessContext(
        nda_rfp_ids=nda_rfp_ids,
        registration_rfp_ids=registration_rfp_ids,
        access_grant_rfp_ids=access_grant_rfp_ids
    )
