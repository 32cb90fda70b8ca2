"""
NDA State Machine

Individual NDAs are keyed by (rfp, user); company NDAs by (company, rfp)
and may only be signed by the company's primary admin.

    signed -> approved   (countersign, admin / client reviewer)
    signed -> rejected   (reject, admin / client reviewer)
    any    -> signed     (re-sign; clears countersignature and rejection)
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import NdaRecord, CompanyNda, Company
from schemas.enums import NdaKind, NdaStatus
from schemas.identity import Identity
from schemas.results import ClientInfo, ErrorKind, OperationResult
from services.audit import log_nda_event
from services.notifications import company_member_ids, dispatch, fan_out
from services.rfps import get_rfp, get_visible_rfp

logger = logging.getLogger("rfp_portal.nda")

NdaModel = Union[NdaRecord, CompanyNda]

_RESET_FIELDS = {
    "countersigned_at": None,
    "countersigned_by": None,
    "countersigner_name": None,
    "countersigner_title": None,
    "countersignature_data": None,
    "rejection_reason": None,
    "rejected_at": None,
    "rejected_by": None,
}


async def _upsert_signature(
    db: AsyncSession,
    model: Type[NdaModel],
    keys: dict,
    values: dict
) -> NdaModel:
    """
    Insert or re-sign the NDA row for `keys`.

    The unique constraint backs the select; a concurrent insert surfaces
    as IntegrityError and the existing row is updated instead.
    """
    for attempt in range(2):
        result = await db.execute(
            select(model).filter_by(**keys).with_for_update()
        )
        record = result.scalar_one_or_none()

        if record is None:
            record = model(**keys, **values)
            db.add(record)
        else:
            for field, value in {**values, **_RESET_FIELDS}.items():
                setattr(record, field, value)

        try:
            await db.flush()
            return record
        except IntegrityError:
            await db.rollback()
            if attempt:
                raise
            logger.debug(f"Concurrent NDA insert for {keys}, retrying as update")


def _signature_values(
    full_name: str,
    title: Optional[str],
    signature_data: Optional[dict],
    client: Optional[ClientInfo]
) -> dict:
    client = client or ClientInfo()
    return {
        "status": NdaStatus.SIGNED.value,
        "full_name": full_name.strip(),
        "title": title,
        "signature_data": signature_data or {},
        "ip_address": client.ip_address,
        "user_agent": client.user_agent,
        "signed_at": datetime.now(timezone.utc),
    }


async def sign_nda(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    full_name: str,
    title: Optional[str] = None,
    company: Optional[str] = None,
    signature_data: Optional[dict] = None,
    client: Optional[ClientInfo] = None
) -> OperationResult[NdaRecord]:
    """Sign (or re-sign) the requester's individual NDA for an RFP."""
    if not identity.is_authenticated:
        return OperationResult.forbidden("Authentication required")
    if not full_name or not full_name.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Full name is required")

    rfp = await get_visible_rfp(db, identity, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    values = _signature_values(full_name, title, signature_data, client)
    values["company"] = company

    record = await _upsert_signature(
        db, NdaRecord, {"rfp_id": rfp_id, "user_id": identity.user_id}, values
    )
    log_nda_event(
        db, record.id, NdaKind.INDIVIDUAL.value, "signed", identity.user_id,
        details={"full_name": record.full_name, "title": title, "company": company},
        client=client
    )
    await db.commit()

    logger.info(f"NDA {record.id} signed by user {identity.user_id} for RFP {rfp_id}")
    return OperationResult.ok(record, "NDA signed successfully")


async def sign_company_nda(
    db: AsyncSession,
    identity: Identity,
    company_id: uuid.UUID,
    rfp_id: uuid.UUID,
    full_name: str,
    title: Optional[str] = None,
    signature_data: Optional[dict] = None,
    client: Optional[ClientInfo] = None
) -> OperationResult[CompanyNda]:
    """Sign (or re-sign) an NDA on behalf of a company. Primary admins only."""
    if not identity.is_company_admin(company_id):
        return OperationResult.fail(
            ErrorKind.INVARIANT_VIOLATION,
            "Only a company administrator can sign an NDA on behalf of the company"
        )
    if not full_name or not full_name.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Full name is required")

    company = await db.get(Company, company_id)
    if company is None:
        return OperationResult.not_found("Company")

    rfp = await get_visible_rfp(db, identity, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    values = _signature_values(full_name, title, signature_data, client)
    values["signed_by"] = identity.user_id

    record = await _upsert_signature(
        db, CompanyNda, {"company_id": company_id, "rfp_id": rfp_id}, values
    )
    log_nda_event(
        db, record.id, NdaKind.COMPANY.value, "signed", identity.user_id,
        details={"full_name": record.full_name, "title": title, "company_id": str(company_id)},
        client=client
    )
    await db.commit()

    logger.info(f"Company NDA {record.id} signed for company {company_id} on RFP {rfp_id}")
    return OperationResult.ok(record, "Company NDA signed successfully")


async def _load_for_review(
    db: AsyncSession,
    identity: Identity,
    model: Type[NdaModel],
    nda_id: uuid.UUID,
    action: str
) -> OperationResult[Any]:
    if not identity.is_reviewer:
        return OperationResult.forbidden(
            f"Only admins and client reviewers can {action} NDAs"
        )

    result = await db.execute(
        select(model).where(model.id == nda_id).with_for_update()
    )
    record = result.scalar_one_or_none()
    if record is None:
        return OperationResult.not_found("NDA")
    if record.status != NdaStatus.SIGNED.value:
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            f"NDA is {record.status}; only signed NDAs can be {action}ed"
        )
    return OperationResult.ok(record)


async def _recipients(db: AsyncSession, record: NdaModel) -> list[uuid.UUID]:
    if isinstance(record, CompanyNda):
        return await company_member_ids(db, record.company_id)
    return [record.user_id]


async def _countersign(
    db: AsyncSession,
    identity: Identity,
    model: Type[NdaModel],
    kind: NdaKind,
    nda_id: uuid.UUID,
    countersigner_name: str,
    countersigner_title: Optional[str],
    countersignature_data: Optional[dict],
    client: Optional[ClientInfo]
) -> OperationResult[Any]:
    if not countersigner_name or not countersigner_name.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Countersigner name is required")

    loaded = await _load_for_review(db, identity, model, nda_id, "countersign")
    if not loaded.success:
        return loaded
    record = loaded.data

    record.status = NdaStatus.APPROVED.value
    record.countersigned_at = datetime.now(timezone.utc)
    record.countersigned_by = identity.user_id
    record.countersigner_name = countersigner_name.strip()
    record.countersigner_title = countersigner_title
    record.countersignature_data = countersignature_data or {}
    log_nda_event(
        db, record.id, kind.value, "countersigned", identity.user_id,
        details={"countersigner_name": record.countersigner_name,
                 "countersigner_title": countersigner_title},
        client=client
    )

    rfp = await get_rfp(db, record.rfp_id)
    recipients = await _recipients(db, record)
    await db.commit()

    logger.info(f"{kind.value.title()} NDA {record.id} countersigned by {identity.user_id}")
    await dispatch(fan_out(
        recipients,
        "NDA Approved",
        f'Your NDA for "{rfp.title}" has been approved and countersigned.',
        "nda_approved",
        rfp.id
    ))
    return OperationResult.ok(record, "NDA successfully countersigned")


async def _reject(
    db: AsyncSession,
    identity: Identity,
    model: Type[NdaModel],
    kind: NdaKind,
    nda_id: uuid.UUID,
    reason: str
) -> OperationResult[Any]:
    if not reason or not reason.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "A rejection reason is required")

    loaded = await _load_for_review(db, identity, model, nda_id, "reject")
    if not loaded.success:
        return loaded
    record = loaded.data

    record.status = NdaStatus.REJECTED.value
    record.rejection_reason = reason.strip()
    record.rejected_at = datetime.now(timezone.utc)
    record.rejected_by = identity.user_id
    log_nda_event(
        db, record.id, kind.value, "rejected", identity.user_id,
        details={"rejection_reason": record.rejection_reason}
    )

    rfp = await get_rfp(db, record.rfp_id)
    recipients = await _recipients(db, record)
    await db.commit()

    logger.info(f"{kind.value.title()} NDA {record.id} rejected by {identity.user_id}")
    await dispatch(fan_out(
        recipients,
        "NDA Rejected",
        f'Your NDA for "{rfp.title}" has been rejected. Reason: {record.rejection_reason}',
        "nda_rejected",
        rfp.id
    ))
    return OperationResult.ok(record, "NDA successfully rejected")


async def countersign_nda(
    db: AsyncSession,
    identity: Identity,
    nda_id: uuid.UUID,
    countersigner_name: str,
    countersigner_title: Optional[str] = None,
    countersignature_data: Optional[dict] = None,
    client: Optional[ClientInfo] = None
) -> OperationResult[NdaRecord]:
    return await _countersign(
        db, identity, NdaRecord, NdaKind.INDIVIDUAL, nda_id,
        countersigner_name, countersigner_title, countersignature_data, client
    )


async def countersign_company_nda(
    db: AsyncSession,
    identity: Identity,
    nda_id: uuid.UUID,
    countersigner_name: str,
    countersigner_title: Optional[str] = None,
    countersignature_data: Optional[dict] = None,
    client: Optional[ClientInfo] = None
) -> OperationResult[CompanyNda]:
    return await _countersign(
        db, identity, CompanyNda, NdaKind.COMPANY, nda_id,
        countersigner_name, countersigner_title, countersignature_data, client
    )


async def reject_nda(
    db: AsyncSession,
    identity: Identity,
    nda_id: uuid.UUID,
    reason: str
) -> OperationResult[NdaRecord]:
    return await _reject(db, identity, NdaRecord, NdaKind.INDIVIDUAL, nda_id, reason)


async def reject_company_nda(
    db: AsyncSession,
    identity: Identity,
    nda_id: uuid.UUID,
    reason: str
) -> OperationResult[CompanyNda]:
    return await _reject(db, identity, CompanyNda, NdaKind.COMPANY, nda_id, reason)


async def get_nda_status(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID
) -> dict:
    """The requester's individual NDA and their primary company's NDA for an RFP."""
    individual = None
    company = None

    if identity.is_authenticated:
        result = await db.execute(
            select(NdaRecord).where(
                NdaRecord.rfp_id == rfp_id,
                NdaRecord.user_id == identity.user_id
            )
        )
        individual = result.scalar_one_or_none()

    if identity.primary_company_id is not None:
        result = await db.execute(
            select(CompanyNda).where(
                CompanyNda.rfp_id == rfp_id,
                CompanyNda.company_id == identity.primary_company_id
            )
        )
        company = result.scalar_one_or_none()

    return {"individual": individual, "company": company}


async def list_ndas(
    db: AsyncSession,
    kind: NdaKind = NdaKind.INDIVIDUAL,
    rfp_id: Optional[uuid.UUID] = None,
    status: Optional[NdaStatus] = None
) -> list[Any]:
    """NDA records for review queues."""
    model = CompanyNda if kind == NdaKind.COMPANY else NdaRecord
    query = select(model).order_by(model.signed_at.desc())
    if rfp_id:
        query = query.where(model.rfp_id == rfp_id)
    if status:
        query = query.where(model.status == status.value)

    result = await db.execute(query)
    return list(result.scalars().all())
