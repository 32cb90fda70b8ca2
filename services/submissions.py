"""
Proposal Submissions

Submission records per (rfp, company), or per (rfp, user) for bidders
without a company. Accepted only while the RFP's effective status is
active.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import ProposalSubmission
from schemas.enums import SubmissionMethod, SubmissionStatus
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.rfp_status import is_open_for_submissions
from services.rfps import get_visible_rfp

logger = logging.getLogger("rfp_portal.submissions")


def _owner_filter(identity: Identity):
    if identity.primary_company_id is not None:
        return ProposalSubmission.company_id == identity.primary_company_id
    return ProposalSubmission.user_id == identity.user_id


async def submit_proposal(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    method: SubmissionMethod = SubmissionMethod.UPLOAD,
    file_count: int = 0,
    total_file_size: int = 0,
    notes: Optional[str] = None
) -> OperationResult[ProposalSubmission]:
    """Record (or re-record) the requester's proposal for an RFP."""
    if not identity.is_authenticated:
        return OperationResult.forbidden("Authentication required")

    rfp = await get_visible_rfp(db, identity, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")
    if not is_open_for_submissions(rfp):
        return OperationResult.fail(
            ErrorKind.INVALID_STATE,
            "This RFP is not open for submissions"
        )

    rfp_id = rfp.id
    for attempt in range(2):
        result = await db.execute(
            select(ProposalSubmission).where(
                ProposalSubmission.rfp_id == rfp_id,
                _owner_filter(identity)
            ).with_for_update()
        )
        submission = result.scalars().first()
        resubmitted = submission is not None
        if submission is None:
            submission = ProposalSubmission(
                rfp_id=rfp_id,
                company_id=identity.primary_company_id
            )
            db.add(submission)

        submission.user_id = identity.user_id
        submission.submission_method = method.value
        submission.status = SubmissionStatus.SUBMITTED.value
        submission.file_count = file_count
        submission.total_file_size = total_file_size
        submission.notes = notes
        submission.submitted_at = datetime.now(timezone.utc)

        try:
            await db.commit()
            break
        except IntegrityError:
            # A concurrent first submission won the insert; update that row.
            await db.rollback()
            if attempt:
                raise

    logger.info(f"Submission {submission.id} recorded for RFP {rfp_id} (resubmitted={resubmitted})")
    return OperationResult.ok(
        submission,
        "Submission updated" if resubmitted else "Submission recorded"
    )


async def update_submission_status(
    db: AsyncSession,
    identity: Identity,
    submission_id: uuid.UUID,
    status: SubmissionStatus
) -> OperationResult[ProposalSubmission]:
    """Admins set any status; the submitting party may only withdraw."""
    submission = await db.get(ProposalSubmission, submission_id)
    if submission is None:
        return OperationResult.not_found("Submission")

    is_owner = submission.user_id == identity.user_id or (
        submission.company_id is not None
        and submission.company_id == identity.primary_company_id
    )
    if not identity.is_admin and not (is_owner and status == SubmissionStatus.WITHDRAWN):
        return OperationResult.forbidden("Only administrators can change submission status")

    submission.status = status.value
    await db.commit()

    logger.info(f"Submission {submission.id} -> {status.value}")
    return OperationResult.ok(submission, f"Submission {status.value}")


async def list_submissions(
    db: AsyncSession,
    identity: Identity,
    rfp_id: Optional[uuid.UUID] = None
) -> list[ProposalSubmission]:
    query = select(ProposalSubmission).order_by(ProposalSubmission.submitted_at.desc())
    if rfp_id:
        query = query.where(ProposalSubmission.rfp_id == rfp_id)
    if not identity.is_admin:
        query = query.where(or_(
            ProposalSubmission.user_id == identity.user_id,
            _owner_filter(identity)
        ))

    result = await db.execute(query)
    return list(result.scalars().all())
