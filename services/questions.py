"""
Questions & Answers

Bidders ask questions on RFPs they can see; admins answer and publish.
Publishing notifies the asker.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Question
from schemas.enums import QuestionStatus
from schemas.identity import Identity
from schemas.results import ErrorKind, OperationResult
from services.notifications import dispatch, fan_out
from services.rfps import get_rfp, get_visible_rfp

logger = logging.getLogger("rfp_portal.questions")


async def ask_question(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID,
    question: str,
    topic: Optional[str] = None
) -> OperationResult[Question]:
    if not identity.is_authenticated:
        return OperationResult.forbidden("Authentication required")
    if not question or not question.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Question text is required")

    rfp = await get_visible_rfp(db, identity, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    record = Question(
        rfp_id=rfp.id,
        user_id=identity.user_id,
        question=question.strip(),
        topic=topic,
        status=QuestionStatus.PENDING.value
    )
    db.add(record)
    await db.commit()

    logger.info(f"Question {record.id} asked on RFP {rfp.id}")
    return OperationResult.ok(record, "Question submitted")


async def answer_question(
    db: AsyncSession,
    identity: Identity,
    question_id: uuid.UUID,
    answer: str,
    publish: bool = True
) -> OperationResult[Question]:
    """Record an answer; publishing makes it visible to all bidders."""
    if not identity.is_admin:
        return OperationResult.forbidden("Only administrators can answer questions")
    if not answer or not answer.strip():
        return OperationResult.fail(ErrorKind.VALIDATION, "Answer text is required")

    record = await db.get(Question, question_id)
    if record is None:
        return OperationResult.not_found("Question")

    newly_published = publish and record.status != QuestionStatus.PUBLISHED.value
    record.answer = answer.strip()
    record.answered_by = identity.user_id
    record.answered_at = datetime.now(timezone.utc)
    record.status = (QuestionStatus.PUBLISHED if publish else QuestionStatus.IN_REVIEW).value

    rfp = await get_rfp(db, record.rfp_id)
    await db.commit()

    logger.info(f"Question {record.id} answered (status={record.status})")
    if newly_published:
        await dispatch(fan_out(
            [record.user_id],
            "Question Answered",
            f'Your question about "{rfp.title}" has been answered.',
            "question_answered",
            record.id
        ))
    return OperationResult.ok(record, "Answer saved")


async def list_questions(
    db: AsyncSession,
    identity: Identity,
    rfp_id: uuid.UUID
) -> OperationResult[list[Question]]:
    """Admins see every question; others see published ones plus their own."""
    rfp = await get_visible_rfp(db, identity, rfp_id)
    if rfp is None:
        return OperationResult.not_found("RFP")

    query = select(Question).where(Question.rfp_id == rfp.id).order_by(Question.created_at)
    if not identity.is_admin:
        visible = Question.status == QuestionStatus.PUBLISHED.value
        if identity.is_authenticated:
            visible = or_(visible, Question.user_id == identity.user_id)
        query = query.where(visible)

    result = await db.execute(query)
    return OperationResult.ok(list(result.scalars().all()))
