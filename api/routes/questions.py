"""
Questions Router (v1)

Bidder questions on RFPs and published answers.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.identity import Identity
from services import questions as question_service
from api.auth.dependencies import get_optional_identity, get_current_identity
from api.middleware.error_handler import raise_for_result


router = APIRouter(tags=["Questions"])


class QuestionCreate(BaseModel):
    question: str = Field(min_length=1, max_length=5000)
    topic: Optional[str] = None


class AnswerRequest(BaseModel):
    answer: str = Field(min_length=1)
    publish: bool = True


class QuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rfp_id: uuid.UUID
    user_id: uuid.UUID
    question: str
    topic: Optional[str] = None
    status: str
    answer: Optional[str] = None
    answered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@router.get("/rfps/{rfp_id}/questions", response_model=List[QuestionResponse])
async def list_questions(
    rfp_id: uuid.UUID,
    identity: Identity = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db)
):
    """Published questions, plus the caller's own; admins see all."""
    result = raise_for_result(await question_service.list_questions(db, identity, rfp_id))
    return result.data


@router.post("/rfps/{rfp_id}/questions", response_model=QuestionResponse, status_code=201)
async def ask_question(
    rfp_id: uuid.UUID,
    body: QuestionCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await question_service.ask_question(
        db, identity, rfp_id, body.question, body.topic
    ))
    return result.data


@router.post("/questions/{question_id}/answer", response_model=QuestionResponse)
async def answer_question(
    question_id: uuid.UUID,
    body: AnswerRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    result = raise_for_result(await question_service.answer_question(
        db, identity, question_id, body.answer, body.publish
    ))
    return result.data
