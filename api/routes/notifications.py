"""
Notifications Router (v1)

The caller's notification inbox.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db
from schemas.identity import Identity
from services import notifications as notification_service
from api.auth.dependencies import get_current_identity


router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    message: str
    type: str
    reference_id: Optional[uuid.UUID] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class MarkReadRequest(BaseModel):
    """Omit `ids` to mark everything read."""
    ids: Optional[List[uuid.UUID]] = None


class MarkReadResponse(BaseModel):
    updated: int


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    return await notification_service.list_notifications(
        db, identity.user_id, unread_only, limit
    )


@router.post("/read", response_model=MarkReadResponse)
async def mark_read(
    body: MarkReadRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db)
):
    updated = await notification_service.mark_read(db, identity.user_id, body.ids)
    return MarkReadResponse(updated=updated)
