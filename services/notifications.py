"""
Notification Service

Dispatches user-facing notification events to the notification store.
State transitions commit first; dispatch happens afterwards and a store
failure is logged and handed to the retry queue instead of propagating.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import get_db_context
from database.models import Notification, User
from schemas.enums import CompanyRole, PlatformRole

logger = logging.getLogger("rfp_portal.notifications")


class NotificationEvent(BaseModel):
    """A notification to deliver to one user."""
    user_id: uuid.UUID
    title: str
    message: str
    type: str
    reference_id: Optional[uuid.UUID] = None


def fan_out(
    user_ids: Iterable[uuid.UUID],
    title: str,
    message: str,
    type: str,
    reference_id: Optional[uuid.UUID] = None
) -> list[NotificationEvent]:
    """Build one event per distinct recipient."""
    seen = set()
    events = []
    for user_id in user_ids:
        if user_id in seen:
            continue
        seen.add(user_id)
        events.append(NotificationEvent(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            reference_id=reference_id
        ))
    return events


class NotificationStore:
    """Writes notifications to the notifications table in its own transaction."""

    async def save(self, events: Sequence[NotificationEvent]) -> None:
        async with get_db_context() as db:
            db.add_all([
                Notification(
                    user_id=event.user_id,
                    title=event.title,
                    message=event.message,
                    type=event.type,
                    reference_id=event.reference_id
                )
                for event in events
            ])


class NotificationDispatcher:
    """Delivers events to a store, falling back to the retry queue."""

    def __init__(self, store: Optional[NotificationStore] = None):
        self.store = store or NotificationStore()

    async def dispatch(self, events: Sequence[NotificationEvent]) -> None:
        if not events:
            return

        try:
            await self.store.save(events)
            logger.debug(f"Delivered {len(events)} notification(s)")
        except Exception as e:
            logger.warning(f"Notification store failed, scheduling retry: {e}", exc_info=True)
            await self._schedule_retry(events)

    async def _schedule_retry(self, events: Sequence[NotificationEvent]) -> None:
        from workers.queue import enqueue_notifications

        try:
            await enqueue_notifications([event.model_dump(mode="json") for event in events])
        except Exception as e:
            logger.warning(f"Could not enqueue notification retry, {len(events)} event(s) dropped: {e}")


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Get or create the process-wide dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher


def configure_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    """Replace the process-wide dispatcher (tests inject a recording store)."""
    global _dispatcher
    _dispatcher = dispatcher


async def dispatch(events: Sequence[NotificationEvent]) -> None:
    await get_dispatcher().dispatch(events)


# ============================================================================
# Recipient lookups
# ============================================================================

async def company_member_ids(
    db: AsyncSession,
    company_id: uuid.UUID,
    admins_only: bool = False
) -> list[uuid.UUID]:
    """Primary members (role admin or member) of a company."""
    roles = [CompanyRole.ADMIN.value]
    if not admins_only:
        roles.append(CompanyRole.MEMBER.value)

    result = await db.execute(
        select(User.id).where(
            User.company_id == company_id,
            User.company_role.in_(roles)
        )
    )
    return list(result.scalars().all())


async def platform_admin_ids(db: AsyncSession) -> list[uuid.UUID]:
    result = await db.execute(
        select(User.id).where(User.role == PlatformRole.ADMIN.value, User.is_active.is_(True))
    )
    return list(result.scalars().all())


# ============================================================================
# Inbox
# ============================================================================

async def list_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    unread_only: bool = False,
    limit: int = 50
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.read_at.is_(None))
    query = query.order_by(Notification.created_at.desc()).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_ids: Optional[list[uuid.UUID]] = None
) -> int:
    """Mark the given notifications (or all of them) as read. Returns the count."""
    statement = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=datetime.now(timezone.utc))
    )
    if notification_ids is not None:
        statement = statement.where(Notification.id.in_(notification_ids))

    result = await db.execute(statement)
    await db.commit()
    return result.rowcount or 0
