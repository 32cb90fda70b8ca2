"""
RFP Status Resolver

The effective status of an RFP is derived from its stored status and
closing date at read time. The persisted status is a cache.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import RFP
from schemas.enums import RFPStatus

logger = logging.getLogger("rfp_portal.rfp_status")


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def effective_status(
    status: str,
    closing_date: datetime,
    now: Optional[datetime] = None
) -> RFPStatus:
    """
    closed if stored status is closed, or if it is active/draft and the
    closing date has passed; otherwise the stored status.
    """
    now = ensure_utc(now or datetime.now(timezone.utc))
    stored = RFPStatus(status)

    if stored == RFPStatus.CLOSED:
        return RFPStatus.CLOSED
    if ensure_utc(closing_date) < now:
        return RFPStatus.CLOSED
    return stored


def rfp_effective_status(rfp: RFP, now: Optional[datetime] = None) -> RFPStatus:
    return effective_status(rfp.status, rfp.closing_date, now)


def is_open_for_submissions(rfp: RFP, now: Optional[datetime] = None) -> bool:
    return rfp_effective_status(rfp, now) == RFPStatus.ACTIVE


async def reconcile_statuses(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Persist `closed` for active RFPs whose closing date has passed.

    Drafts are left alone: their stored status gates visibility. Safe to
    run any number of times.
    """
    now = now or datetime.now(timezone.utc)

    result = await db.execute(
        update(RFP)
        .where(RFP.status == RFPStatus.ACTIVE.value, RFP.closing_date < now)
        .values(status=RFPStatus.CLOSED.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    count = result.rowcount or 0
    if count:
        logger.info(f"Reconciled {count} RFP(s) to closed")
    return count
