"""
Worker Jobs

Background jobs: notification redelivery, email delivery and RFP status
reconciliation. Every job is safe to run more than once.
"""

from typing import Optional

from arq.worker import Retry

from config.logging_config import get_logger
from config.settings import settings

logger = get_logger("workers.jobs")


async def deliver_notifications(ctx: dict, events: list[dict]):
    """
    Retry delivery of notification events the request path could not store.

    Args:
        ctx: ARQ context
        events: Serialized NotificationEvent payloads
    """
    from services.notifications import NotificationEvent, get_dispatcher

    job_try = ctx.get("job_try", 1)
    parsed = [NotificationEvent.model_validate(event) for event in events]

    try:
        await get_dispatcher().store.save(parsed)
        logger.info(f"Redelivered {len(parsed)} notification(s) on try {job_try}")
    except Exception as e:
        if job_try >= settings.notification_max_tries:
            logger.error(f"Giving up on {len(parsed)} notification(s) after {job_try} tries: {e}")
            raise
        logger.warning(f"Notification redelivery failed (try {job_try}): {e}")
        raise Retry(defer=job_try * 10)


async def send_email(
    ctx: dict,
    to: str,
    subject: str,
    text: str,
    html: Optional[str] = None
):
    """Deliver one email through the relay; the client retries with backoff."""
    from services.email import EmailClient

    sent = await EmailClient().send(to, subject, text, html)
    return {"sent": sent, "to": to}


async def reconcile_rfp_statuses(ctx: dict):
    """Persist `closed` for RFPs past their closing date."""
    from database.connection import get_db_context
    from services.rfp_status import reconcile_statuses

    async with get_db_context() as db:
        count = await reconcile_statuses(db)

    return {"reconciled": count}
