"""
Job Queue Service

Helper functions to enqueue background jobs.
"""

from typing import Optional

from arq import create_pool
from arq.connections import ArqRedis

from workers.settings import get_redis_settings


# Module-level connection pool
_redis_pool: Optional[ArqRedis] = None


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis connection pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = await create_pool(get_redis_settings())
    return _redis_pool


async def close_redis_pool():
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None


async def enqueue_notifications(events: list[dict]) -> Optional[str]:
    """
    Enqueue redelivery of notification events.

    Args:
        events: NotificationEvent payloads (JSON mode)

    Returns:
        Job ID, or None if the job was not queued
    """
    redis = await get_redis_pool()
    job = await redis.enqueue_job("deliver_notifications", events)
    return job.job_id if job else None


async def enqueue_email(
    to: str,
    subject: str,
    text: str,
    html: Optional[str] = None
) -> Optional[str]:
    """Enqueue one email for delivery through the relay."""
    redis = await get_redis_pool()
    job = await redis.enqueue_job("send_email", to, subject, text, html)
    return job.job_id if job else None
