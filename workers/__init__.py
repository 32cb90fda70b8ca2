"""
Workers Package

Background job processing with ARQ (async Redis queue).
"""

from workers.settings import WorkerSettings, get_redis_settings
from workers.jobs import deliver_notifications, send_email, reconcile_rfp_statuses
from workers.queue import (
    get_redis_pool,
    close_redis_pool,
    enqueue_notifications,
    enqueue_email
)

__all__ = [
    # Settings
    "WorkerSettings",
    "get_redis_settings",
    # Jobs
    "deliver_notifications",
    "send_email",
    "reconcile_rfp_statuses",
    # Queue operations
    "get_redis_pool",
    "close_redis_pool",
    "enqueue_notifications",
    "enqueue_email"
]
