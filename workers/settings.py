"""
ARQ Worker Settings

Configuration for the async Redis queue worker.
"""

import logging

from arq import cron
from arq.connections import RedisSettings

from config.settings import settings
from workers.jobs import deliver_notifications, send_email, reconcile_rfp_statuses

logger = logging.getLogger("rfp_portal.workers")


def get_redis_settings() -> RedisSettings:
    """Redis connection settings parsed from REDIS_URL."""
    return RedisSettings.from_dsn(settings.redis_url)


def _reconcile_minutes() -> set[int]:
    step = max(1, min(settings.status_reconcile_minutes, 60))
    return set(range(0, 60, step))


class WorkerSettings:
    """
    ARQ Worker configuration.

    Usage:
        arq workers.settings.WorkerSettings
    """

    # Redis connection
    redis_settings = get_redis_settings()

    # Job functions to register
    functions = [
        deliver_notifications,
        send_email,
    ]

    cron_jobs = [
        cron(reconcile_rfp_statuses, minute=_reconcile_minutes(), run_at_startup=True),
    ]

    # Worker behavior
    max_jobs = 10
    job_timeout = 120
    keep_result = 3600

    # Retry settings
    max_tries = settings.notification_max_tries

    # Health check
    health_check_interval = 30

    @staticmethod
    async def on_startup(ctx):
        """Called when worker starts."""
        logger.info("ARQ Worker starting...")

    @staticmethod
    async def on_shutdown(ctx):
        """Called when worker shuts down."""
        from database.connection import close_db

        await close_db()
        logger.info("ARQ Worker shutting down...")
