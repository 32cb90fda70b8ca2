#!/usr/bin/env python
"""
Worker Startup Script

Run this to start the ARQ background worker.

Usage:
    python -m workers.startup

Or with arq CLI:
    arq workers.settings.WorkerSettings
"""

from arq import run_worker

from config.logging_config import setup_logging
from config.settings import settings
from workers.settings import WorkerSettings


def main():
    """Start the ARQ worker."""
    logger = setup_logging(settings.log_level)
    logger.info("Starting ARQ worker...")

    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
