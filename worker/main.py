"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server. It runs the
JobProcessor: the poll loop that leases and executes jobs, and the
maintenance loop that enqueues the daily cleanup jobs.

Both run as daemon threads. The main thread just waits for Ctrl+C (SIGINT)
or a kill signal (SIGTERM) to shut down gracefully.

To run:
    python -m worker.main

More than one worker process may point at the same database file; each
job is still leased by exactly one of them.
"""

import logging
import signal
import threading

from config.settings import settings
from models.base import Base, sync_engine, SyncSessionLocal
import models.job, models.session, models.usage_event  # noqa: F401  (register tables)
from worker.processor import JobProcessor
from worker.store import JobStore

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_processor() -> JobProcessor:
    store = JobStore(SyncSessionLocal, max_attempts=settings.JOB_MAX_ATTEMPTS)
    return JobProcessor(
        store,
        poll_interval=settings.WORKER_POLL_INTERVAL,
        maintenance_interval=settings.MAINTENANCE_INTERVAL,
        lease_timeout=settings.JOB_LEASE_TIMEOUT,
        usage_event_retention_days=settings.USAGE_EVENT_RETENTION_DAYS,
    )


def main():
    # Safe to call multiple times: if the API already created the tables,
    # this is a no-op.
    logger.info("Ensuring database tables exist...")
    Base.metadata.create_all(sync_engine)

    processor = build_processor()
    # Application-specific handlers are registered here, before start()
    processor.start()

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info("Worker process running. Press Ctrl+C to stop.")

    # Block the main thread until shutdown signal
    shutdown_event.wait()

    # Stop outside the signal handler: it may wait for an in-flight job
    processor.stop()
    logger.info("Worker process exited")


if __name__ == "__main__":
    main()
