"""
Job executor — runs a single leased job.

This is the code that actually DOES THE WORK. The processor leases a job and
calls executor.execute(job), which handles the rest of the lifecycle:

    1. Find the handler registered for job.type
       → none registered: FAILED right away, no retry (a config bug, not a
         transient fault)
    2. Call handler(job.payload)
    3. On success: mark COMPLETED
    4. On exception: delegate to RetryHandler (which decides retry vs FAILED)

Nothing a handler raises escapes execute(), SystemExit included (only
KeyboardInterrupt propagates). Store errors do escape: the caller's
tick ends and the job stays RUNNING until its lease expires.
"""

import logging
import time

from jobs.registry import HandlerRegistry
from models.enums import JobStatus
from worker.retry import RetryHandler
from worker.store import JobRecord, JobStore

logger = logging.getLogger(__name__)


class JobExecutor:

    def __init__(self, store: JobStore, registry: HandlerRegistry, retry_handler: RetryHandler):
        self._store = store
        self._registry = registry
        self._retry_handler = retry_handler

    def execute(self, job: JobRecord) -> JobStatus:
        """
        Run a leased job to a terminal or retry state.

        Returns:
            the status the job ended up in
        """
        handler = self._registry.get(job.type)
        if handler is None:
            message = f"no handler registered for job type: {job.type}"
            self._store.fail_permanently(job.id, message, lease=job.started_at)
            logger.error(f"Job {job.id} failed: {message}")
            return JobStatus.FAILED

        start_time = time.monotonic()
        try:
            handler(job.payload)
        except KeyboardInterrupt:
            raise
        except BaseException as e:
            # SystemExit and friends from a handler must not kill the poll thread
            elapsed = time.monotonic() - start_time
            logger.warning(
                f"Job {job.id} [{job.type}] raised after {elapsed:.3f}s: {e}",
                exc_info=True,
            )
            return self._retry_handler.handle_failure(job, str(e) or type(e).__name__)

        elapsed = time.monotonic() - start_time
        self._store.complete(job.id, lease=job.started_at)
        logger.info(f"Job {job.id} [{job.type}] completed in {elapsed:.3f}s")
        return JobStatus.COMPLETED
