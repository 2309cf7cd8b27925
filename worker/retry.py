"""
Retry handler — decides what happens when a job's handler raises.

Two outcomes:
1. attempts < max_attempts → back to PENDING, scheduled_at pushed into the future
2. attempts >= max_attempts → FAILED, error kept on the row for inspection

attempts was already incremented when the job was leased, so after the
first failure attempts == 1 and the job waits BACKOFF_SCHEDULE[0].

Lifecycle on failure:
    RUNNING → (exception) → PENDING at now + backoff  (if attempts left)
    RUNNING → (exception) → FAILED                    (if attempts exhausted)

Why reset to PENDING instead of retrying in place?
The poll loop already leases PENDING jobs whose scheduled_at has passed.
By setting the status back to PENDING with a later scheduled_at, the retry
goes through the same path as a new job and keeps its place in time order.
"""

import logging
from datetime import timedelta
from typing import Optional

from models.enums import JobStatus
from worker.store import Clock, JobRecord, JobStore

logger = logging.getLogger(__name__)

# 1st retry after 1 minute, 2nd after 5, every later one after 30
BACKOFF_SCHEDULE: tuple[timedelta, ...] = (
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=30),
)


def backoff_delay(attempts: int) -> timedelta:
    """Delay before the next try of a job that has failed `attempts` times."""
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")
    index = min(attempts, len(BACKOFF_SCHEDULE)) - 1
    return BACKOFF_SCHEDULE[index]


class RetryHandler:

    def __init__(self, store: JobStore, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or store.clock

    def handle_failure(self, job: JobRecord, error_msg: str) -> JobStatus:
        """
        Called by JobExecutor when a handler raises.

        Args:
            job: the leased job (attempts already counts this run)
            error_msg: the exception message, persisted on the row

        Returns:
            the status the job ended up in (PENDING or FAILED)
        """
        if job.attempts >= job.max_attempts:
            # ── Exhausted: permanent failure ────────────────────
            self._store.fail_permanently(job.id, error_msg, lease=job.started_at)
            logger.error(
                f"Job {job.id} [{job.type}] failed permanently after "
                f"{job.attempts}/{job.max_attempts} attempts: {error_msg}"
            )
            return JobStatus.FAILED

        # ── Retry: back to PENDING after backoff ────────────────
        delay = backoff_delay(job.attempts)
        next_attempt_at = self._clock() + delay
        self._store.reschedule_for_retry(job.id, error_msg, next_attempt_at, lease=job.started_at)
        logger.warning(
            f"Job {job.id} [{job.type}] will be retried at {next_attempt_at} "
            f"({job.attempts}/{job.max_attempts}): {error_msg}"
        )
        return JobStatus.PENDING
