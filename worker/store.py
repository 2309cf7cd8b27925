"""
Job store: every read and write the processor makes against the jobs table.

The one operation that needs care is lease_next_ready(). It runs as a single
statement:

    UPDATE jobs
       SET status='running', started_at=:now, attempts=attempts+1
     WHERE status='pending'
       AND id = (SELECT id FROM jobs
                  WHERE status='pending' AND scheduled_at <= :now
                  ORDER BY scheduled_at, id LIMIT 1
                  FOR UPDATE SKIP LOCKED)
    RETURNING id

On PostgreSQL the subquery locks the candidate row and concurrent leasers
skip past it. SQLite has no row locks (SQLAlchemy drops the FOR UPDATE
clause there), but it runs every write statement under its database-wide
write lock, so the select and the flip still happen as one unit. Either
way two processors can never both flip the same row to running.

Every other status write is a conditional UPDATE guarded by the status the
state machine expects (and optionally the lease stamp), so a row that
changed underneath us is reported instead of overwritten.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, aliased

from models.base import utcnow
from models.enums import JobStatus, validate_transition
from models.job import Job

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class JobNotFoundError(LookupError):
    """No job row with the given id."""


class LeaseLostError(RuntimeError):
    """The job is no longer RUNNING under the lease the caller holds."""


@dataclass(frozen=True)
class JobRecord:
    """
    Detached snapshot of a jobs row.

    Worker code passes these around instead of ORM instances, which are only
    valid while their session is open.
    """
    id: int
    type: str
    payload: str
    status: JobStatus
    attempts: int
    max_attempts: int
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def from_orm(cls, job: Job) -> "JobRecord":
        return cls(
            id=job.id,
            type=job.type,
            payload=job.payload,
            status=JobStatus(job.status),
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            scheduled_at=job.scheduled_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error=job.error,
        )


class JobStore:

    def __init__(self, session_factory, clock: Clock = utcnow, max_attempts: int = 3):
        self._session_factory = session_factory
        self._clock = clock
        self._max_attempts = max_attempts

    @property
    def session_factory(self):
        return self._session_factory

    @property
    def clock(self) -> Clock:
        return self._clock

    # ── Enqueue ─────────────────────────────────────────────────

    def enqueue(
        self,
        job_type: str,
        payload: Any = None,
        scheduled_at: Optional[datetime] = None,
        max_attempts: Optional[int] = None,
    ) -> int:
        """
        Persist a new PENDING job and return its id.

        payload is serialized to JSON here; handlers receive the string
        exactly as stored. scheduled_at defaults to now (run on next tick).
        """
        when = scheduled_at if scheduled_at is not None else self._clock()
        job = Job(
            type=job_type,
            payload=json.dumps(payload),
            status=JobStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts if max_attempts is not None else self._max_attempts,
            scheduled_at=when,
        )
        with self._session_factory() as session:
            session.add(job)
            session.commit()
            job_id = job.id

        logger.debug(f"Enqueued job {job_id} [{job_type}] for {when}")
        return job_id

    def enqueue_delayed(self, job_type: str, payload: Any, delay: timedelta) -> int:
        return self.enqueue(job_type, payload, scheduled_at=self._clock() + delay)

    # ── Lease ───────────────────────────────────────────────────

    def lease_next_ready(self) -> Optional[JobRecord]:
        """
        Atomically claim the oldest ready PENDING job.

        Returns the leased row (status RUNNING, attempts already incremented,
        started_at stamped), or None when nothing is ready. "Nothing ready"
        is the normal idle case, not an error.
        """
        validate_transition(JobStatus.PENDING, JobStatus.RUNNING)
        now = self._clock()

        # aliased so the subquery keeps its own FROM instead of correlating to the UPDATE target
        ready = aliased(Job)
        candidate = (
            select(ready.id)
            .where(ready.status == JobStatus.PENDING.value, ready.scheduled_at <= now)
            .order_by(ready.scheduled_at, ready.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(Job)
            .where(Job.id == candidate, Job.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.RUNNING.value,
                started_at=now,
                attempts=Job.attempts + 1,
            )
            .returning(Job.id)
            .execution_options(synchronize_session=False)
        )

        session: Session = self._session_factory()
        try:
            job_id = session.execute(stmt).scalar_one_or_none()
            if job_id is None:
                session.rollback()
                return None
            job = session.get(Job, job_id)
            record = JobRecord.from_orm(job)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.debug(f"Leased job {record.id} [{record.type}] attempt {record.attempts}")
        return record

    # ── Outcomes ────────────────────────────────────────────────

    def complete(self, job_id: int, lease: Optional[datetime] = None) -> None:
        self._finish(
            job_id,
            JobStatus.COMPLETED,
            lease,
            completed_at=self._clock(),
        )

    def fail_permanently(self, job_id: int, error: str, lease: Optional[datetime] = None) -> None:
        self._finish(
            job_id,
            JobStatus.FAILED,
            lease,
            completed_at=self._clock(),
            error=error,
        )

    def reschedule_for_retry(
        self,
        job_id: int,
        error: str,
        next_attempt_at: datetime,
        lease: Optional[datetime] = None,
    ) -> None:
        """Send a RUNNING job back to PENDING. attempts keeps the leased value."""
        self._finish(
            job_id,
            JobStatus.PENDING,
            lease,
            scheduled_at=next_attempt_at,
            error=error,
        )

    def _finish(self, job_id: int, target: JobStatus, lease: Optional[datetime], **values) -> None:
        """
        Move a RUNNING job to target.

        If lease is given, the write only lands when started_at still equals
        it, i.e. the row was not reclaimed in the meantime. A miss raises
        LeaseLostError whatever the row's status is now. Unguarded writes
        against a non-RUNNING row raise IllegalTransitionError.
        """
        validate_transition(JobStatus.RUNNING, target)

        conditions = [Job.id == job_id, Job.status == JobStatus.RUNNING.value]
        if lease is not None:
            conditions.append(Job.started_at == lease)

        stmt = (
            update(Job)
            .where(*conditions)
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )

        with self._session_factory() as session:
            result = session.execute(stmt)
            if result.rowcount == 1:
                session.commit()
                return

            current = session.execute(
                select(Job.status).where(Job.id == job_id)
            ).scalar_one_or_none()
            session.rollback()

        if current is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if lease is not None:
            # reclaimed (and maybe re-leased) since this lease was taken
            raise LeaseLostError(f"Job {job_id} is {current}; lease {lease} no longer held")
        if current != JobStatus.RUNNING.value:
            # surfaces as IllegalTransitionError for e.g. completed → failed
            validate_transition(JobStatus(current), target)
        raise LeaseLostError(f"Job {job_id} is {current} under a different lease")

    # ── Lease expiry ────────────────────────────────────────────

    def reclaim_expired_leases(self, lease_timeout: timedelta) -> int:
        """
        Recover RUNNING jobs abandoned by a crashed processor.

        A lease older than lease_timeout counts as a failed attempt: the job
        goes back to PENDING (due immediately) if it has attempts left,
        otherwise to FAILED. Each row is updated with its own lease stamp as
        a guard, so a processor that finishes the job at the same moment
        wins cleanly and the reclaim skips it.
        """
        now = self._clock()
        cutoff = now - lease_timeout
        message = f"lease expired after {lease_timeout.total_seconds():.0f}s"
        reclaimed = 0

        with self._session_factory() as session:
            stale = session.execute(
                select(Job.id, Job.attempts, Job.max_attempts, Job.started_at)
                .where(Job.status == JobStatus.RUNNING.value, Job.started_at < cutoff)
                .order_by(Job.id)
            ).all()

            for job_id, attempts, max_attempts, started_at in stale:
                if attempts >= max_attempts:
                    values = {"status": JobStatus.FAILED.value, "completed_at": now}
                else:
                    values = {"status": JobStatus.PENDING.value, "scheduled_at": now}

                result = session.execute(
                    update(Job)
                    .where(
                        Job.id == job_id,
                        Job.status == JobStatus.RUNNING.value,
                        Job.started_at == started_at,
                    )
                    .values(error=message, **values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    reclaimed += 1
                    logger.warning(
                        f"Reclaimed job {job_id} ({message}) → {values['status']}"
                    )

            session.commit()

        return reclaimed

    # ── Reads ───────────────────────────────────────────────────

    def get(self, job_id: int) -> Optional[JobRecord]:
        with self._session_factory() as session:
            job = session.get(Job, job_id)
            return JobRecord.from_orm(job) if job is not None else None
