"""
Job processor — the poll loop and the maintenance loop.

This runs two daemon threads inside the worker process:

    1. Poll loop, every WORKER_POLL_INTERVAL seconds (default 5):
       → reclaim RUNNING jobs whose lease expired (crashed processors)
       → lease the oldest ready PENDING job, if any
       → execute it (handler → COMPLETED / retry / FAILED)
       At most ONE job per tick. A slow handler delays the next tick
       instead of piling up work, and throughput is capped at one job
       per interval per processor. Run more processors against the same
       database to scale out; the lease statement keeps them from
       running the same job twice.

    2. Maintenance loop, at startup and then every MAINTENANCE_INTERVAL
       (default 24h), enqueue cleanup_sessions and cleanup_usage_events.
       These are ordinary jobs and go through the poll loop like any other.

Shutdown: stop() sets a threading.Event. Both loops sleep on that event
instead of time.sleep(), so they wake immediately, and the poll loop checks
it again right before leasing. A handler that is already running is not
interrupted; stop() waits for it to reach a terminal or retry state.
"""

import logging
import threading
from datetime import timedelta
from typing import Any, Optional

from jobs.registry import Handler, HandlerRegistry, create_default_registry
from models.enums import MaintenanceJobType
from worker.executor import JobExecutor
from worker.retry import RetryHandler
from worker.store import JobStore

logger = logging.getLogger(__name__)


class JobProcessor:
    """
    Polls the job store and runs ready jobs one at a time.

    Register handlers before start(); the registry is frozen once the loops
    are running.
    """

    MAINTENANCE_JOB_TYPES = (
        MaintenanceJobType.CLEANUP_SESSIONS.value,
        MaintenanceJobType.CLEANUP_USAGE_EVENTS.value,
    )

    def __init__(
        self,
        store: JobStore,
        registry: Optional[HandlerRegistry] = None,
        poll_interval: float = 5.0,
        maintenance_interval: float = 86400.0,
        lease_timeout: float = 1800.0,
        usage_event_retention_days: int = 90,
    ):
        self._store = store
        if registry is None:
            registry = create_default_registry(
                store.session_factory, store.clock, retention_days=usage_event_retention_days
            )
        self._registry = registry
        self._executor = JobExecutor(store, self._registry, RetryHandler(store))
        self._poll_interval = poll_interval
        self._maintenance_interval = maintenance_interval
        self._lease_timeout = timedelta(seconds=lease_timeout) if lease_timeout > 0 else None

        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def running(self) -> bool:
        """True only while both the poll and the maintenance thread are alive."""
        return bool(self._threads) and all(t.is_alive() for t in self._threads)

    # ── Public API ──────────────────────────────────────────────

    def register_handler(self, job_type: str, handler: Handler) -> None:
        self._registry.register(job_type, handler)

    def enqueue(self, job_type: str, payload: Any = None) -> int:
        return self._store.enqueue(job_type, payload)

    def enqueue_delayed(self, job_type: str, payload: Any, delay: timedelta) -> int:
        return self._store.enqueue_delayed(job_type, payload, delay)

    def start(self) -> None:
        """Freeze the registry and start the poll and maintenance threads."""
        if self._threads:
            raise RuntimeError("Processor already started")

        self._registry.freeze()
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._poll_loop, name="job-poll", daemon=True),
            threading.Thread(target=self._maintenance_loop, name="job-maintenance", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

        logger.info(
            f"Job processor started (poll every {self._poll_interval}s, "
            f"handlers: {', '.join(self._registry.job_types())})"
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Signal both loops to exit and wait for them.

        An in-flight job finishes first; no new job is leased once the
        signal is set.
        """
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Thread {thread.name} still running after {timeout}s")
        logger.info("Job processor stopped")

    # ── One tick ────────────────────────────────────────────────

    def process_next_job(self) -> bool:
        """
        Run one poll tick. Returns True if a job was leased and executed.

        Store errors are logged and end the tick; the next tick starts over.
        """
        try:
            if self._lease_timeout is not None:
                self._store.reclaim_expired_leases(self._lease_timeout)

            if self._stop_event.is_set():
                return False

            job = self._store.lease_next_ready()
            if job is None:
                return False

            self._executor.execute(job)
            return True

        except Exception as e:
            logger.error(f"Poll tick failed: {e}", exc_info=True)
            return False

    def enqueue_maintenance_jobs(self) -> list[int]:
        job_ids = [self._store.enqueue(job_type) for job_type in self.MAINTENANCE_JOB_TYPES]
        logger.info(f"Enqueued maintenance jobs {job_ids}")
        return job_ids

    # ── Loops ───────────────────────────────────────────────────

    def _poll_loop(self) -> None:
        # wait() returns True once stop() sets the event
        while not self._stop_event.wait(self._poll_interval):
            self.process_next_job()

    def _maintenance_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.enqueue_maintenance_jobs()
            except Exception as e:
                logger.error(f"Failed to enqueue maintenance jobs: {e}", exc_info=True)
            if self._stop_event.wait(self._maintenance_interval):
                break
