"""
Built-in maintenance jobs.

The processor enqueues both of these at startup and once a day. They are
ordinary jobs: leased, retried and failed like any other.

Both are idempotent. They delete by a time cutoff, so running one twice in a
row (e.g. after a crash between delete and completion) deletes nothing the
second time and never errors.
"""

import logging
from datetime import timedelta

from sqlalchemy import delete

from jobs.base import AbstractJobHandler
from models.enums import MaintenanceJobType
from models.session import UserSession
from models.usage_event import UsageEvent

logger = logging.getLogger(__name__)


class CleanupSessionsJob(AbstractJobHandler):
    """Delete sessions whose expires_at has passed. Payload is ignored."""

    def __init__(self, session_factory, clock):
        self._session_factory = session_factory
        self._clock = clock

    def run(self, payload: str) -> None:
        now = self._clock()
        with self._session_factory() as session:
            result = session.execute(
                delete(UserSession).where(UserSession.expires_at < now)
            )
            session.commit()
        logger.info(f"Cleaned up {result.rowcount} expired sessions")

    @property
    def job_type(self) -> str:
        return MaintenanceJobType.CLEANUP_SESSIONS.value


class CleanupUsageEventsJob(AbstractJobHandler):
    """Delete usage events older than the retention window (90 days by default)."""

    def __init__(self, session_factory, clock, retention: timedelta = timedelta(days=90)):
        self._session_factory = session_factory
        self._clock = clock
        self._retention = retention

    def run(self, payload: str) -> None:
        cutoff = self._clock() - self._retention
        with self._session_factory() as session:
            result = session.execute(
                delete(UsageEvent).where(UsageEvent.created_at < cutoff)
            )
            session.commit()
        logger.info(
            f"Cleaned up {result.rowcount} usage events older than {self._retention.days} days"
        )

    @property
    def job_type(self) -> str:
        return MaintenanceJobType.CLEANUP_USAGE_EVENTS.value
