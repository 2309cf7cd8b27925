"""
Job ORM model — maps to the "jobs" table.

Key design decisions:
- Integer autoincrement primary key: ids are assigned monotonically, so
  they double as the insertion-order tiebreaker when two jobs share a
  scheduled_at
- payload is TEXT holding a JSON document: the processor never looks
  inside it, only the handler registered for `type` does
- scheduled_at drives both delayed jobs and retry backoff
- attempts + max_attempts: drives the retry/permanent-failure logic
- (status, scheduled_at) index: the lease query filters on both
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, utcnow
from models.enums import JobStatus


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        Index("idx_jobs_status_scheduled", "status", "scheduled_at"),
    )

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)

    # ── Payload & outcome ───────────────────────────────────────
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="null")
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.PENDING.value, nullable=False
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Retry tracking ──────────────────────────────────────────
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    # ── Lifecycle timestamps (naive UTC) ────────────────────────
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Job {self.id} [{self.type}] {self.status}>"
