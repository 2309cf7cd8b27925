"""
Pydantic schemas for the /jobs endpoints.

These are NOT database models — they define the HTTP API contract:
- JobCreate: what a caller sends to enqueue a job (request body)
- JobResponse: what we send back for a single job (response body)
- JobListResponse: paginated list of jobs
- JobStats: per-status counts across all jobs

FastAPI validates incoming data against these automatically.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

# one year; larger values overflow timedelta
MAX_DELAY_SECONDS = 365 * 24 * 3600


class JobCreate(BaseModel):
    """Request body for POST /jobs/."""

    type: str = Field(
        ...,
        min_length=1,
        max_length=100,
        examples=["cleanup_sessions"],
    )
    payload: Any = Field(
        default=None,
        description="Any JSON value; stored as a JSON document and passed to the handler verbatim",
        examples=[{"tenant_id": 42}],
    )
    delay_seconds: float = Field(
        default=0.0,
        ge=0,
        le=MAX_DELAY_SECONDS,
        description="Run no earlier than this many seconds from now",
    )
    max_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        le=20,
        description="Defaults to JOB_MAX_ATTEMPTS",
    )


class JobResponse(BaseModel):
    """Response body for a single job — returned by GET /jobs/{id} and POST /jobs/."""

    id: int
    type: str
    payload: str
    status: str
    attempts: int
    max_attempts: int
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    # read straight from SQLAlchemy model attributes
    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    """Paginated list of jobs — returned by GET /jobs/."""

    jobs: list[JobResponse]
    total: int       # total matching jobs (ignoring pagination)
    page: int
    page_size: int


class JobStats(BaseModel):
    """Per-status counts, returned by GET /jobs/stats."""

    total_jobs: int
    pending: int
    running: int
    completed: int
    failed: int
