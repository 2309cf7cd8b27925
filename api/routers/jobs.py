"""
Job endpoints for dashboards and operator tooling.

POST /jobs/          → Enqueue a job (immediate or delayed)
GET  /jobs/          → List jobs with filtering + pagination
GET  /jobs/stats     → Counts per status
GET  /jobs/{job_id}  → Get a single job by id

The API layer is intentionally thin: validate input, talk to the database,
return the response. It never leases or executes jobs; the worker process
does that.
"""

import json
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from api.schemas.job import JobCreate, JobResponse, JobListResponse, JobStats
from config.settings import settings
from models.base import utcnow
from models.enums import JobStatus
from models.job import Job

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/", response_model=JobResponse, status_code=201)
async def create_job(
    job_in: JobCreate,
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """
    Enqueue a job.

    The row is saved with status=pending and scheduled_at = now + delay.
    The worker's poll loop picks it up once scheduled_at has passed.
    """
    job = Job(
        type=job_in.type,
        payload=json.dumps(job_in.payload),
        status=JobStatus.PENDING.value,
        attempts=0,
        max_attempts=job_in.max_attempts or settings.JOB_MAX_ATTEMPTS,
        scheduled_at=utcnow() + timedelta(seconds=job_in.delay_seconds),
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return JobResponse.model_validate(job)


@router.get("/", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    job_type: Optional[str] = Query(None, alias="type", description="Filter by job type"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Jobs per page"),
    db: AsyncSession = Depends(get_db),
) -> JobListResponse:
    """List jobs, newest first."""
    conditions = []
    if status:
        conditions.append(Job.status == status.value)
    if job_type:
        conditions.append(Job.type == job_type)

    total = (await db.execute(select(func.count(Job.id)).where(*conditions))).scalar() or 0

    offset = (page - 1) * page_size
    query = (
        select(Job)
        .where(*conditions)
        .order_by(Job.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    jobs = (await db.execute(query)).scalars().all()

    return JobListResponse(
        jobs=[JobResponse.model_validate(j) for j in jobs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", response_model=JobStats)
async def get_job_stats(
    db: AsyncSession = Depends(get_db),
) -> JobStats:
    """Counts per status in a single GROUP BY query."""
    rows = (
        await db.execute(select(Job.status, func.count(Job.id)).group_by(Job.status))
    ).all()
    counts = {status: count for status, count in rows}

    return JobStats(
        total_jobs=sum(counts.values()),
        pending=counts.get(JobStatus.PENDING.value, 0),
        running=counts.get(JobStatus.RUNNING.value, 0),
        completed=counts.get(JobStatus.COMPLETED.value, 0),
        failed=counts.get(JobStatus.FAILED.value, 0),
    )


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: int,
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await db.get(Job, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.model_validate(job)
