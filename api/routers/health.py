"""
Health check endpoint.

Checks that the database file is reachable and reports how many jobs are
waiting, so a load balancer or an operator can tell a stalled worker from
an idle one.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from models.enums import JobStatus
from models.job import Job

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Check that the database is reachable."""
    await db.execute(text("SELECT 1"))

    pending = (
        await db.execute(
            select(func.count(Job.id)).where(Job.status == JobStatus.PENDING.value)
        )
    ).scalar() or 0

    return {"status": "healthy", "database": "ok", "pending_jobs": pending}
