"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (create DB tables)
3. Registers all routers (jobs, health)
4. Runs shutdown logic (dispose the engine)

The job processor is not started here; it runs in its own process
(python -m worker.main) against the same database file.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from config.settings import settings
from models.base import async_engine, Base
import models.job, models.session, models.usage_event  # noqa: F401  (register tables)
from api.routers import jobs, health

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ─────────────────────────────────────────────────
    logger.info("Creating database tables...")
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"API ready, database: {settings.DATABASE_PATH}")

    yield

    # ── Shutdown ────────────────────────────────────────────────
    await async_engine.dispose()
    logger.info("API shut down")


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="SaaS Job Processor",
        description="Durable polling job queue with retry/backoff and daily maintenance jobs",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(jobs.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
