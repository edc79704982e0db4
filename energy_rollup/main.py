"""
FastAPI application entry point for the energy rollup service.

The lifespan configures JSON logging, builds the service container once,
starts the aggregation scheduler and tears both down on shutdown.

CHANGELOG:
- 2026-10-10: Register energy cost and rollup routes (STORY-025)
- 2026-10-06: Start the aggregation scheduler in the lifespan (STORY-022)
- 2026-10-05: Build the service container at startup (STORY-022)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from energy_rollup.api.energy import router as energy_router
from energy_rollup.api.health import router as health_router
from energy_rollup.api.jobs import router as jobs_router
from energy_rollup.config import get_settings
from energy_rollup.container import ServiceContainer
from energy_rollup.logging_config import setup_logging
from energy_rollup.scheduler import AggregationScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build collaborators, run the scheduler."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    container = ServiceContainer.from_settings(settings)
    scheduler = AggregationScheduler(container.job, settings.AGGREGATION_INTERVAL_S)
    app.state.container = container
    app.state.scheduler = scheduler

    if settings.AGGREGATION_JOB_ENABLED:
        scheduler.start()
    else:
        logger.info("Aggregation job disabled; scheduler not started")

    try:
        yield
    finally:
        await scheduler.stop()
        await container.close()


app = FastAPI(
    title="Energy Rollup API",
    description="Incremental energy rollups and range queries over power readings.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(energy_router)
app.include_router(jobs_router)


@app.get("/")
async def health() -> dict:
    """Liveness endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
