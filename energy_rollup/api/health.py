"""
Dependency health endpoint for the rollup service.

GET /health runs a database round trip and a Redis PING concurrently and
reports each as ``ok`` or ``error``. Any failing dependency turns the
overall status to ``degraded`` with HTTP 503 so load balancers can pull
the instance.

CHANGELOG:
- 2026-10-05: Check through the service container, run checks concurrently (STORY-022)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from energy_rollup.api.deps import Container
from energy_rollup.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_component(name: str, check: Callable[[], Awaitable[object]]) -> str:
    try:
        await check()
    except Exception:
        logger.warning("Health check: %s failed", name, exc_info=True)
        return "error"
    return "ok"


async def _select_one(container: ServiceContainer) -> None:
    async with container.session_factory() as session:
        await session.execute(text("SELECT 1"))


@router.get("/health")
async def health_check(container: Container) -> JSONResponse:
    """Report database and Redis reachability.

    Returns:
        JSONResponse: ``{"status", "db", "redis"}``; 200 when both checks
            pass, 503 otherwise.
    """
    db_status, redis_status = await asyncio.gather(
        _check_component("db", lambda: _select_one(container)),
        _check_component("redis", container.cache.ping),
    )

    healthy = db_status == redis_status == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "db": db_status,
            "redis": redis_status,
        },
    )
