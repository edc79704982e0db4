"""
Service container wiring every collaborator once per process.

The engine, session factory, Redis client, repositories, query service and
aggregation job are built from Settings at startup and passed explicitly
through constructors. The FastAPI app keeps the container on
``app.state``; the backfill CLI builds its own.

CHANGELOG:
- 2026-10-09: Pass AGGREGATION_MAX_CONCURRENCY to the job (STORY-024)
- 2026-10-05: Initial creation (STORY-022)

TODO:
- None
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from energy_rollup.cache.redis_cache import RedisCache, create_redis
from energy_rollup.config import Settings
from energy_rollup.db.session import create_engine, create_session_factory
from energy_rollup.repositories import (
    BucketRepository,
    CheckpointRepository,
    ReadingRepository,
)
from energy_rollup.services.aggregation_job import EnergyAggregationJob
from energy_rollup.services.energy_query import EnergyQueryService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide collaborators."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    cache: RedisCache
    readings: ReadingRepository
    buckets: BucketRepository
    checkpoints: CheckpointRepository
    query: EnergyQueryService
    job: EnergyAggregationJob

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        """Build every collaborator from *settings*.

        No connection is opened here; the engine and Redis client connect
        lazily on first use.
        """
        tz = settings.tz
        engine = create_engine(settings)
        session_factory = create_session_factory(engine)
        cache = RedisCache(create_redis(settings), default_ttl=settings.CACHE_TTL_S)

        readings = ReadingRepository(session_factory)
        buckets = BucketRepository(session_factory, readings, tz)
        checkpoints = CheckpointRepository(session_factory)

        query = EnergyQueryService(
            readings, buckets, cache, tz, cache_ttl=settings.CACHE_TTL_S,
        )
        job = EnergyAggregationJob(
            readings,
            buckets,
            checkpoints,
            cache,
            max_concurrency=settings.AGGREGATION_MAX_CONCURRENCY,
            enabled=settings.AGGREGATION_JOB_ENABLED,
        )

        logger.info("Service container built (timezone %s)", settings.TIMEZONE)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            cache=cache,
            readings=readings,
            buckets=buckets,
            checkpoints=checkpoints,
            query=query,
            job=job,
        )

    async def close(self) -> None:
        """Release the Redis client and the database connection pool."""
        try:
            await self.cache.close()
        except Exception:
            logger.warning("Closing Redis client failed", exc_info=True)
        await self.engine.dispose()
