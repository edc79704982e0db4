"""
Checkpoint store backed by energy_bucket_aggregation_jobs.

Every write after creation is conditional on the generation the caller
claimed. An overlapping run that lost its claim therefore writes nothing and can
never move the checkpoint past minutes it did not process.

CHANGELOG:
- 2026-10-16: Read and write the backfill range (STORY-026)
- 2026-10-07: Initial creation (STORY-023)

TODO:
- None
"""

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from energy_rollup.db.models import EnergyBucketAggregationJob
from energy_rollup.schemas import AggregationCheckpoint, CheckpointStatus


class CheckpointRepository:
    """Async access to aggregation checkpoints.

    Args:
        session_factory: Factory used to open one session per call.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, job_id: int) -> AggregationCheckpoint | None:
        """Return the checkpoint row, or None before the first run."""
        async with self._session_factory() as session:
            row = await session.get(EnergyBucketAggregationJob, job_id)
        if row is None:
            return None
        return AggregationCheckpoint(
            id=row.id,
            last_processed_timestamp=row.last_processed_timestamp,
            last_run_at=row.last_run_at,
            status=CheckpointStatus(row.status),
            generation=row.generation,
            range_start=row.range_start,
            range_end=row.range_end,
        )

    async def create(self, checkpoint: AggregationCheckpoint) -> bool:
        """Insert a new checkpoint row.

        Returns:
            bool: False if a row with this id already exists (a concurrent
            run seeded it first).
        """
        stmt = (
            insert(EnergyBucketAggregationJob)
            .values(**checkpoint.model_dump(mode="json"))
            .on_conflict_do_nothing(index_elements=["id"])
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def save(
        self, checkpoint: AggregationCheckpoint, expected_generation: int,
    ) -> bool:
        """Write *checkpoint* if the stored generation still matches.

        Returns:
            bool: True if exactly one row was updated.
        """
        table = EnergyBucketAggregationJob
        stmt = (
            update(table)
            .where(
                table.id == checkpoint.id,
                table.generation == expected_generation,
            )
            .values(
                last_processed_timestamp=checkpoint.last_processed_timestamp,
                last_run_at=checkpoint.last_run_at,
                status=checkpoint.status.value,
                generation=checkpoint.generation,
                range_start=checkpoint.range_start,
                range_end=checkpoint.range_end,
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1
