"""
Collaborator contracts consumed by the aggregation job and query engine.

The SQLAlchemy repositories and the Redis cache implement these; tests
substitute in-memory doubles.

CHANGELOG:
- 2026-10-16: Add ReadingSource.history; drop unused Cache.delete (STORY-026)
- 2026-10-07: Add CheckpointStore (STORY-023)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

from typing import Any, Protocol

from energy_rollup.schemas import AggregationCheckpoint, Bucket, Reading


class ReadingSource(Protocol):
    """Append-only store of raw readings."""

    async def insert(self, reading: Reading) -> None: ...

    async def range_query(self, from_ts: int, to_ts: int) -> list[Reading]:
        """Readings with ``from_ts <= timestamp <= to_ts``, ascending."""
        ...

    async def before(self, ts: int) -> Reading | None:
        """Latest reading strictly before *ts*."""
        ...

    async def after(self, ts: int) -> Reading | None:
        """Earliest reading strictly after *ts*."""
        ...

    async def earliest(self) -> Reading | None: ...

    async def history(
        self,
        limit: int,
        offset: int = 0,
        from_ts: int | None = None,
        to_ts: int | None = None,
    ) -> list[Reading]:
        """One page of readings, newest first."""
        ...


class BucketStore(Protocol):
    """Persisted 1-minute buckets and their derived rollups."""

    async def range_buckets(self, from_ts: int, to_ts: int) -> list[Bucket]:
        """Buckets with ``from_ts <= bucket_start < to_ts``, ascending."""
        ...

    async def first_reading_before(self, ts: int) -> Reading | None: ...

    async def first_reading_after(self, ts: int) -> Reading | None: ...

    async def latest_bucket_timestamp(self) -> int | None: ...

    async def hourly_rollup(self, from_ts: int, to_ts: int) -> list[Bucket]: ...

    async def daily_rollup(self, from_ts: int, to_ts: int) -> list[Bucket]: ...

    async def upsert_bucket(self, bucket: Bucket) -> None: ...

    async def rebuild_rollups(self) -> None: ...


class CheckpointStore(Protocol):
    """Checkpoint rows with generation-guarded writes."""

    async def get(self, job_id: int) -> AggregationCheckpoint | None: ...

    async def create(self, checkpoint: AggregationCheckpoint) -> bool:
        """Insert the row; False if it already exists."""
        ...

    async def save(
        self, checkpoint: AggregationCheckpoint, expected_generation: int,
    ) -> bool:
        """Write the row only if its stored generation matches."""
        ...


class Cache(Protocol):
    """Fail-soft key/value cache."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def invalidate_pattern(self, pattern: str) -> None: ...
