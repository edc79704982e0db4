"""
Aggregation job that rolls raw readings up into 1-minute buckets.

Each scheduled run continues from the checkpoint, aggregates every complete
minute up to (not including) the current one, and persists the checkpoint
after every ``checkpoint_every`` minutes and once at completion. A crash
therefore re-processes at most one batch on the next run, which is safe
because bucket writes are idempotent upserts.

Overlapping runs are guarded by the checkpoint generation: a run claims the
row by bumping the generation, and every later write is conditional on it.
The loser of a race raises CheckpointConflictError without writing.

The same machinery drives historical backfills on a separate checkpoint
row, so a long backfill is interruptible and resumes per batch when it is
rerun for the same range.

CHANGELOG:
- 2026-10-16: Resume a backfill only for the range it was started with (STORY-026)
- 2026-10-09: Bounded concurrency inside a checkpoint batch (STORY-024)
- 2026-10-08: Add backfill() on its own checkpoint row (STORY-023)
- 2026-10-07: Generation-guarded checkpoint writes (STORY-023)
- 2026-10-06: Initial creation (STORY-022)

TODO:
- None
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence

from energy_rollup.cache.redis_cache import AGGREGATED_KEY_PREFIX
from energy_rollup.errors import CheckpointConflictError
from energy_rollup.protocols import BucketStore, Cache, CheckpointStore, ReadingSource
from energy_rollup.schemas import (
    CHANNELS,
    AggregationCheckpoint,
    Bucket,
    CheckpointStatus,
)
from energy_rollup.services.integrator import deduplicate, integrate

logger = logging.getLogger(__name__)

MINUTE = 60
BOOTSTRAP_LOOKBACK_S = 24 * 3600

LIVE_JOB_ID = 1
BACKFILL_JOB_ID = 2


def floor_minute(ts: int) -> int:
    """Round a Unix timestamp down to the start of its minute."""
    return ts // MINUTE * MINUTE


class EnergyAggregationJob:
    """Rolls raw readings into minute buckets and tracks progress.

    Args:
        readings: Raw reading source.
        buckets: Bucket store written by this job.
        checkpoints: Checkpoint rows for the live job and backfills.
        cache: Optional cache whose aggregated entries are invalidated
            after a successful run.
        clock: Returns the current Unix time in seconds.
        checkpoint_every: Minutes processed between checkpoint writes.
        max_concurrency: Minutes of one batch aggregated in parallel.
        enabled: When False, ``run()`` is a no-op.
    """

    def __init__(
        self,
        readings: ReadingSource,
        buckets: BucketStore,
        checkpoints: CheckpointStore,
        cache: Cache | None = None,
        *,
        clock: Callable[[], float] = time.time,
        checkpoint_every: int = 10,
        max_concurrency: int = 1,
        enabled: bool = True,
    ) -> None:
        if checkpoint_every < 1:
            raise ValueError("checkpoint_every must be >= 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._readings = readings
        self._buckets = buckets
        self._checkpoints = checkpoints
        self._cache = cache
        self._clock = clock
        self._checkpoint_every = checkpoint_every
        self._max_concurrency = max_concurrency
        self._enabled = enabled

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def aggregate_minute_bucket(self, bucket_start: int) -> Bucket | None:
        """Aggregate the readings of one minute into a bucket.

        Readings sharing a timestamp count once (the last one wins). With
        fewer than two distinct samples nothing is written and the minute
        stays un-rolled-up.

        Args:
            bucket_start: Minute start in Unix seconds (multiple of 60).

        Returns:
            Bucket | None: The bucket written, or None if skipped.

        Raises:
            ValueError: If *bucket_start* is not minute-aligned.
        """
        if bucket_start % MINUTE:
            raise ValueError(f"bucket_start {bucket_start} is not minute-aligned")

        # Integer timestamps: [start, start + 59] == [start, start + 60)
        readings = deduplicate(
            await self._readings.range_query(bucket_start, bucket_start + MINUTE - 1)
        )
        if len(readings) < 2:
            logger.debug(
                "Skipping minute %d: %d reading(s), need 2", bucket_start, len(readings),
            )
            return None

        first, last = readings[0], readings[-1]
        fields = {
            "bucket_start": bucket_start,
            "bucket_end": bucket_start + MINUTE,
            "readings_count": len(readings),
            "first_timestamp": first.timestamp,
            "last_timestamp": last.timestamp,
        }
        for channel in CHANNELS:
            fields[f"{channel}_kwh"] = integrate(
                [(r.timestamp, getattr(r, channel)) for r in readings]
            )
            fields[f"first_{channel}"] = getattr(first, channel)
            fields[f"last_{channel}"] = getattr(last, channel)

        bucket = Bucket(**fields)
        await self._buckets.upsert_bucket(bucket)
        return bucket

    async def process_latest(self) -> int:
        """Aggregate every complete minute since the live checkpoint.

        On the very first run the checkpoint is seeded just before the
        minute of the earliest reading (or 24h back with no readings) and
        processing continues in the same run.

        Returns:
            int: Number of minutes processed.

        Raises:
            CheckpointConflictError: Another run claimed the checkpoint.
            Exception: Any failure while aggregating; the checkpoint keeps
                its last persisted value and its status becomes ``error``.
        """
        now = int(self._clock())
        stop = floor_minute(now)

        checkpoint = await self._checkpoints.get(LIVE_JOB_ID)
        if checkpoint is None:
            earliest = await self._readings.earliest()
            if earliest is None:
                start = stop - BOOTSTRAP_LOOKBACK_S
            else:
                start = floor_minute(earliest.timestamp) - MINUTE
            checkpoint = await self._seed(LIVE_JOB_ID, min(start, stop - MINUTE), now)

        return await self._process(checkpoint, stop, now)

    async def backfill(self, start: int, end: int) -> int:
        """Re-aggregate historical minutes overlapping ``[start, end)``.

        Progress is tracked on the backfill checkpoint row together with the
        requested minute range. Calling again with the same range after an
        interruption resumes from the last persisted batch; any other range
        starts over from its first minute. The current minute is never
        processed.

        Returns:
            int: Number of minutes processed by this call.
        """
        if end <= start:
            raise ValueError("backfill end must be after start")

        now = int(self._clock())
        first = floor_minute(start)
        range_end = floor_minute(end + MINUTE - 1)
        stop = min(range_end, floor_minute(now))
        base = first - MINUTE

        checkpoint = await self._checkpoints.get(BACKFILL_JOB_ID)
        if checkpoint is None:
            checkpoint = await self._seed(
                BACKFILL_JOB_ID, base, now, range_start=first, range_end=range_end,
            )

        resumable = (
            checkpoint.status != CheckpointStatus.COMPLETED
            and (checkpoint.range_start, checkpoint.range_end) == (first, range_end)
            and base <= checkpoint.last_processed_timestamp < stop
        )
        if not resumable:
            checkpoint = checkpoint.model_copy(
                update={
                    "last_processed_timestamp": base,
                    "range_start": first,
                    "range_end": range_end,
                }
            )
        elif checkpoint.last_processed_timestamp > base:
            logger.info(
                "Resuming backfill of [%d, %d) after minute %d",
                first,
                range_end,
                checkpoint.last_processed_timestamp,
            )

        return await self._process(checkpoint, stop, now)

    async def run(self) -> int:
        """Scheduler entry point; no-op when the job is disabled."""
        if not self._enabled:
            logger.info("Aggregation job is disabled")
            return 0
        return await self.process_latest()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _seed(
        self,
        job_id: int,
        start: int,
        now: int,
        *,
        range_start: int | None = None,
        range_end: int | None = None,
    ) -> AggregationCheckpoint:
        checkpoint = AggregationCheckpoint(
            id=job_id,
            last_processed_timestamp=start,
            last_run_at=now,
            status=CheckpointStatus.RUNNING,
            generation=0,
            range_start=range_start,
            range_end=range_end,
        )
        if await self._checkpoints.create(checkpoint):
            logger.info("Seeded checkpoint %d at minute %d", job_id, start)
            return checkpoint

        existing = await self._checkpoints.get(job_id)
        if existing is None:
            raise CheckpointConflictError(job_id, 0)
        return existing

    async def _process(
        self, checkpoint: AggregationCheckpoint, stop: int, now: int,
    ) -> int:
        claimed = checkpoint.model_copy(
            update={
                "status": CheckpointStatus.RUNNING,
                "last_run_at": now,
                "generation": checkpoint.generation + 1,
            }
        )
        if not await self._checkpoints.save(claimed, checkpoint.generation):
            raise CheckpointConflictError(checkpoint.id, checkpoint.generation)

        persisted = claimed
        processed = 0
        try:
            current = persisted.last_processed_timestamp + MINUTE
            while current < stop:
                batch_end = min(current + self._checkpoint_every * MINUTE, stop)
                minutes = range(current, batch_end, MINUTE)
                await self._aggregate_batch(minutes)
                processed += len(minutes)
                current = batch_end
                if current < stop:
                    persisted = await self._persist(
                        persisted, minutes[-1], CheckpointStatus.RUNNING,
                    )
            persisted = await self._persist(
                persisted, current - MINUTE, CheckpointStatus.COMPLETED,
            )
        except CheckpointConflictError:
            logger.warning(
                "Checkpoint %d taken over by another run, stopping", checkpoint.id,
            )
            raise
        except Exception:
            logger.exception(
                "Aggregation failed; checkpoint %d stays at minute %d",
                checkpoint.id,
                persisted.last_processed_timestamp,
            )
            await self._mark_error(persisted)
            raise

        logger.info(
            "Aggregated %d minute(s), checkpoint %d now at minute %d",
            processed,
            checkpoint.id,
            persisted.last_processed_timestamp,
        )
        if processed:
            await self._after_success()
        return processed

    async def _aggregate_batch(self, minutes: Sequence[int]) -> None:
        if self._max_concurrency == 1:
            for minute in minutes:
                await self.aggregate_minute_bucket(minute)
            return

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def guarded(minute: int) -> Bucket | None:
            async with semaphore:
                return await self.aggregate_minute_bucket(minute)

        results = await asyncio.gather(
            *(guarded(minute) for minute in minutes), return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _persist(
        self,
        persisted: AggregationCheckpoint,
        last_processed: int,
        status: CheckpointStatus,
    ) -> AggregationCheckpoint:
        updated = persisted.model_copy(
            update={"last_processed_timestamp": last_processed, "status": status}
        )
        if not await self._checkpoints.save(updated, persisted.generation):
            raise CheckpointConflictError(persisted.id, persisted.generation)
        return updated

    async def _mark_error(self, persisted: AggregationCheckpoint) -> None:
        failed = persisted.model_copy(update={"status": CheckpointStatus.ERROR})
        try:
            if not await self._checkpoints.save(failed, persisted.generation):
                logger.warning(
                    "Could not mark checkpoint %d as error: claimed by another run",
                    persisted.id,
                )
        except Exception:
            logger.warning(
                "Could not mark checkpoint %d as error", persisted.id, exc_info=True,
            )

    async def _after_success(self) -> None:
        # Buckets are committed at this point; readers may briefly see stale
        # cache entries until the pattern delete completes.
        if self._cache is not None:
            await self._cache.invalidate_pattern(f"{AGGREGATED_KEY_PREFIX}:*")
        try:
            await self._buckets.rebuild_rollups()
        except Exception:
            logger.warning("Rollup refresh failed", exc_info=True)
