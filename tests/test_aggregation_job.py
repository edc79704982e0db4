"""
Tests for the minute-bucket aggregation job (STORY-022, STORY-023, STORY-024).

Uses the in-memory fakes to verify bucket contents and idempotence, the
sparse-minute skip, checkpoint seeding, batching and monotonicity, failure
and conflict handling, cache invalidation, rollup refresh and backfills.

CHANGELOG:
- 2026-10-16: Backfill over a different range starts over (STORY-026)
- 2026-10-09: Concurrency and backfill resume tests (STORY-024)
- 2026-10-07: Generation conflict tests (STORY-023)
- 2026-10-06: Initial creation (STORY-022)

TODO:
- None
"""

import logging

import pytest

from energy_rollup.errors import CheckpointConflictError
from energy_rollup.schemas import CheckpointStatus, Reading
from energy_rollup.services.aggregation_job import (
    BACKFILL_JOB_ID,
    LIVE_JOB_ID,
    EnergyAggregationJob,
)
from tests.fakes import (
    FakeBucketStore,
    FakeCache,
    FakeCheckpointStore,
    FakeReadingSource,
    constant_readings,
)

T0 = 1_767_225_600  # 2026-01-01T00:00:00Z, minute-aligned


class _Clock:
    """Settable clock."""

    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> float:
        return float(self.now)


def _make_job(
    readings: list[Reading],
    now: int,
    **kwargs,
) -> tuple[EnergyAggregationJob, FakeReadingSource, FakeBucketStore, FakeCheckpointStore, FakeCache, _Clock]:
    source = FakeReadingSource(readings)
    buckets = FakeBucketStore(source)
    checkpoints = kwargs.pop("checkpoints", None) or FakeCheckpointStore()
    cache = FakeCache()
    clock = _Clock(now)
    job = EnergyAggregationJob(source, buckets, checkpoints, cache, clock=clock, **kwargs)
    return job, source, buckets, checkpoints, cache, clock


# ---------------------------------------------------------------------------
# aggregate_minute_bucket()
# ---------------------------------------------------------------------------


class TestAggregateMinuteBucket:
    """Tests for single-minute aggregation."""

    @pytest.mark.asyncio()
    async def test_writes_bucket_with_integrated_energy(self) -> None:
        readings = constant_readings(T0, T0 + 50, home=1200, grid=-300, solar=1500)
        job, _, buckets, *_ = _make_job(readings, T0 + 3600)

        bucket = await job.aggregate_minute_bucket(T0)

        assert bucket is not None
        assert buckets.buckets[T0] == bucket
        assert bucket.bucket_end == T0 + 60
        assert bucket.readings_count == 6
        assert bucket.first_timestamp == T0
        assert bucket.last_timestamp == T0 + 50
        assert bucket.home_kwh == pytest.approx(1200 * 50 / 3600 / 1000)
        assert bucket.grid_kwh == pytest.approx(-300 * 50 / 3600 / 1000)
        assert bucket.car_kwh == 0.0
        assert bucket.first_solar == 1500
        assert bucket.last_grid == -300

    @pytest.mark.asyncio()
    async def test_excludes_reading_at_next_minute(self) -> None:
        readings = constant_readings(T0, T0 + 60, step=30, home=100)
        job, *_ = _make_job(readings, T0 + 3600)

        bucket = await job.aggregate_minute_bucket(T0)

        assert bucket.readings_count == 2
        assert bucket.last_timestamp == T0 + 30

    @pytest.mark.asyncio()
    async def test_idempotent(self) -> None:
        """Repeating the call on unchanged readings yields an identical row."""
        readings = constant_readings(T0, T0 + 59, step=7, home=800, car=3000)
        job, _, buckets, *_ = _make_job(readings, T0 + 3600)

        first = await job.aggregate_minute_bucket(T0)
        stored = buckets.buckets[T0]
        second = await job.aggregate_minute_bucket(T0)

        assert first == second
        assert buckets.buckets[T0] == stored
        assert buckets.buckets[T0].model_dump_json() == stored.model_dump_json()
        assert len(buckets.buckets) == 1

    @pytest.mark.asyncio()
    async def test_single_reading_writes_nothing(self) -> None:
        job, _, buckets, *_ = _make_job([Reading(timestamp=T0 + 5, home=500)], T0 + 3600)

        assert await job.aggregate_minute_bucket(T0) is None
        assert buckets.buckets == {}
        assert buckets.calls["upsert_bucket"] == 0

    @pytest.mark.asyncio()
    async def test_duplicate_timestamps_count_once_last_wins(self) -> None:
        readings = [
            Reading(timestamp=T0, home=100),
            Reading(timestamp=T0, home=200),
            Reading(timestamp=T0 + 30, home=200),
        ]
        job, *_ = _make_job(readings, T0 + 3600)

        bucket = await job.aggregate_minute_bucket(T0)

        assert bucket.readings_count == 2
        assert bucket.first_home == 200
        assert bucket.home_kwh == pytest.approx(200 * 30 / 3600 / 1000)

    @pytest.mark.asyncio()
    async def test_unaligned_start_raises(self) -> None:
        job, *_ = _make_job([], T0)
        with pytest.raises(ValueError, match="minute-aligned"):
            await job.aggregate_minute_bucket(T0 + 1)


# ---------------------------------------------------------------------------
# process_latest()
# ---------------------------------------------------------------------------


class TestProcessLatest:
    """Tests for checkpointed incremental processing."""

    @pytest.mark.asyncio()
    async def test_first_run_seeds_and_processes_earliest_minute(self) -> None:
        readings = constant_readings(T0, T0 + 300, home=1000)
        job, _, buckets, checkpoints, *_ = _make_job(readings, T0 + 330)

        processed = await job.process_latest()

        assert processed == 5
        assert sorted(buckets.buckets) == [T0 + 60 * i for i in range(5)]
        assert checkpoints.history[0].last_processed_timestamp == T0 - 60
        row = checkpoints.rows[LIVE_JOB_ID]
        assert row.last_processed_timestamp == T0 + 240
        assert row.status == CheckpointStatus.COMPLETED
        assert row.generation == 1

    @pytest.mark.asyncio()
    async def test_first_run_without_readings_looks_back_one_day(self) -> None:
        job, _, _, checkpoints, *_ = _make_job([], T0 + 15)

        processed = await job.process_latest()

        assert checkpoints.history[0].last_processed_timestamp == T0 - 86400
        assert processed == 1439
        assert checkpoints.rows[LIVE_JOB_ID].last_processed_timestamp == T0 - 60

    @pytest.mark.asyncio()
    async def test_never_processes_current_minute(self) -> None:
        readings = constant_readings(T0, T0 + 119, home=1000)
        job, _, buckets, checkpoints, *_ = _make_job(readings, T0 + 90)

        await job.process_latest()

        assert list(buckets.buckets) == [T0]
        assert checkpoints.rows[LIVE_JOB_ID].last_processed_timestamp == T0

    @pytest.mark.asyncio()
    async def test_persists_every_ten_minutes(self) -> None:
        readings = constant_readings(T0, T0 + 25 * 60, home=1000)
        job, _, _, checkpoints, *_ = _make_job(readings, T0 + 25 * 60)

        assert await job.process_latest() == 25

        saved = [
            (c.last_processed_timestamp, c.status)
            for c in checkpoints.history[1:]
        ]
        assert saved == [
            (T0 - 60, CheckpointStatus.RUNNING),
            (T0 + 9 * 60, CheckpointStatus.RUNNING),
            (T0 + 19 * 60, CheckpointStatus.RUNNING),
            (T0 + 24 * 60, CheckpointStatus.COMPLETED),
        ]

    @pytest.mark.asyncio()
    async def test_second_run_continues_from_checkpoint(self) -> None:
        readings = constant_readings(T0, T0 + 600, home=1000)
        job, source, buckets, checkpoints, _, clock = _make_job(readings, T0 + 300)

        assert await job.process_latest() == 5
        clock.now = T0 + 600
        assert await job.process_latest() == 5

        assert sorted(buckets.buckets) == [T0 + 60 * i for i in range(10)]
        assert checkpoints.rows[LIVE_JOB_ID].generation == 2

    @pytest.mark.asyncio()
    async def test_no_new_minutes_processes_nothing(self) -> None:
        readings = constant_readings(T0, T0 + 300, home=1000)
        job, _, buckets, _, cache, _ = _make_job(readings, T0 + 300)

        await job.process_latest()
        assert await job.process_latest() == 0
        assert buckets.calls["rebuild_rollups"] == 1
        assert cache.calls["invalidate_pattern"] == 1

    @pytest.mark.asyncio()
    async def test_failure_marks_error_and_keeps_last_persisted(self) -> None:
        readings = constant_readings(T0, T0 + 30 * 60, home=1000)
        job, _, buckets, checkpoints, cache, _ = _make_job(readings, T0 + 30 * 60)
        buckets.fail_on.add(T0 + 13 * 60)

        with pytest.raises(RuntimeError, match="storage failure"):
            await job.process_latest()

        row = checkpoints.rows[LIVE_JOB_ID]
        assert row.status == CheckpointStatus.ERROR
        assert row.last_processed_timestamp == T0 + 9 * 60
        assert cache.calls["invalidate_pattern"] == 0

        buckets.fail_on.clear()
        assert await job.process_latest() == 20
        row = checkpoints.rows[LIVE_JOB_ID]
        assert row.status == CheckpointStatus.COMPLETED
        assert row.last_processed_timestamp == T0 + 29 * 60

    @pytest.mark.asyncio()
    async def test_checkpoint_monotonic_across_runs_and_failures(self) -> None:
        readings = constant_readings(T0, T0 + 3600, step=15, home=500)
        job, _, buckets, checkpoints, _, clock = _make_job(readings, T0)

        for step, fail_minute in [(7, None), (23, T0 + 20 * 60), (23, None), (31, None)]:
            clock.now += step * 60 + 17
            buckets.fail_on = {fail_minute} if fail_minute else set()
            try:
                await job.process_latest()
            except RuntimeError:
                pass
            row = checkpoints.rows[LIVE_JOB_ID]
            assert row.last_processed_timestamp % 60 == 0
            assert row.last_processed_timestamp <= clock.now // 60 * 60 - 60

        values = [c.last_processed_timestamp for c in checkpoints.history]
        assert values == sorted(values)

    @pytest.mark.asyncio()
    async def test_success_invalidates_cache_then_rebuilds(self) -> None:
        readings = constant_readings(T0, T0 + 120, home=1000)
        job, _, buckets, _, cache, _ = _make_job(readings, T0 + 120)
        cache.store["energy:aggregated:home:hour:1:2"] = {"data": [], "total": 0}
        cache.store["unrelated:key"] = 1

        await job.process_latest()

        assert "energy:aggregated:home:hour:1:2" not in cache.store
        assert cache.store["unrelated:key"] == 1
        assert buckets.calls["rebuild_rollups"] == 1

    @pytest.mark.asyncio()
    async def test_rollup_refresh_failure_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture,
    ) -> None:
        readings = constant_readings(T0, T0 + 120, home=1000)
        job, _, buckets, checkpoints, *_ = _make_job(readings, T0 + 120)
        buckets.rebuild_error = RuntimeError("view locked")

        with caplog.at_level(logging.WARNING):
            assert await job.process_latest() == 2

        assert "Rollup refresh failed" in caplog.text
        assert checkpoints.rows[LIVE_JOB_ID].status == CheckpointStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_concurrent_batches_match_sequential(self) -> None:
        readings = constant_readings(T0, T0 + 20 * 60, step=9, home=700, grid=-50)
        sequential, _, seq_buckets, *_ = _make_job(readings, T0 + 20 * 60)
        parallel, _, par_buckets, *_ = _make_job(readings, T0 + 20 * 60, max_concurrency=4)

        assert await sequential.process_latest() == await parallel.process_latest()
        assert par_buckets.buckets == seq_buckets.buckets

    @pytest.mark.asyncio()
    async def test_concurrent_failure_does_not_advance_past_batch(self) -> None:
        readings = constant_readings(T0, T0 + 20 * 60, home=700)
        job, _, buckets, checkpoints, *_ = _make_job(
            readings, T0 + 20 * 60, max_concurrency=4,
        )
        buckets.fail_on.add(T0 + 3 * 60)

        with pytest.raises(RuntimeError):
            await job.process_latest()

        assert checkpoints.rows[LIVE_JOB_ID].last_processed_timestamp == T0 - 60

    @pytest.mark.asyncio()
    async def test_run_disabled_is_noop(self) -> None:
        job, _, buckets, checkpoints, *_ = _make_job(
            constant_readings(T0, T0 + 120, home=1), T0 + 120, enabled=False,
        )

        assert await job.run() == 0
        assert checkpoints.rows == {}
        assert buckets.buckets == {}

    @pytest.mark.asyncio()
    async def test_run_enabled_processes(self) -> None:
        job, *_ = _make_job(constant_readings(T0, T0 + 120, home=1), T0 + 120)
        assert await job.run() == 2


# ---------------------------------------------------------------------------
# Overlapping runs
# ---------------------------------------------------------------------------


class _TakeoverCheckpointStore(FakeCheckpointStore):
    """Simulates another run claiming the checkpoint right after our claim."""

    def __init__(self) -> None:
        super().__init__()
        self.claims = 0

    async def save(self, checkpoint, expected_generation: int) -> bool:
        ok = await super().save(checkpoint, expected_generation)
        if ok and checkpoint.generation == expected_generation + 1:
            self.claims += 1
            if self.claims == 1:
                row = self.rows[checkpoint.id]
                self.rows[checkpoint.id] = row.model_copy(
                    update={"generation": row.generation + 1}
                )
        return ok


class TestConflicts:
    """Tests for the generation guard."""

    @pytest.mark.asyncio()
    async def test_lost_claim_raises_and_does_not_advance(self) -> None:
        store = _TakeoverCheckpointStore()
        readings = constant_readings(T0, T0 + 15 * 60, home=1000)
        job, _, _, _, cache, _ = _make_job(readings, T0 + 15 * 60, checkpoints=store)

        with pytest.raises(CheckpointConflictError):
            await job.process_latest()

        row = store.rows[LIVE_JOB_ID]
        assert row.last_processed_timestamp == T0 - 60
        assert row.status == CheckpointStatus.RUNNING
        assert cache.calls["invalidate_pattern"] == 0

    @pytest.mark.asyncio()
    async def test_stale_generation_cannot_claim(self) -> None:
        readings = constant_readings(T0, T0 + 300, home=1000)
        job, _, _, checkpoints, *_ = _make_job(readings, T0 + 300)
        await job.process_latest()

        stale = checkpoints.rows[LIVE_JOB_ID]
        checkpoints.rows[LIVE_JOB_ID] = stale.model_copy(update={"generation": 5})

        with pytest.raises(CheckpointConflictError):
            await job._process(stale, T0 + 600, T0 + 600)
        assert checkpoints.rows[LIVE_JOB_ID].last_processed_timestamp == T0 + 240


# ---------------------------------------------------------------------------
# backfill()
# ---------------------------------------------------------------------------


class TestBackfill:
    """Tests for historical backfills on their own checkpoint row."""

    @pytest.mark.asyncio()
    async def test_backfills_range_on_separate_row(self) -> None:
        readings = constant_readings(T0, T0 + 600, home=1000)
        job, _, buckets, checkpoints, *_ = _make_job(readings, T0 + 3600)

        assert await job.backfill(T0, T0 + 300) == 5

        assert sorted(buckets.buckets) == [T0 + 60 * i for i in range(5)]
        assert LIVE_JOB_ID not in checkpoints.rows
        row = checkpoints.rows[BACKFILL_JOB_ID]
        assert row.last_processed_timestamp == T0 + 240
        assert row.status == CheckpointStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_unaligned_range_covers_overlapping_minutes(self) -> None:
        readings = constant_readings(T0, T0 + 600, home=1000)
        job, _, buckets, *_ = _make_job(readings, T0 + 3600)

        assert await job.backfill(T0 + 30, T0 + 150) == 3
        assert sorted(buckets.buckets) == [T0, T0 + 60, T0 + 120]

    @pytest.mark.asyncio()
    async def test_stops_before_current_minute(self) -> None:
        readings = constant_readings(T0, T0 + 600, home=1000)
        job, _, buckets, *_ = _make_job(readings, T0 + 200)

        assert await job.backfill(T0, T0 + 3600) == 3
        assert max(buckets.buckets) == T0 + 120

    @pytest.mark.asyncio()
    async def test_resumes_after_interruption(self) -> None:
        readings = constant_readings(T0, T0 + 1200, home=1000)
        job, _, buckets, checkpoints, *_ = _make_job(readings, T0 + 3600)
        buckets.fail_on.add(T0 + 12 * 60)

        with pytest.raises(RuntimeError):
            await job.backfill(T0, T0 + 1200)
        assert checkpoints.rows[BACKFILL_JOB_ID].last_processed_timestamp == T0 + 9 * 60

        buckets.fail_on.clear()
        assert await job.backfill(T0, T0 + 1200) == 10
        assert checkpoints.rows[BACKFILL_JOB_ID].status == CheckpointStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_wider_range_after_interrupted_narrow_one_starts_over(self) -> None:
        readings = constant_readings(T0, T0 + 3000, home=1000)
        job, _, buckets, checkpoints, *_ = _make_job(readings, T0 + 3600)
        buckets.fail_on.add(T0 + 32 * 60)

        with pytest.raises(RuntimeError):
            await job.backfill(T0 + 20 * 60, T0 + 40 * 60)
        interrupted = checkpoints.rows[BACKFILL_JOB_ID]
        assert interrupted.last_processed_timestamp == T0 + 29 * 60
        assert (interrupted.range_start, interrupted.range_end) == (T0 + 1200, T0 + 2400)

        buckets.fail_on.clear()
        buckets.buckets.clear()
        assert await job.backfill(T0, T0 + 50 * 60) == 50

        assert sorted(buckets.buckets) == [T0 + 60 * i for i in range(50)]
        row = checkpoints.rows[BACKFILL_JOB_ID]
        assert (row.range_start, row.range_end) == (T0, T0 + 3000)
        assert row.status == CheckpointStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_completed_backfill_reruns_from_start(self) -> None:
        readings = constant_readings(T0, T0 + 600, home=1000)
        job, *_ = _make_job(readings, T0 + 3600)

        assert await job.backfill(T0, T0 + 300) == 5
        assert await job.backfill(T0, T0 + 300) == 5

    @pytest.mark.asyncio()
    async def test_invalid_range_raises(self) -> None:
        job, *_ = _make_job([], T0)
        with pytest.raises(ValueError):
            await job.backfill(T0, T0)
