"""
In-process periodic trigger for the aggregation job.

Runs the job every ``interval_s`` seconds as an asyncio task started from
the application lifespan. Runs are single-flight: a tick that finds the
previous run still going is skipped. The checkpoint generation guards
against overlap across processes.

A failed run is logged and the loop keeps ticking; the job has already
marked its checkpoint as ``error`` and the next tick resumes from it.

CHANGELOG:
- 2026-10-06: Initial creation (STORY-022)

TODO:
- None
"""

import asyncio
import logging

from energy_rollup.errors import CheckpointConflictError
from energy_rollup.services.aggregation_job import EnergyAggregationJob

logger = logging.getLogger(__name__)


class AggregationScheduler:
    """Periodically runs :meth:`EnergyAggregationJob.run`.

    Args:
        job: The aggregation job.
        interval_s: Seconds between the start of consecutive ticks.
    """

    def __init__(self, job: EnergyAggregationJob, interval_s: float) -> None:
        self._job = job
        self._interval_s = interval_s
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int | None:
        """Run the job unless a run is already in progress.

        Returns:
            int | None: Minutes processed, or None if the tick was skipped.

        Raises:
            Exception: Whatever the job raised.
        """
        if self._lock.locked():
            logger.info("Aggregation run still in progress, skipping tick")
            return None
        async with self._lock:
            return await self._job.run()

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except CheckpointConflictError as exc:
                logger.warning("Aggregation run skipped: %s", exc)
            except Exception:
                logger.exception("Scheduled aggregation run failed")
            await asyncio.sleep(self._interval_s)

    def start(self) -> None:
        """Start the background loop (idempotent)."""
        if self.running:
            return
        logger.info("Starting aggregation scheduler every %ss", self._interval_s)
        self._task = asyncio.create_task(self._loop(), name="aggregation-scheduler")

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Aggregation scheduler stopped")
