"""
Bucket store backed by energy_buckets and the rollup materialized views.

Read side serves the query engine: minute buckets for a range, boundary
readings around a range edge, the newest rolled-up minute, and the hourly
and daily rollups. Write side is used only by the aggregation job: an
atomic insert-or-replace per minute and a refresh of the rollup views.

Rollups are re-creatable projections. A view that has not been created or
populated yet reads as an empty result; every other storage error
propagates.

CHANGELOG:
- 2026-10-08: Treat unpopulated rollup views as empty (STORY-023)
- 2026-10-04: Add hourly/daily rollup reads and refresh (STORY-022)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

import logging
from datetime import tzinfo

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from energy_rollup.db.models import EnergyBucket
from energy_rollup.repositories.readings import ReadingRepository
from energy_rollup.schemas import Bucket, Reading
from energy_rollup.services.integrator import SECONDS_PER_HOUR, daily_windows

logger = logging.getLogger(__name__)

HOURLY_VIEW = "energy_hourly_buckets"
DAILY_VIEW = "energy_daily_buckets"
ROLLUP_VIEWS = (HOURLY_VIEW, DAILY_VIEW)

# undefined_table, object_not_in_prerequisite_state (view never refreshed)
_MISSING_ROLLUP_SQLSTATES = frozenset({"42P01", "55000"})

_BUCKET_COLUMNS = tuple(Bucket.model_fields)


def _is_missing_rollup(exc: DBAPIError) -> bool:
    """Return True if *exc* means the rollup view is absent or unpopulated."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is not None:
        return sqlstate in _MISSING_ROLLUP_SQLSTATES
    return "does not exist" in str(exc) or "has not been populated" in str(exc)


def to_bucket(row) -> Bucket:
    """Map an ORM row or a view row mapping to the Bucket schema."""
    mapping = row if isinstance(row, dict) else getattr(row, "_mapping", None)
    if mapping is None:
        return Bucket(**{name: getattr(row, name) for name in _BUCKET_COLUMNS})
    return Bucket(**{name: mapping[name] for name in _BUCKET_COLUMNS})


class BucketRepository:
    """Async access to minute buckets and rollups.

    Args:
        session_factory: Factory used to open one session per call.
        readings: Reading source used for boundary lookups.
        tz: Local timezone used to align daily rollup ranges.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        readings: ReadingRepository,
        tz: tzinfo,
    ) -> None:
        self._session_factory = session_factory
        self._readings = readings
        self._day_window = daily_windows(tz)

    # ------------------------------------------------------------------
    # Read contract
    # ------------------------------------------------------------------

    async def range_buckets(self, from_ts: int, to_ts: int) -> list[Bucket]:
        """Return buckets with ``from_ts <= bucket_start < to_ts``, ascending."""
        stmt = (
            select(EnergyBucket)
            .where(EnergyBucket.bucket_start >= from_ts, EnergyBucket.bucket_start < to_ts)
            .order_by(EnergyBucket.bucket_start)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [to_bucket(row) for row in result.scalars().all()]

    async def first_reading_before(self, ts: int) -> Reading | None:
        """Latest raw reading strictly before *ts* (left-edge anchor)."""
        return await self._readings.before(ts)

    async def first_reading_after(self, ts: int) -> Reading | None:
        """Earliest raw reading strictly after *ts* (right-edge anchor)."""
        return await self._readings.after(ts)

    async def latest_bucket_timestamp(self) -> int | None:
        """Return the newest bucket_start, or None when no buckets exist."""
        async with self._session_factory() as session:
            result = await session.execute(select(func.max(EnergyBucket.bucket_start)))
            return result.scalar_one_or_none()

    async def hourly_rollup(self, from_ts: int, to_ts: int) -> list[Bucket]:
        """Return hourly rollup rows overlapping ``[from_ts, to_ts)``."""
        from_hour = from_ts // SECONDS_PER_HOUR * SECONDS_PER_HOUR
        return await self._read_rollup(HOURLY_VIEW, from_hour, to_ts)

    async def daily_rollup(self, from_ts: int, to_ts: int) -> list[Bucket]:
        """Return daily rollup rows (local days) overlapping ``[from_ts, to_ts)``."""
        from_day, _ = self._day_window(from_ts)
        return await self._read_rollup(DAILY_VIEW, from_day, to_ts)

    async def _read_rollup(self, view: str, from_ts: int, to_ts: int) -> list[Bucket]:
        query = text(
            f"SELECT * FROM {view} "
            "WHERE bucket_start >= :from_ts AND bucket_start < :to_ts "
            "ORDER BY bucket_start"
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query, {"from_ts": from_ts, "to_ts": to_ts})
                rows = result.fetchall()
        except DBAPIError as exc:
            if not _is_missing_rollup(exc):
                raise
            logger.info("Rollup view %s not available yet, returning no rows", view)
            return []
        return [to_bucket(row) for row in rows]

    # ------------------------------------------------------------------
    # Write contract (aggregation job only)
    # ------------------------------------------------------------------

    async def upsert_bucket(self, bucket: Bucket) -> None:
        """Insert or replace the bucket row keyed by bucket_start.

        Uses PostgreSQL INSERT ... ON CONFLICT (bucket_start) DO UPDATE so
        the write is a single atomic statement; repeating it with the same
        bucket leaves the row unchanged.
        """
        values = bucket.model_dump()
        stmt = insert(EnergyBucket).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["bucket_start"],
            set_={name: stmt.excluded[name] for name in values if name != "bucket_start"},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def rebuild_rollups(self) -> None:
        """Refresh every rollup view that exists.

        Views that were never created are skipped, so a fresh database
        without the rollup migration is not an error.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                text("SELECT matviewname FROM pg_matviews WHERE matviewname = ANY(:names)"),
                {"names": list(ROLLUP_VIEWS)},
            )
            existing = {row[0] for row in result.fetchall()}
            for view in ROLLUP_VIEWS:
                if view not in existing:
                    logger.info("Rollup view %s does not exist, skipping refresh", view)
                    continue
                await session.execute(text(f"REFRESH MATERIALIZED VIEW CONCURRENTLY {view}"))
            await session.commit()
