"""
Reading source backed by the energy_readings table.

Raw readings are append-only; this repository writes single rows for the
ingestion side, pages through history for the API, and serves the
range/before/after lookups the aggregation job and query engine need.
Storage errors propagate to the caller.

CHANGELOG:
- 2026-10-16: Add history() for paginated reading history (STORY-026)
- 2026-10-06: Add earliest() for checkpoint seeding (STORY-023)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from energy_rollup.db.models import EnergyReading
from energy_rollup.schemas import Reading


def to_reading(row: EnergyReading) -> Reading:
    """Map an ORM row to the Reading schema."""
    return Reading(
        timestamp=row.timestamp,
        home=row.home,
        grid=row.grid,
        car=row.car,
        solar=row.solar,
    )


class ReadingRepository:
    """Async access to raw readings.

    Args:
        session_factory: Factory used to open one session per call.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, reading: Reading) -> None:
        """Append one reading."""
        async with self._session_factory() as session:
            session.add(
                EnergyReading(**reading.model_dump(), created_at=int(time.time()))
            )
            await session.commit()

    async def range_query(self, from_ts: int, to_ts: int) -> list[Reading]:
        """Return readings with ``from_ts <= timestamp <= to_ts``.

        Rows sharing a timestamp come back in insertion order, so later
        stages that de-duplicate keep the most recent write.
        """
        stmt = (
            select(EnergyReading)
            .where(EnergyReading.timestamp >= from_ts, EnergyReading.timestamp <= to_ts)
            .order_by(EnergyReading.timestamp, EnergyReading.id)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [to_reading(row) for row in result.scalars().all()]

    async def before(self, ts: int) -> Reading | None:
        """Return the latest reading strictly before *ts*, or None."""
        stmt = (
            select(EnergyReading)
            .where(EnergyReading.timestamp < ts)
            .order_by(EnergyReading.timestamp.desc(), EnergyReading.id.desc())
            .limit(1)
        )
        return await self._first(stmt)

    async def after(self, ts: int) -> Reading | None:
        """Return the earliest reading strictly after *ts*, or None."""
        stmt = (
            select(EnergyReading)
            .where(EnergyReading.timestamp > ts)
            .order_by(EnergyReading.timestamp, EnergyReading.id.desc())
            .limit(1)
        )
        return await self._first(stmt)

    async def earliest(self) -> Reading | None:
        """Return the oldest reading, or None when the table is empty."""
        stmt = select(EnergyReading).order_by(EnergyReading.timestamp).limit(1)
        return await self._first(stmt)

    async def history(
        self,
        limit: int,
        offset: int = 0,
        from_ts: int | None = None,
        to_ts: int | None = None,
    ) -> list[Reading]:
        """Return one page of readings, newest first.

        Args:
            limit: Maximum number of readings.
            offset: Readings to skip from the newest one.
            from_ts: Optional inclusive lower bound on the timestamp.
            to_ts: Optional inclusive upper bound on the timestamp.
        """
        stmt = select(EnergyReading)
        if from_ts is not None:
            stmt = stmt.where(EnergyReading.timestamp >= from_ts)
        if to_ts is not None:
            stmt = stmt.where(EnergyReading.timestamp <= to_ts)
        stmt = (
            stmt.order_by(EnergyReading.timestamp.desc(), EnergyReading.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [to_reading(row) for row in result.scalars().all()]

    async def _first(self, stmt) -> Reading | None:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.scalars().first()
        return to_reading(row) if row is not None else None
