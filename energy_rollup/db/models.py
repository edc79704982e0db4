"""
SQLAlchemy ORM models for the rollup database.

Defines raw readings, 1-minute energy buckets and the aggregation job
checkpoint. Timestamps are stored as Unix seconds (BIGINT) so bucket
arithmetic stays integer-exact.

CHANGELOG:
- 2026-10-16: Add backfill range columns to EnergyBucketAggregationJob (STORY-026)
- 2026-10-07: Add generation column to EnergyBucketAggregationJob (STORY-023)
- 2026-10-03: Replace P1Sample with EnergyReading/EnergyBucket (STORY-021)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

from sqlalchemy import BigInteger, Double, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models."""

    pass


class EnergyReading(Base):
    """Raw power sample written by the ingestion client.

    Attributes:
        id: Surrogate key; readings carry no uniqueness guarantee.
        timestamp: Sample time in Unix seconds.
        home: Household load in watts.
        grid: Grid power in watts (negative = export).
        car: Car charger power in watts.
        solar: Solar production in watts.
        created_at: Unix seconds when the row was written.
    """

    __tablename__ = "energy_readings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    home: Mapped[float] = mapped_column(Double, nullable=False)
    grid: Mapped[float] = mapped_column(Double, nullable=False)
    car: Mapped[float] = mapped_column(Double, nullable=False)
    solar: Mapped[float] = mapped_column(Double, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        """Return string representation of the EnergyReading."""
        return (
            f"EnergyReading(timestamp={self.timestamp!r}, home={self.home!r}, "
            f"grid={self.grid!r}, car={self.car!r}, solar={self.solar!r})"
        )


class EnergyBucket(Base):
    """1-minute rollup keyed by the minute start.

    Stores the trapezoidal kWh per channel plus the first and last raw
    sample of the minute, which the query engine stitches into a
    synthetic series for wide ranges.
    """

    __tablename__ = "energy_buckets"

    bucket_start: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    bucket_end: Mapped[int] = mapped_column(BigInteger, nullable=False)
    home_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    grid_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    car_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    solar_kwh: Mapped[float] = mapped_column(Double, nullable=False)
    readings_count: Mapped[int] = mapped_column(Integer, nullable=False)
    first_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    first_home: Mapped[float] = mapped_column(Double, nullable=False)
    first_grid: Mapped[float] = mapped_column(Double, nullable=False)
    first_car: Mapped[float] = mapped_column(Double, nullable=False)
    first_solar: Mapped[float] = mapped_column(Double, nullable=False)
    last_home: Mapped[float] = mapped_column(Double, nullable=False)
    last_grid: Mapped[float] = mapped_column(Double, nullable=False)
    last_car: Mapped[float] = mapped_column(Double, nullable=False)
    last_solar: Mapped[float] = mapped_column(Double, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the EnergyBucket."""
        return (
            f"EnergyBucket(bucket_start={self.bucket_start!r}, "
            f"readings_count={self.readings_count!r})"
        )


class EnergyBucketAggregationJob(Base):
    """Checkpoint row of the aggregation job.

    Attributes:
        id: 1 for the live job, 2 for the historical backfill.
        last_processed_timestamp: Start of the last rolled-up minute.
        last_run_at: Unix seconds of the last run touching this row.
        status: running, completed or error.
        generation: Bumped by every run that claims the row.
        range_start: Backfill range start minute, NULL on the live row.
        range_end: Backfill range end minute (exclusive), NULL on the live row.
    """

    __tablename__ = "energy_bucket_aggregation_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_processed_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_run_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    generation: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    range_start: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    range_end: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
