"""
Pydantic schemas for readings, buckets, checkpoints and query output.

These are the domain types passed between repositories, services and the
API layer. Persisted field names match the database columns exactly, since
the derived rollup views key off them.

CHANGELOG:
- 2026-10-16: Add backfill range to AggregationCheckpoint (STORY-026)
- 2026-10-10: Add priced response schemas (STORY-025)
- 2026-10-07: Add generation to AggregationCheckpoint (STORY-023)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ChannelType = Literal["grid", "home", "car", "solar"]
Granularity = Literal["hour", "day"]

CHANNELS: tuple[str, ...] = ("home", "grid", "car", "solar")


class Reading(BaseModel):
    """One raw power sample.

    Attributes:
        timestamp: Sample time in Unix seconds.
        home: Household load in watts.
        grid: Grid power in watts (negative = export / feed-in).
        car: Car charger power in watts.
        solar: Solar production in watts.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int
    home: float = 0.0
    grid: float = 0.0
    car: float = 0.0
    solar: float = 0.0


class Bucket(BaseModel):
    """A 1-minute rollup of raw readings.

    Also used for rows of the hourly and daily rollup views, which share the
    same columns with wider ``bucket_start``/``bucket_end`` windows.
    """

    model_config = ConfigDict(frozen=True)

    bucket_start: int
    bucket_end: int
    home_kwh: float
    grid_kwh: float
    car_kwh: float
    solar_kwh: float
    readings_count: int
    first_timestamp: int
    last_timestamp: int
    first_home: float
    first_grid: float
    first_car: float
    first_solar: float
    last_home: float
    last_grid: float
    last_car: float
    last_solar: float

    def endpoint_readings(self) -> tuple[Reading, Reading]:
        """Return the first and last raw samples retained by this bucket."""
        first = Reading(
            timestamp=self.first_timestamp,
            home=self.first_home,
            grid=self.first_grid,
            car=self.first_car,
            solar=self.first_solar,
        )
        last = Reading(
            timestamp=self.last_timestamp,
            home=self.last_home,
            grid=self.last_grid,
            car=self.last_car,
            solar=self.last_solar,
        )
        return first, last


class CheckpointStatus(StrEnum):
    """Lifecycle states of an aggregation checkpoint."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class AggregationCheckpoint(BaseModel):
    """High-water mark of the aggregation job.

    Attributes:
        id: Checkpoint row id (1 = live job, 2 = historical backfill).
        last_processed_timestamp: Start of the last minute known rolled up.
        last_run_at: Unix seconds of the last run that touched this row.
        status: running, completed or error.
        generation: Incremented each time a run claims the checkpoint.
        range_start: First minute of the requested backfill range (backfill row only).
        range_end: Minute after the requested backfill range (backfill row only).
    """

    id: int
    last_processed_timestamp: int
    last_run_at: int
    status: CheckpointStatus
    generation: int = 0
    range_start: int | None = None
    range_end: int | None = None


class AggregatedDataPoint(BaseModel):
    """Energy for one hour or day window."""

    label: str
    kwh: float
    timestamp: int


class AggregatedResponse(BaseModel):
    """Windowed energy points plus the exact range total."""

    data: list[AggregatedDataPoint] = Field(default_factory=list)
    total: float = 0.0


class GridAggregatedResponse(BaseModel):
    """Grid energy split into consumption and feed-in."""

    model_config = ConfigDict(populate_by_name=True)

    consumption: AggregatedResponse = Field(default_factory=AggregatedResponse)
    feed_in: AggregatedResponse = Field(
        default_factory=AggregatedResponse, alias="feedIn",
    )


class ConsumingPeriod(BaseModel):
    """Consumption price for a minute-of-day interval.

    ``start_minute > end_minute`` means the period wraps midnight.
    """

    start_minute: int = Field(ge=0, le=1439)
    end_minute: int = Field(ge=0, le=1440)
    price: float


class PricingSchedule(BaseModel):
    """Flat feed-in price plus ordered time-of-day consumption periods."""

    producing_price: float
    consuming_periods: list[ConsumingPeriod] = Field(default_factory=list)


class PricedDataPoint(AggregatedDataPoint):
    """An aggregated point with its cost in currency units."""

    cost: float


class PricedResponse(BaseModel):
    """Priced points with kWh and cost totals."""

    data: list[PricedDataPoint] = Field(default_factory=list)
    total_kwh: float = 0.0
    total_cost: float = 0.0


class GridPricedResponse(BaseModel):
    """Priced grid consumption and feed-in."""

    model_config = ConfigDict(populate_by_name=True)

    consumption: PricedResponse
    feed_in: PricedResponse = Field(alias="feedIn")
