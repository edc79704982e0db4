"""
Energy API endpoints: aggregated kWh, priced series and rollup sums.

- GET  /v1/energy/aggregated/{channel}: per-hour or per-day kWh for a named
  timeframe or an explicit start/end range.
- POST /v1/energy/cost/{channel}: the same series priced with a
  time-of-day schedule supplied in the request body.
- GET  /v1/energy/rollups: per-channel sums read from the rollup views.
- GET  /v1/energy/history: raw readings, newest first, paginated.

Grid results are split into ``consumption`` and ``feedIn``.

CHANGELOG:
- 2026-10-16: Add paginated reading history endpoint (STORY-026)
- 2026-10-10: Add cost and rollup endpoints (STORY-025)
- 2026-10-05: Initial creation (STORY-022)

TODO:
- None
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from energy_rollup.api.deps import Container, QueryService, Readings
from energy_rollup.schemas import (
    CHANNELS,
    GridPricedResponse,
    PricingSchedule,
)
from energy_rollup.services.energy_query import EnergyResult
from energy_rollup.services.pricing import price_series

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/energy", tags=["energy"])

GRANULARITIES = ("hour", "day")
HISTORY_MAX_LIMIT = 1000


class CostRequest(BaseModel):
    """Body of the cost endpoint.

    Attributes:
        schedule: Prices to apply.
        timeframe: day, yesterday, week or month.
        start: Optional explicit range start (Unix seconds).
        end: Optional explicit range end (Unix seconds).
    """

    schedule: PricingSchedule
    timeframe: str = "day"
    start: int | None = Field(default=None, ge=0)
    end: int | None = Field(default=None, ge=0)


def _validate_channel(channel: str) -> None:
    if channel not in CHANNELS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid channel: {channel}. Must be one of: {', '.join(CHANNELS)}",
        )


async def _timeframe_data(
    query: QueryService,
    channel: str,
    timeframe: str,
    start: int | None,
    end: int | None,
) -> EnergyResult:
    _validate_channel(channel)
    try:
        return await query.get_timeframe_data(timeframe, channel, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/aggregated/{channel}")
async def get_aggregated(
    channel: str,
    query: QueryService,
    timeframe: str = "day",
    start: int | None = None,
    end: int | None = None,
) -> dict:
    """Get aggregated energy for one channel.

    Args:
        channel: grid, home, car or solar.
        query: Energy query service.
        timeframe: day, yesterday, week or month. Also picks the
            granularity when start/end are given.
        start: Optional explicit range start (Unix seconds).
        end: Optional explicit range end (Unix seconds).

    Returns:
        dict: ``{data, total}``, or ``{consumption, feedIn}`` for grid.

    Raises:
        HTTPException: 400 for an invalid channel, timeframe or range.
    """
    result = await _timeframe_data(query, channel, timeframe, start, end)
    return result.model_dump(by_alias=True)


@router.post("/cost/{channel}")
async def get_cost(
    channel: str,
    body: CostRequest,
    query: QueryService,
    container: Container,
) -> dict:
    """Get aggregated energy for one channel priced with *body.schedule*.

    Grid consumption, home and car are priced by time of day; grid
    feed-in and solar at the flat producing price.

    Raises:
        HTTPException: 400 for an invalid channel, timeframe or range.
    """
    result = await _timeframe_data(query, channel, body.timeframe, body.start, body.end)
    tz = container.settings.tz

    if channel == "grid":
        priced = GridPricedResponse(
            consumption=price_series(
                result.consumption.data, body.schedule, "consumption", tz,
                total_kwh=result.consumption.total,
            ),
            feed_in=price_series(
                result.feed_in.data, body.schedule, "feed_in", tz,
                total_kwh=result.feed_in.total,
            ),
        )
        return priced.model_dump(by_alias=True)

    method = "feed_in" if channel == "solar" else "consumption"
    priced = price_series(result.data, body.schedule, method, tz, total_kwh=result.total)
    return priced.model_dump()


@router.get("/rollups")
async def get_rollups(
    query: QueryService,
    start: int,
    end: int,
    granularity: str = "hour",
) -> dict:
    """Get per-channel kWh sums from the hourly or daily rollups.

    Returns an empty series while rollups have not been built.

    Raises:
        HTTPException: 400 for an invalid granularity or range.
    """
    if granularity not in GRANULARITIES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid granularity: {granularity}. "
            f"Must be one of: {', '.join(GRANULARITIES)}",
        )
    try:
        series = await query.get_rollup_series(start, end, granularity)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "granularity": granularity,
        "start": start,
        "end": end,
        "series": [bucket.model_dump() for bucket in series],
    }



@router.get("/history")
async def get_history(
    readings: Readings,
    limit: int = 100,
    offset: int = 0,
    from_ts: Annotated[int | None, Query(alias="from")] = None,
    to_ts: Annotated[int | None, Query(alias="to")] = None,
) -> dict:
    """Page through raw readings, newest first.

    Args:
        readings: Raw reading source.
        limit: Page size, 1 to 1000.
        offset: Readings to skip, >= 0.
        from_ts: Optional inclusive lower bound (Unix seconds), ``from``.
        to_ts: Optional inclusive upper bound (Unix seconds), ``to``.

    Returns:
        dict: ``{data, limit, offset, count}``.

    Raises:
        HTTPException: 400 for an out-of-range limit or offset.
    """
    if not 1 <= limit <= HISTORY_MAX_LIMIT:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid limit parameter. Must be between 1 and {HISTORY_MAX_LIMIT}.",
        )
    if offset < 0:
        raise HTTPException(
            status_code=400, detail="Invalid offset parameter. Must be >= 0.",
        )

    page = await readings.history(limit, offset, from_ts, to_ts)
    return {
        "data": [reading.model_dump() for reading in page],
        "limit": limit,
        "offset": offset,
        "count": len(page),
    }
