"""
Time-of-day pricing for aggregated energy.

Consumption is priced by the local minute-of-day of a point's timestamp
against an ordered list of periods; feed-in is priced at a flat rate.

CHANGELOG:
- 2026-10-10: Add price_series for priced API responses (STORY-025)
- 2026-10-09: Initial creation (STORY-024)

TODO:
- None
"""

from collections.abc import Iterable
from datetime import datetime, tzinfo
from typing import Literal

from energy_rollup.schemas import (
    AggregatedDataPoint,
    ConsumingPeriod,
    PricedDataPoint,
    PricedResponse,
    PricingSchedule,
)

PricingMethod = Literal["consumption", "feed_in"]


def _minute_of_day(timestamp: int, tz: tzinfo) -> int:
    local = datetime.fromtimestamp(timestamp, tz)
    return local.hour * 60 + local.minute


def _covers(period: ConsumingPeriod, minute: int) -> bool:
    if period.start_minute <= minute < period.end_minute:
        return True
    # Wraps midnight, e.g. 22:00-06:00
    return period.start_minute > period.end_minute and (
        minute >= period.start_minute or minute < period.end_minute
    )


def consumption_cost(
    kwh: float, timestamp: int, schedule: PricingSchedule | None, tz: tzinfo,
) -> float:
    """Cost of consuming *kwh* at *timestamp*.

    The first period covering the local minute-of-day wins. When none
    covers it, the first period's price applies; with no periods at all
    the cost is 0.

    Returns:
        float: Cost in currency units, or 0.0 for ``kwh <= 0`` or no schedule.
    """
    if schedule is None or kwh <= 0:
        return 0.0
    if not schedule.consuming_periods:
        return 0.0

    minute = _minute_of_day(timestamp, tz)
    for period in schedule.consuming_periods:
        if _covers(period, minute):
            return kwh * period.price
    return kwh * schedule.consuming_periods[0].price


def feed_in_cost(kwh: float, schedule: PricingSchedule | None) -> float:
    """Value of feeding *kwh* into the grid at the producing price."""
    if schedule is None or kwh <= 0:
        return 0.0
    return kwh * schedule.producing_price


def price_series(
    points: Iterable[AggregatedDataPoint],
    schedule: PricingSchedule | None,
    method: PricingMethod,
    tz: tzinfo,
    total_kwh: float | None = None,
) -> PricedResponse:
    """Attach a cost to every point and total kWh and cost.

    ``consumption`` is used for grid consumption, home and car;
    ``feed_in`` for grid feed-in and solar. *total_kwh* overrides the
    summed point energy, e.g. with the exact range total of a query.
    """
    priced = []
    for point in points:
        if method == "consumption":
            cost = consumption_cost(point.kwh, point.timestamp, schedule, tz)
        else:
            cost = feed_in_cost(point.kwh, schedule)
        priced.append(PricedDataPoint(**point.model_dump(), cost=cost))

    return PricedResponse(
        data=priced,
        total_kwh=sum(p.kwh for p in priced) if total_kwh is None else total_kwh,
        total_cost=sum(p.cost for p in priced),
    )
