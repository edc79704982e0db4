"""
Range-query engine for aggregated energy.

Answers "how much energy flowed per hour/day over [from, to]" for one
channel. Narrow ranges integrate raw readings directly. Ranges of an hour
or more are rebuilt from minute buckets plus raw readings at the edges:

    raw[from .. end of first minute]  +  anchor reading before `from`
    first/last sample of every full bucket in between
    raw readings for minutes not rolled up yet
    raw[start of last minute .. to]  +  anchor reading after `to`

The pieces are merged into one de-duplicated, time-sorted series and run
through the same window grouping and integration as the raw path. Interior
segments between a bucket's last sample and the next bucket's first sample
are integrated exactly like adjacent raw samples, so the two strategies
agree whenever every minute holds two or more samples.

The bucket path rebuilds one series from bucket endpoints instead of
summing each bucket's stored kWh, so power swings inside a full minute
are not seen there. Totals over many minutes only change by that
curvature, not by the bucket boundaries.

Results are cached under ``energy:aggregated:{channel}:{granularity}:{from}:{to}``
and invalidated by the aggregation job after each successful run.

CHANGELOG:
- 2026-10-10: Add get_timeframe_data and rollup series (STORY-025)
- 2026-10-08: Fill not-yet-rolled-up minutes from raw readings (STORY-023)
- 2026-10-05: Initial creation (STORY-022)

TODO:
- None
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, tzinfo

from energy_rollup.cache.redis_cache import AGGREGATED_KEY_PREFIX
from energy_rollup.errors import InvalidTimeframeError
from energy_rollup.protocols import BucketStore, Cache, ReadingSource
from energy_rollup.schemas import (
    AggregatedResponse,
    Bucket,
    ChannelType,
    Granularity,
    GridAggregatedResponse,
    Reading,
)
from energy_rollup.services.integrator import (
    SECONDS_PER_HOUR,
    Extractor,
    ValueFilter,
    daily_windows,
    deduplicate,
    group_by_fixed_window,
    hourly_windows,
    total_energy,
)

logger = logging.getLogger(__name__)

TIMEFRAME_GRANULARITY: dict[str, Granularity] = {
    "day": "hour",
    "yesterday": "hour",
    "week": "day",
    "month": "day",
}

BUCKET_PATH_MIN_RANGE_S = SECONDS_PER_HOUR
MINUTE = 60

EnergyResult = AggregatedResponse | GridAggregatedResponse


def cache_key(channel: str, granularity: str, from_ts: int, to_ts: int) -> str:
    """Build the cache key for one aggregated query."""
    return f"{AGGREGATED_KEY_PREFIX}:{channel}:{granularity}:{from_ts}:{to_ts}"


def _local_midnight(day: date, tz: tzinfo) -> int:
    return int(datetime.combine(day, time(), tzinfo=tz).timestamp())


def timeframe_bounds(timeframe: str, now: int, tz: tzinfo) -> tuple[int, int]:
    """Resolve a named timeframe to ``(start, end)`` Unix seconds.

    - day: local midnight today until now
    - yesterday: local midnight yesterday until local midnight today
    - week: local midnight seven days ago until now
    - month: local midnight on the 1st of this month until now

    Raises:
        InvalidTimeframeError: For an unknown timeframe name.
    """
    today = datetime.fromtimestamp(now, tz).date()
    if timeframe == "day":
        return _local_midnight(today, tz), now
    if timeframe == "yesterday":
        return (
            _local_midnight(today - timedelta(days=1), tz),
            _local_midnight(today, tz),
        )
    if timeframe == "week":
        return _local_midnight(today - timedelta(days=7), tz), now
    if timeframe == "month":
        return _local_midnight(today.replace(day=1), tz), now
    raise InvalidTimeframeError(
        f"Invalid timeframe: {timeframe}. "
        f"Must be one of: {', '.join(TIMEFRAME_GRANULARITY)}"
    )


def _is_positive(value: float) -> bool:
    return value > 0


def _is_non_negative(value: float) -> bool:
    return value >= 0


# channel -> [(result field, extractor, value filter)]
_CHANNEL_SERIES: dict[str, list[tuple[str, Extractor, ValueFilter]]] = {
    "grid": [
        ("consumption", lambda r: r.grid, _is_non_negative),
        ("feed_in", lambda r: -r.grid, _is_positive),
    ],
    "home": [("total", lambda r: r.home, _is_positive)],
    "car": [("total", lambda r: r.car, _is_positive)],
    "solar": [("total", lambda r: r.solar, _is_positive)],
}


class EnergyQueryService:
    """Read-only query engine over readings, buckets and rollups.

    Args:
        readings: Raw reading source.
        buckets: Minute bucket store.
        cache: Result cache (fail-soft).
        tz: Local timezone for day windows and labels.
        cache_ttl: TTL in seconds for cached results.
        clock: Returns the current Unix time; used for named timeframes.
    """

    def __init__(
        self,
        readings: ReadingSource,
        buckets: BucketStore,
        cache: Cache,
        tz: tzinfo,
        cache_ttl: int = 300,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._readings = readings
        self._buckets = buckets
        self._cache = cache
        self._tz = tz
        self._cache_ttl = cache_ttl
        self._clock = clock

    async def get_aggregated_energy_data(
        self,
        from_ts: int,
        to_ts: int,
        granularity: Granularity,
        channel: ChannelType,
    ) -> EnergyResult:
        """Return per-window and total energy for one channel.

        Args:
            from_ts: Range start, Unix seconds (inclusive).
            to_ts: Range end, Unix seconds (inclusive).
            granularity: ``hour`` or ``day`` windows.
            channel: ``grid`` (split into consumption and feed-in), ``home``,
                ``car`` or ``solar``.

        Returns:
            AggregatedResponse, or GridAggregatedResponse for ``grid``.

        Raises:
            InvalidTimeframeError: If the range is inverted or an argument
                is not recognised.
        """
        if from_ts > to_ts:
            raise InvalidTimeframeError(f"start {from_ts} is after end {to_ts}")
        if granularity not in ("hour", "day"):
            raise InvalidTimeframeError(f"Invalid granularity: {granularity}")
        if channel not in _CHANNEL_SERIES:
            raise InvalidTimeframeError(f"Invalid channel: {channel}")

        key = cache_key(channel, granularity, from_ts, to_ts)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return self._result_model(channel).model_validate(cached)

        if to_ts - from_ts >= BUCKET_PATH_MIN_RANGE_S:
            series = await self._bucketed_series(from_ts, to_ts)
        else:
            series = deduplicate(await self._readings.range_query(from_ts, to_ts))

        result = self._summarize(series, granularity, channel)
        await self._cache.set(
            key, result.model_dump(mode="json", by_alias=True), ttl=self._cache_ttl,
        )
        return result

    async def get_timeframe_data(
        self,
        timeframe: str,
        channel: ChannelType,
        start: int | None = None,
        end: int | None = None,
    ) -> EnergyResult:
        """Query a named timeframe, or an explicit ``start``/``end`` range.

        The timeframe always picks the granularity: hours for ``day`` and
        ``yesterday``, days for ``week`` and ``month``.
        """
        granularity = TIMEFRAME_GRANULARITY.get(timeframe)
        if granularity is None:
            raise InvalidTimeframeError(f"Invalid timeframe: {timeframe}")
        if (start is None) != (end is None):
            raise InvalidTimeframeError("start and end must be given together")

        if start is None:
            start, end = timeframe_bounds(timeframe, self._now(), self._tz)
        return await self.get_aggregated_energy_data(start, end, granularity, channel)

    async def get_rollup_series(
        self, from_ts: int, to_ts: int, granularity: Granularity,
    ) -> list[Bucket]:
        """Per-channel kWh sums straight from the hourly or daily rollups.

        Returns an empty list while the rollup views are missing.
        """
        if from_ts > to_ts:
            raise InvalidTimeframeError(f"start {from_ts} is after end {to_ts}")
        if granularity == "hour":
            return await self._buckets.hourly_rollup(from_ts, to_ts)
        if granularity == "day":
            return await self._buckets.daily_rollup(from_ts, to_ts)
        raise InvalidTimeframeError(f"Invalid granularity: {granularity}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> int:
        if self._clock is None:
            return int(datetime.now(self._tz).timestamp())
        return int(self._clock())

    async def _bucketed_series(self, from_ts: int, to_ts: int) -> list[Reading]:
        first_minute = from_ts // MINUTE * MINUTE
        last_minute = to_ts // MINUTE * MINUTE
        full_start = first_minute if from_ts == first_minute else first_minute + MINUTE

        series: list[Reading] = []

        if from_ts != first_minute:
            series += await self._readings.range_query(
                from_ts, min(first_minute + MINUTE - 1, to_ts),
            )
            anchor = await self._buckets.first_reading_before(from_ts)
            if anchor is not None:
                series.append(anchor)

        if full_start < last_minute:
            for bucket in await self._buckets.range_buckets(full_start, last_minute):
                series.extend(bucket.endpoint_readings())

            latest = await self._buckets.latest_bucket_timestamp()
            tail_start = full_start if latest is None else max(full_start, latest + MINUTE)
            if tail_start < last_minute:
                logger.debug(
                    "Filling %d un-rolled-up minute(s) from raw readings",
                    (last_minute - tail_start) // MINUTE,
                )
                series += await self._readings.range_query(tail_start, last_minute - 1)

        # Readings of the partial last minute, including one exactly at `to`
        series += await self._readings.range_query(last_minute, to_ts)
        if to_ts != last_minute:
            anchor = await self._buckets.first_reading_after(to_ts)
            if anchor is not None:
                series.append(anchor)

        return deduplicate(series)

    def _summarize(
        self, series: list[Reading], granularity: Granularity, channel: str,
    ) -> EnergyResult:
        window_fn = hourly_windows(self._tz) if granularity == "hour" else daily_windows(self._tz)

        parts = {
            field: AggregatedResponse(
                data=group_by_fixed_window(series, window_fn, extractor, value_filter),
                total=total_energy(series, extractor, value_filter),
            )
            for field, extractor, value_filter in _CHANNEL_SERIES[channel]
        }
        if channel == "grid":
            return GridAggregatedResponse(**parts)
        return parts["total"]

    @staticmethod
    def _result_model(channel: str) -> type[EnergyResult]:
        return GridAggregatedResponse if channel == "grid" else AggregatedResponse
