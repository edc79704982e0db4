"""
Trapezoidal energy integration over irregular power samples.

Pure functions shared by the aggregation job and the query engine. Energy
between two adjacent samples is the average of their power times the
elapsed seconds; the watt-second sum is converted to kWh at the end.

Both query strategies (raw-only and bucket-assisted) run through the same
functions here, so there is a single accumulation formula in the codebase.

CHANGELOG:
- 2026-10-08: Add deduplicate() for duplicate-timestamp readings (STORY-023)
- 2026-10-04: Local-midnight day windows via tzinfo (STORY-022)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, tzinfo

from energy_rollup.schemas import AggregatedDataPoint, Reading

SECONDS_PER_HOUR = 3600
WATTS_PER_KILOWATT = 1000

# window_fn(timestamp) -> (window_start, label)
WindowFn = Callable[[int], tuple[int, str]]
Extractor = Callable[[Reading], float]
ValueFilter = Callable[[float], bool]


def integrate(samples: Sequence[tuple[int, float]]) -> float:
    """Integrate time-sorted ``(timestamp, watts)`` samples to kWh.

    Args:
        samples: Samples sorted by ascending timestamp.

    Returns:
        float: Energy in kWh, or 0.0 when fewer than two samples are given.
    """
    if len(samples) < 2:
        return 0.0

    watt_seconds = 0.0
    for (t1, p1), (t2, p2) in zip(samples, samples[1:]):
        watt_seconds += (p1 + p2) / 2 * (t2 - t1)

    return watt_seconds / SECONDS_PER_HOUR / WATTS_PER_KILOWATT


def _filtered_samples(
    readings: Iterable[Reading],
    extractor: Extractor,
    value_filter: ValueFilter | None,
) -> list[tuple[int, float]]:
    samples = []
    for reading in readings:
        value = extractor(reading)
        if value_filter is not None and not value_filter(value):
            continue
        samples.append((reading.timestamp, value))
    return samples


def group_by_fixed_window(
    readings: Iterable[Reading],
    window_fn: WindowFn,
    extractor: Extractor,
    value_filter: ValueFilter | None = None,
) -> list[AggregatedDataPoint]:
    """Integrate readings per hour or day window.

    The filter is applied to the extracted value before grouping. Windows
    left with fewer than two samples are dropped rather than reported as
    zero, since zero would understate their true energy.

    Args:
        readings: Readings in any order.
        window_fn: Maps a timestamp to ``(window_start, label)``.
        extractor: Pulls the channel value (watts) out of a reading.
        value_filter: Optional predicate on the extracted value.

    Returns:
        list[AggregatedDataPoint]: One point per window, ascending by start.
    """
    windows: dict[int, tuple[str, list[tuple[int, float]]]] = {}
    for timestamp, value in _filtered_samples(readings, extractor, value_filter):
        start, label = window_fn(timestamp)
        windows.setdefault(start, (label, []))[1].append((timestamp, value))

    points = []
    for start in sorted(windows):
        label, samples = windows[start]
        if len(samples) < 2:
            continue
        samples.sort(key=lambda s: s[0])
        points.append(
            AggregatedDataPoint(label=label, kwh=integrate(samples), timestamp=start)
        )
    return points


def total_energy(
    readings: Iterable[Reading],
    extractor: Extractor,
    value_filter: ValueFilter | None = None,
) -> float:
    """Integrate the whole filtered, sorted sequence as a single run.

    Returns:
        float: Energy in kWh across the entire sequence.
    """
    samples = _filtered_samples(readings, extractor, value_filter)
    samples.sort(key=lambda s: s[0])
    return integrate(samples)


def hourly_windows(tz: tzinfo) -> WindowFn:
    """Window function for clock hours, labeled with the local hour."""

    def window(timestamp: int) -> tuple[int, str]:
        start = timestamp // SECONDS_PER_HOUR * SECONDS_PER_HOUR
        return start, datetime.fromtimestamp(start, tz).strftime("%H:00")

    return window


def daily_windows(tz: tzinfo) -> WindowFn:
    """Window function for calendar days starting at local midnight."""

    def window(timestamp: int) -> tuple[int, str]:
        local = datetime.fromtimestamp(timestamp, tz)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return int(midnight.timestamp()), f"{midnight:%b} {midnight.day}"

    return window


def deduplicate(readings: Iterable[Reading]) -> list[Reading]:
    """Collapse readings sharing a timestamp, keeping the last one seen.

    Returns:
        list[Reading]: Readings sorted by ascending timestamp.
    """
    by_timestamp: dict[int, Reading] = {}
    for reading in readings:
        by_timestamp[reading.timestamp] = reading
    return [by_timestamp[ts] for ts in sorted(by_timestamp)]
