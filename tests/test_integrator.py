"""
Tests for trapezoidal integration and window grouping (STORY-021).

Covers integrate(), group_by_fixed_window(), total_energy(), the hour and
local-day window functions, and deduplicate().

CHANGELOG:
- 2026-10-08: Add deduplicate tests (STORY-023)
- 2026-10-04: Local-midnight day window tests (STORY-022)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from energy_rollup.schemas import Reading
from energy_rollup.services.integrator import (
    daily_windows,
    deduplicate,
    group_by_fixed_window,
    hourly_windows,
    integrate,
    total_energy,
)


def _home(r: Reading) -> float:
    return r.home


# ---------------------------------------------------------------------------
# integrate()
# ---------------------------------------------------------------------------


class TestIntegrate:
    """Tests for integrate()."""

    def test_empty_returns_zero(self) -> None:
        assert integrate([]) == 0.0

    def test_single_sample_returns_zero(self) -> None:
        assert integrate([(0, 1000.0)]) == 0.0

    @pytest.mark.parametrize(
        ("power", "step", "count"),
        [(1000.0, 10, 7), (250.0, 1, 61), (3600.0, 60, 61)],
    )
    def test_constant_power(self, power: float, step: int, count: int) -> None:
        """N equally spaced samples at P watts over T seconds give P*T/3.6e6 kWh."""
        samples = [(i * step, power) for i in range(count)]
        duration = (count - 1) * step
        assert integrate(samples) == pytest.approx(power * duration / 3600 / 1000)

    def test_trapezoid_of_ramp(self) -> None:
        """A linear ramp integrates to the average power times duration."""
        assert integrate([(0, 0.0), (3600, 2000.0)]) == pytest.approx(1.0)

    def test_irregular_spacing(self) -> None:
        samples = [(0, 1000.0), (5, 1000.0), (65, 2000.0)]
        expected = (1000 * 5 + 1500 * 60) / 3600 / 1000
        assert integrate(samples) == pytest.approx(expected)


# ---------------------------------------------------------------------------
# group_by_fixed_window() / total_energy()
# ---------------------------------------------------------------------------


class TestGroupByFixedWindow:
    """Tests for window grouping with filters."""

    def test_hour_grouping_example(self) -> None:
        """Three readings inside one hour form one point of ~0.5833 kWh."""
        readings = [
            Reading(timestamp=0, home=1000),
            Reading(timestamp=600, home=2000),
            Reading(timestamp=1200, home=1500),
        ]
        points = group_by_fixed_window(readings, hourly_windows(UTC), _home)

        assert len(points) == 1
        assert points[0].timestamp == 0
        assert points[0].label == "00:00"
        expected = ((1000 + 2000) / 2 * 600 + (2000 + 1500) / 2 * 600) / 3600 / 1000
        assert points[0].kwh == pytest.approx(expected)
        assert points[0].kwh == pytest.approx(0.5833, abs=1e-4)

    def test_window_with_one_sample_is_dropped(self) -> None:
        readings = [
            Reading(timestamp=0, home=1000),
            Reading(timestamp=60, home=1000),
            Reading(timestamp=3700, home=1000),
        ]
        points = group_by_fixed_window(readings, hourly_windows(UTC), _home)
        assert [p.timestamp for p in points] == [0]

    def test_filter_applies_before_grouping(self) -> None:
        """Filtered-out samples do not count toward a window's two samples."""
        readings = [
            Reading(timestamp=0, grid=-100),
            Reading(timestamp=60, grid=200),
            Reading(timestamp=120, grid=-300),
        ]
        points = group_by_fixed_window(
            readings, hourly_windows(UTC), lambda r: r.grid, lambda v: v >= 0,
        )
        assert points == []

    def test_windows_sorted_ascending(self) -> None:
        readings = [
            Reading(timestamp=7200, home=10),
            Reading(timestamp=7260, home=10),
            Reading(timestamp=0, home=10),
            Reading(timestamp=60, home=10),
        ]
        points = group_by_fixed_window(readings, hourly_windows(UTC), _home)
        assert [p.timestamp for p in points] == [0, 7200]

    def test_unsorted_input_within_window(self) -> None:
        readings = [Reading(timestamp=600, home=2000), Reading(timestamp=0, home=1000)]
        points = group_by_fixed_window(readings, hourly_windows(UTC), _home)
        assert points[0].kwh == pytest.approx(1500 * 600 / 3600 / 1000)


class TestTotalEnergy:
    """Tests for total_energy()."""

    def test_spans_window_boundaries(self) -> None:
        """The total integrates across hours as one run."""
        readings = [Reading(timestamp=3000, home=1200), Reading(timestamp=4200, home=1200)]
        assert group_by_fixed_window(readings, hourly_windows(UTC), _home) == []
        assert total_energy(readings, _home) == pytest.approx(1200 * 1200 / 3600 / 1000)

    def test_filter_and_sign_flip(self) -> None:
        readings = [Reading(timestamp=0, grid=-500), Reading(timestamp=600, grid=-600)]
        feed_in = total_energy(readings, lambda r: -r.grid, lambda v: v > 0)
        consumption = total_energy(readings, lambda r: r.grid, lambda v: v >= 0)
        assert feed_in == pytest.approx(0.0917, abs=1e-4)
        assert consumption == 0.0


# ---------------------------------------------------------------------------
# Window functions
# ---------------------------------------------------------------------------


class TestWindows:
    """Tests for hourly_windows() and daily_windows()."""

    def test_hour_label_uses_local_time(self) -> None:
        tz = ZoneInfo("Europe/Brussels")
        ts = int(datetime(2026, 1, 5, 10, 30, tzinfo=UTC).timestamp())
        start, label = hourly_windows(tz)(ts)
        assert start == int(datetime(2026, 1, 5, 10, 0, tzinfo=UTC).timestamp())
        assert label == "11:00"

    def test_day_starts_at_local_midnight(self) -> None:
        tz = ZoneInfo("Europe/Brussels")
        # 23:30 UTC on Jan 4 is already Jan 5 in Brussels
        ts = int(datetime(2026, 1, 4, 23, 30, tzinfo=UTC).timestamp())
        start, label = daily_windows(tz)(ts)
        assert start == int(datetime(2026, 1, 5, tzinfo=tz).timestamp())
        assert label == "Jan 5"

    def test_day_window_utc(self) -> None:
        ts = int(datetime(2026, 3, 17, 15, 0, tzinfo=UTC).timestamp())
        start, label = daily_windows(UTC)(ts)
        assert start == int(datetime(2026, 3, 17, tzinfo=UTC).timestamp())
        assert label == "Mar 17"


class TestDeduplicate:
    """Tests for deduplicate()."""

    def test_last_reading_wins_and_sorted(self) -> None:
        readings = [
            Reading(timestamp=20, home=1),
            Reading(timestamp=10, home=2),
            Reading(timestamp=20, home=3),
        ]
        result = deduplicate(readings)
        assert [(r.timestamp, r.home) for r in result] == [(10, 2), (20, 3)]
