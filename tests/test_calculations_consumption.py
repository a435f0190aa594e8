"""
Tests for consumption point calculations.
"""

from datetime import date

import pytest

from calculations import ConsumptionMode, EntryKind, build_daily_series, compute_points
from calculations.consumption import entry_unit_cost
from conftest import make_reading


class TestAdditivePoints:
    """Topup series: the logged quantity is the consumption."""

    def test_first_entry_is_zero_baseline(self):
        series = [
            make_reading(0, 50, is_first_entry=True),
            make_reading(7, 30),
            make_reading(14, 35),
        ]
        points = compute_points(series)

        assert [p.quantity for p in points] == [0.0, 30, 35]
        assert points[0].is_baseline
        assert points[0].cost == 0.0

    def test_unflagged_first_entry_emits_nothing(self):
        points = compute_points([make_reading(0, 50), make_reading(7, 30)])
        assert len(points) == 1
        assert points[0].date == date(2024, 1, 8)

    def test_single_entry(self):
        assert compute_points([make_reading(0, 50)]) == []
        (point,) = compute_points([make_reading(0, 50, is_first_entry=True)])
        assert point.is_baseline

    def test_empty(self):
        assert compute_points([]) == []

    def test_never_longer_than_input(self):
        series = [make_reading(i, 10 + i) for i in range(10)]
        assert len(compute_points(series)) <= len(series)

    def test_cost_is_entry_total(self):
        series = [make_reading(0, 40, unit_cost=1.5), make_reading(3, 20, unit_cost=1.6)]
        (point,) = compute_points(series)
        assert point.cost == 32.0

    def test_non_first_baseline_entry_is_skipped(self):
        series = [make_reading(0, 40), make_reading(3, 20, is_first_entry=True), make_reading(6, 25)]
        points = compute_points(series)
        assert [p.quantity for p in points] == [25]

    def test_negative_quantity_is_clamped(self, caplog):
        series = [make_reading(0, 40), make_reading(3, -5)]
        (point,) = compute_points(series)
        assert point.quantity == 0.0
        assert "clamping" in caplog.text

    def test_efficiency_from_odometer(self):
        series = [make_reading(0, 40, odometer=1000), make_reading(7, 30, odometer=1300)]
        (point,) = compute_points(series)
        assert point.efficiency == 10.0

    def test_efficiency_missing_without_odometer(self):
        series = [make_reading(0, 40, odometer=1000), make_reading(7, 30)]
        (point,) = compute_points(series)
        assert point.efficiency is None

    def test_sorts_input(self):
        series = [make_reading(7, 30), make_reading(0, 50, is_first_entry=True)]
        points = compute_points(series)
        assert [p.date for p in points] == [date(2024, 1, 1), date(2024, 1, 8)]

    def test_points_keep_kind(self):
        series = [make_reading(0, 50), make_reading(1, 6, kind=EntryKind.ESTIMATED)]
        (point,) = compute_points(series)
        assert point.kind == EntryKind.ESTIMATED

    def test_custom_cost_function(self):
        series = [make_reading(0, 40), make_reading(3, 20)]
        (point,) = compute_points(series, cost_fn=lambda reading, quantity: quantity * 0.5)
        assert point.cost == 10.0

    def test_rejects_non_sequence(self):
        with pytest.raises(TypeError):
            compute_points(42)


class TestCumulativePoints:
    """Odometer series: consumption is the delta between readings."""

    def _odometer(self, day, reading, **kwargs):
        return make_reading(day, reading, unit_cost=0.0, odometer=reading, **kwargs)

    def test_deltas(self):
        series = [self._odometer(0, 1000), self._odometer(1, 1030), self._odometer(3, 1100)]
        points = compute_points(series, ConsumptionMode.CUMULATIVE)
        assert [p.quantity for p in points] == [30, 70]

    def test_rollback_is_clamped(self):
        series = [self._odometer(0, 1000), self._odometer(1, 990)]
        (point,) = compute_points(series, "cumulative")
        assert point.quantity == 0.0

    def test_baseline_first_reading(self):
        series = [self._odometer(0, 1000, is_first_entry=True), self._odometer(1, 1025)]
        points = compute_points(series, ConsumptionMode.CUMULATIVE)
        assert [p.quantity for p in points] == [0.0, 25]

    def test_no_efficiency(self):
        series = [self._odometer(0, 1000), self._odometer(1, 1030)]
        (point,) = compute_points(series, ConsumptionMode.CUMULATIVE)
        assert point.efficiency is None

    def test_default_cost_uses_unit_cost(self):
        reading = make_reading(0, 10, unit_cost=0.25)
        assert entry_unit_cost(reading, 8) == 2.0


class TestDailySeries:
    """One point per calendar day straight from topups."""

    def test_fills_missing_days_with_zeros(self):
        points = build_daily_series([make_reading(0, 10), make_reading(3, 20)])
        assert [p.quantity for p in points] == [10, 0.0, 0.0, 20]

    def test_without_fill(self):
        points = build_daily_series([make_reading(0, 10), make_reading(3, 20)], fill_missing_days=False)
        assert len(points) == 2

    def test_manual_wins_same_day(self):
        manual = make_reading(0, 10, reading_id="m")
        estimated = make_reading(0, 12, reading_id="e", kind=EntryKind.ESTIMATED)
        (point,) = build_daily_series([manual, estimated])
        assert point.reading_id == "m"

    def test_first_entry_baseline(self):
        points = build_daily_series([make_reading(0, 50, is_first_entry=True), make_reading(1, 20)])
        assert points[0].quantity == 0.0
        assert points[1].quantity == 20
