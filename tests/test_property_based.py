"""
Property-based tests using Hypothesis.

These tests generate manual entry histories and check the invariants the
estimator, the consumption calculator and the bucketing must always keep.
"""

from datetime import date, timedelta

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from calculations import (
    ConsumptionMode,
    EntryKind,
    bucket_points,
    compute_points,
    regenerate_estimates,
)
from conftest import make_reading

BASE = date(2024, 1, 1)

quantities = st.floats(min_value=0.5, max_value=120.0, allow_nan=False, allow_infinity=False)


@st.composite
def manual_histories(draw, min_size=2, max_size=12):
    """Manual readings on distinct days within a year of BASE."""
    offsets = draw(st.lists(st.integers(0, 365), min_size=min_size, max_size=max_size, unique=True))
    return [
        make_reading(BASE + timedelta(days=offset), draw(quantities), reading_id=f"m{i}")
        for i, offset in enumerate(offsets)
    ]


def _shape(series):
    return sorted((r.date, round(r.quantity, 9), r.kind.value) for r in series)


# ============================================================================
# Estimation
# ============================================================================


class TestEstimationProperties:
    """Gap-fill estimation invariants."""

    @given(manual_histories(), st.integers(0, 10))
    @settings(max_examples=60, suppress_health_check=[HealthCheck.too_slow])
    def test_regeneration_is_idempotent(self, manual, extra_days):
        """
        Property: regenerating from an already-estimated series yields the same series.
        """
        through = max(r.date for r in manual) + timedelta(days=extra_days)
        first = regenerate_estimates(manual, through=through)
        second = regenerate_estimates(first, through=through)

        assert _shape(first) == _shape(second)

    @given(manual_histories(), st.integers(0, 10))
    @settings(max_examples=60, suppress_health_check=[HealthCheck.too_slow])
    def test_every_day_covered_exactly_once(self, manual, extra_days):
        """
        Property: manual entries plus estimates cover each day from the first
        entry through the horizon exactly once.
        """
        through = max(r.date for r in manual) + timedelta(days=extra_days)
        series = regenerate_estimates(manual, through=through)

        first_day = min(r.date for r in manual)
        expected = [first_day + timedelta(days=i) for i in range((through - first_day).days + 1)]
        assert sorted(r.date for r in series) == expected

    @given(manual_histories())
    @settings(max_examples=60)
    def test_estimates_are_positive_and_never_first(self, manual):
        through = max(r.date for r in manual) + timedelta(days=3)
        estimates = [r for r in regenerate_estimates(manual, through=through) if r.is_estimated]

        assert all(e.quantity > 0 for e in estimates)
        assert not any(e.is_first_entry for e in estimates)
        assert all(e.kind == EntryKind.ESTIMATED for e in estimates)

    @given(manual_histories(min_size=0, max_size=1))
    def test_short_histories_unchanged(self, manual):
        assert regenerate_estimates(manual, through=BASE + timedelta(days=400)) == manual


# ============================================================================
# Consumption and bucketing
# ============================================================================


class TestConsumptionProperties:
    """Consumption point invariants."""

    @given(manual_histories(min_size=0), st.sampled_from(list(ConsumptionMode)))
    @settings(max_examples=80)
    def test_points_never_outnumber_entries(self, manual, mode):
        assert len(compute_points(manual, mode)) <= len(manual)

    @given(manual_histories(min_size=0), st.sampled_from(list(ConsumptionMode)))
    @settings(max_examples=80)
    def test_points_are_never_negative(self, manual, mode):
        points = compute_points(manual, mode)
        assert all(p.quantity >= 0 for p in points)
        assert all(p.cost >= 0 for p in points)

    @given(manual_histories(min_size=0), st.sampled_from(["daily", "weekly", "monthly"]))
    @settings(max_examples=80)
    def test_buckets_preserve_totals(self, manual, granularity):
        """
        Property: bucketing redistributes consumption but never creates or loses any.
        """
        points = compute_points(manual)
        buckets = bucket_points(points, granularity)

        assert sum(b.count for b in buckets) == len(points)
        assert sum(b.total_quantity for b in buckets) == pytest.approx(sum(p.quantity for p in points))
        assert sum(b.total_cost for b in buckets) == pytest.approx(sum(p.cost for p in points))

    @given(manual_histories(min_size=1))
    @settings(max_examples=40)
    def test_monthly_keys_are_unique(self, manual):
        keys = [b.key for b in bucket_points(compute_points(manual), "monthly")]
        assert len(keys) == len(set(keys))
