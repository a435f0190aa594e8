"""
Tests for tariff calculations.
"""

from datetime import date

import pytest

from calculations import (
    TariffCostFunction,
    TariffRate,
    annual_targets,
    cost_for_period,
    estimate_annual_cost,
    find_tariff_for_date,
    overlaps,
    validate_tariff_dates,
)
from conftest import make_reading


@pytest.fixture
def tariffs():
    return [
        TariffRate("old", date(2023, 1, 1), date(2023, 12, 31), unit_rate=30.0, standing_charge=50.0),
        TariffRate("new", date(2024, 1, 1), None, unit_rate=24.5, standing_charge=60.0),
    ]


class TestTariffLookup:

    def test_closed_period(self, tariffs):
        assert find_tariff_for_date(tariffs, date(2023, 6, 1)).id == "old"

    def test_open_period_runs_until_today(self, tariffs):
        assert find_tariff_for_date(tariffs, date(2024, 5, 1), today=date(2024, 6, 1)).id == "new"
        assert find_tariff_for_date(tariffs, date(2024, 7, 1), today=date(2024, 6, 1)) is None

    def test_before_any_tariff(self, tariffs):
        assert find_tariff_for_date(tariffs, date(2022, 6, 1)) is None


class TestTariffValidation:

    def test_reversed_range(self):
        assert validate_tariff_dates(date(2024, 4, 1), date(2024, 3, 1)) == "End date must be after start date"

    def test_valid_ranges(self):
        assert validate_tariff_dates(date(2024, 4, 1), None) is None
        assert validate_tariff_dates(date(2024, 4, 1), date(2024, 4, 1)) is None

    def test_missing_start(self):
        assert validate_tariff_dates(None, None) == "Start date is required"

    def test_overlap_with_open_period(self, tariffs):
        assert overlaps(tariffs, date(2025, 1, 1), None)

    def test_no_overlap_before_first(self, tariffs):
        assert not overlaps(tariffs, date(2022, 1, 1), date(2022, 12, 31))

    def test_overlap_excludes_self(self, tariffs):
        assert not overlaps(tariffs[1:], date(2024, 2, 1), None, exclude_id="new")


class TestTariffCosts:

    def test_cost_for_period(self):
        rate = TariffRate(None, date(2024, 1, 1), None, 24.5, 60.0)
        assert cost_for_period(rate, date(2024, 1, 1), date(2024, 1, 31), 100) == 42.5

    def test_cost_without_tariff(self):
        assert cost_for_period(None, date(2024, 1, 1), date(2024, 1, 31), 100) == 0.0

    def test_estimate_annual_cost(self):
        assert estimate_annual_cost(24.5, 60.0, 1000) == 464.0

    def test_annual_targets(self):
        rate = TariffRate(None, date(2024, 1, 1), None, 24.5, 60.0, estimated_annual_usage=1200)
        targets = annual_targets(rate)
        assert targets["annual"]["usage"] == 1200
        assert targets["monthly"]["usage"] == 100.0
        assert targets["annual"]["cost"] == estimate_annual_cost(24.5, 60.0, 1200)

    def test_annual_targets_without_tariff(self):
        assert annual_targets(None)["annual"] == {"usage": 0.0, "cost": 0.0}


class TestTariffCostFunction:

    def test_prices_at_tariff_rate(self, tariffs):
        cost_fn = TariffCostFunction(tariffs, today=date(2024, 6, 1))
        reading = make_reading(date(2024, 2, 1), 10, unit_cost=0.0)
        assert cost_fn(reading, 10) == pytest.approx(2.45)

    def test_standing_charge(self, tariffs):
        cost_fn = TariffCostFunction(tariffs, include_standing_charge=True, today=date(2024, 6, 1))
        reading = make_reading(date(2024, 2, 1), 10, unit_cost=0.0)
        assert cost_fn(reading, 10) == pytest.approx(3.05)

    def test_falls_back_to_entry_cost(self, tariffs):
        cost_fn = TariffCostFunction(tariffs)
        reading = make_reading(date(2022, 2, 1), 10, unit_cost=1.5)
        assert cost_fn(reading, 10) == 15.0

    def test_only_listed_fuel_types(self, tariffs):
        cost_fn = TariffCostFunction(tariffs, today=date(2024, 6, 1), fuel_types=["ELECTRIC"])
        petrol = make_reading(date(2024, 2, 1), 10, unit_cost=1.5, fuel_type="PETROL")
        electric = make_reading(date(2024, 2, 1), 10, unit_cost=1.5, fuel_type="ELECTRIC")
        assert cost_fn(petrol, 10) == 15.0
        assert cost_fn(electric, 10) == pytest.approx(2.45)
