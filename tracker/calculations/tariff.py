"""
Tariff Calculations

Electricity tariff math. Rates are in pence; costs are returned in pounds.
- Tariff lookup by date (open-ended periods run until today)
- Date validation and overlap detection
- Period and annual cost estimates
- Tariff-derived cost function for metered consumption
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from utils.timezone import local_today, to_calendar_date

from .constants import (
    DAYS_PER_YEAR,
    DEFAULT_ANNUAL_USAGE_KWH,
    MONEY_DECIMALS,
    MONTHS_PER_YEAR,
    PENCE_PER_POUND,
)
from .readings import Reading

logger = logging.getLogger(__name__)

OPEN_END = date(9999, 12, 31)


@dataclass
class TariffRate:
    """The rate part of a tariff period, detached from persistence."""

    id: Optional[str]
    start_date: date
    end_date: Optional[date]
    unit_rate: float
    standing_charge: float
    estimated_annual_usage: Optional[float] = None
    estimated_annual_cost: Optional[float] = None
    name: Optional[str] = None

    def __post_init__(self):
        self.start_date = to_calendar_date(self.start_date)
        self.end_date = to_calendar_date(self.end_date)


def validate_tariff_dates(start_date: date, end_date: Optional[date]) -> Optional[str]:
    """
    Check a tariff's date range.

    Returns:
        An error message, or None when the range is valid

    Examples:
        >>> validate_tariff_dates(date(2024, 4, 1), date(2024, 3, 1))
        'End date must be after start date'
        >>> validate_tariff_dates(date(2024, 4, 1), None) is None
        True
    """
    if start_date is None:
        return "Start date is required"
    if end_date is not None and end_date < start_date:
        return "End date must be after start date"
    return None


def overlaps(
    existing: Iterable[TariffRate],
    start_date: date,
    end_date: Optional[date],
    exclude_id: Optional[str] = None
) -> bool:
    """
    Whether [start_date, end_date] intersects any existing period.

    Open-ended periods (and an open ``end_date``) extend to 9999-12-31.
    """
    new_end = end_date or OPEN_END
    for tariff in existing:
        if exclude_id is not None and tariff.id == exclude_id:
            continue
        tariff_end = tariff.end_date or OPEN_END
        if start_date <= tariff_end and new_end >= tariff.start_date:
            return True
    return False


def find_tariff_for_date(
    tariffs: Iterable[TariffRate],
    day: date,
    today: Optional[date] = None
) -> Optional[TariffRate]:
    """
    Find the tariff active on ``day``.

    Periods are checked newest start first; an open-ended period is treated
    as ending today.

    Args:
        tariffs: All known periods
        day: Date to look up
        today: Override for "today" (defaults to the reference timezone's date)

    Returns:
        Matching TariffRate, or None
    """
    if today is None:
        today = local_today()

    for tariff in sorted(tariffs, key=lambda t: t.start_date, reverse=True):
        end = tariff.end_date or today
        if tariff.start_date <= day <= end:
            return tariff
    return None


def cost_for_period(
    tariff: Optional[TariffRate],
    start_date: date,
    end_date: date,
    consumption: float
) -> float:
    """
    Cost in pounds of ``consumption`` units plus standing charges over a period.

    Examples:
        >>> rate = TariffRate(None, date(2024, 1, 1), None, 24.5, 60.0)
        >>> cost_for_period(rate, date(2024, 1, 1), date(2024, 1, 31), 100)
        42.5
    """
    if tariff is None:
        return 0.0
    days = max((end_date - start_date).days, 0)
    standing = (tariff.standing_charge / PENCE_PER_POUND) * days
    units = (tariff.unit_rate / PENCE_PER_POUND) * consumption
    return round(standing + units, MONEY_DECIMALS)


def estimate_annual_cost(
    unit_rate: float,
    standing_charge: float,
    annual_usage: Optional[float] = None
) -> float:
    """
    Estimated annual cost in pounds.

    Examples:
        >>> estimate_annual_cost(24.5, 60.0, 1000)
        464.0
    """
    usage = annual_usage or DEFAULT_ANNUAL_USAGE_KWH
    unit_cost = (usage * unit_rate) / PENCE_PER_POUND
    standing_cost = (DAYS_PER_YEAR * standing_charge) / PENCE_PER_POUND
    return round(unit_cost + standing_cost, MONEY_DECIMALS)


def annual_targets(tariff: Optional[TariffRate]) -> dict:
    """Annual and monthly usage/cost targets for a tariff."""
    if tariff is None:
        return {"annual": {"usage": 0.0, "cost": 0.0}, "monthly": {"usage": 0.0, "cost": 0.0}}

    usage = tariff.estimated_annual_usage or DEFAULT_ANNUAL_USAGE_KWH
    cost = tariff.estimated_annual_cost
    if cost is None:
        cost = estimate_annual_cost(tariff.unit_rate, tariff.standing_charge, usage)

    return {
        "annual": {"usage": round(usage, 2), "cost": round(cost, MONEY_DECIMALS)},
        "monthly": {
            "usage": round(usage / MONTHS_PER_YEAR, 2),
            "cost": round(cost / MONTHS_PER_YEAR, MONEY_DECIMALS),
        },
    }


class TariffCostFunction:
    """
    Cost function that prices consumption at the tariff in force on the entry date.

    Only readings whose fuel type is in ``fuel_types`` are tariff-priced (all
    readings when it is None). Other readings, and readings on dates without a
    tariff, keep their own recorded cost.
    """

    def __init__(self, tariffs: Iterable[TariffRate], include_standing_charge: bool = False,
                 today: Optional[date] = None, fuel_types: Optional[Iterable[str]] = None):
        self.tariffs = list(tariffs)
        self.include_standing_charge = include_standing_charge
        self.today = today
        self.fuel_types = set(fuel_types) if fuel_types is not None else None

    def __call__(self, reading: Reading, quantity: float) -> float:
        if self.fuel_types is not None and reading.fuel_type not in self.fuel_types:
            return reading.total_cost or 0.0

        tariff = find_tariff_for_date(self.tariffs, reading.date, self.today)
        if tariff is None:
            logger.debug(f"No tariff for {reading.date.isoformat()}, using entry cost")
            return reading.total_cost or 0.0

        cost = quantity * tariff.unit_rate / PENCE_PER_POUND
        if self.include_standing_charge:
            cost += tariff.standing_charge / PENCE_PER_POUND
        return cost
