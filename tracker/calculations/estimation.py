"""
Gap-Fill Estimation

Synthesizes ESTIMATED readings for days without a manual entry:
- Interior gaps between consecutive manual entries (interpolation)
- Trailing days after the last manual entry up to yesterday (extrapolation)

Estimates are derived state. They are regenerated from scratch every time the
manual set changes and are never written to the repository.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from utils.timezone import local_yesterday

from .constants import MONEY_DECIMALS, QUANTITY_DECIMALS
from .readings import EntryKind, Reading, synthetic_id

logger = logging.getLogger(__name__)


def format_uk_date(day: date) -> str:
    """Format a date the way provenance notes show it (DD/MM/YYYY)."""
    return day.strftime("%d/%m/%Y")


def average_per_day(first: Reading, second: Reading) -> float:
    """
    Average daily quantity across the interval bounded by two readings.

    Both bounding quantities are spread over the days of the interval,
    inclusive of both ends.

    Args:
        first: Earlier reading
        second: Later reading

    Returns:
        Quantity per day (unrounded)

    Examples:
        >>> average_per_day(Reading(None, "v", 10, date(2024, 1, 1)),
        ...                 Reading(None, "v", 20, date(2024, 1, 5)))
        6.0
    """
    gap = (second.date - first.date).days
    return (first.quantity + second.quantity) / (gap + 1)


def strip_estimates(readings: Iterable[Reading]) -> List[Reading]:
    """Drop every ESTIMATED reading, keeping manual and imported ones."""
    return [r for r in readings if not r.is_estimated]


def _make_estimate(anchor: Reading, day: date, avg: float, note: str) -> Reading:
    return Reading(
        id=synthetic_id(),
        subject_id=anchor.subject_id,
        quantity=round(avg, QUANTITY_DECIMALS),
        date=day,
        unit_cost=anchor.unit_cost,
        total_cost=round(avg * anchor.unit_cost, MONEY_DECIMALS),
        kind=EntryKind.ESTIMATED,
        is_first_entry=False,
        notes=note,
        fuel_type=anchor.fuel_type,
    )


def estimate_interior(
    manual_entries: List[Reading],
    covered_days: Optional[set] = None
) -> List[Reading]:
    """
    Interpolate one estimate per day strictly between consecutive entries.

    Args:
        manual_entries: Manual entries sorted ascending by date
        covered_days: Days that already have a manual entry (skipped)

    Returns:
        Estimated readings, ascending by date
    """
    if covered_days is None:
        covered_days = {r.date for r in manual_entries}

    estimates = []
    for current, following in zip(manual_entries, manual_entries[1:]):
        gap = (following.date - current.date).days
        if gap <= 1:
            continue

        avg = average_per_day(current, following)
        note = (
            "Estimated topup based on average between "
            f"{format_uk_date(current.date)} and {format_uk_date(following.date)}"
        )
        for offset in range(1, gap):
            day = current.date + timedelta(days=offset)
            if day in covered_days:
                continue
            estimates.append(_make_estimate(current, day, avg, note))

    return estimates


def estimate_trailing(
    manual_entries: List[Reading],
    through: date,
    covered_days: Optional[set] = None
) -> List[Reading]:
    """
    Extrapolate from the last two entries up to ``through`` (inclusive).

    Args:
        manual_entries: Manual entries sorted ascending by date
        through: Last day to estimate (normally yesterday in UK time)
        covered_days: Days that already have a manual entry (skipped)

    Returns:
        Estimated readings, ascending by date; empty with fewer than two entries
    """
    if len(manual_entries) < 2:
        return []
    if covered_days is None:
        covered_days = {r.date for r in manual_entries}

    previous, last = manual_entries[-2], manual_entries[-1]
    avg = average_per_day(previous, last)
    note = f"Estimated topup based on average daily consumption ({avg:.2f} L/day)"

    estimates = []
    day = last.date + timedelta(days=1)
    while day <= through:
        if day not in covered_days:
            estimates.append(_make_estimate(last, day, avg, note))
        day += timedelta(days=1)
    return estimates


def regenerate_estimates(
    manual_entries: Iterable[Reading],
    now: Optional[datetime] = None,
    through: Optional[date] = None
) -> List[Reading]:
    """
    Rebuild the full series for one subject: manual entries plus fresh estimates.

    Any ESTIMATED readings in the input are ignored; estimates are always
    regenerated from the manual set alone, so repeated calls with the same
    manual set yield the same dates and quantities.

    Args:
        manual_entries: Manual/imported readings for one subject, any order
        now: Moment used to resolve "yesterday" (defaults to the current time)
        through: Explicit last day for trailing estimates (overrides ``now``)

    Returns:
        Flat list of the manual entries followed by the generated estimates.
        Callers sort before computing consumption.

    Raises:
        TypeError: If ``manual_entries`` is not iterable

    Examples:
        >>> day1 = Reading("a", "v", 10, date(2024, 1, 1))
        >>> day5 = Reading("b", "v", 20, date(2024, 1, 5))
        >>> series = regenerate_estimates([day1, day5], through=date(2024, 1, 5))
        >>> [r.quantity for r in series if r.is_estimated]
        [6.0, 6.0, 6.0]
    """
    if isinstance(manual_entries, (str, bytes, dict)) or not hasattr(manual_entries, "__iter__"):
        raise TypeError("manual_entries must be a sequence of readings")

    manual = strip_estimates(manual_entries)
    if len(manual) < 2:
        return list(manual)

    ordered = sorted(manual, key=lambda r: r.date)
    covered_days = {r.date for r in ordered}

    if through is None:
        through = local_yesterday(now)

    interior = estimate_interior(ordered, covered_days)
    trailing = estimate_trailing(ordered, through, covered_days)

    logger.debug(
        f"Regenerated estimates for subject {ordered[0].subject_id}: "
        f"{len(interior)} interior, {len(trailing)} trailing"
    )
    return list(manual) + interior + trailing
