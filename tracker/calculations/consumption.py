"""
Consumption Calculations

Turns a date-ordered series of readings into per-entry consumption points:
- Additive series (fuel topups, kWh meter reads): the logged quantity is the consumption
- Cumulative series (odometer readings): consumption is the delta from the previous reading
- Baseline (first) entries contribute a zero point
- Negative values are clamped to zero and logged, never raised
"""

import logging
from datetime import timedelta
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from .constants import MONEY_DECIMALS, QUANTITY_DECIMALS
from .efficiency import calculate_miles_per_unit
from .readings import ConsumptionPoint, EntryKind, Reading

logger = logging.getLogger(__name__)

CostFunction = Callable[[Reading, float], float]


class ConsumptionMode(str, Enum):
    """How a subject's quantities relate to consumption."""

    ADDITIVE = "additive"
    CUMULATIVE = "cumulative"


def entry_total_cost(reading: Reading, quantity: float) -> float:
    """Cost as recorded on the entry itself (fuel topups)."""
    return reading.total_cost or 0.0


def entry_unit_cost(reading: Reading, quantity: float) -> float:
    """Cost of ``quantity`` at the entry's own unit cost."""
    return quantity * (reading.unit_cost or 0.0)


def _ensure_sequence(series) -> List[Reading]:
    if isinstance(series, (str, bytes, dict)) or not hasattr(series, "__iter__"):
        raise TypeError("series must be a sequence of readings")
    return sorted(series, key=lambda r: r.date)


def _zero_point(reading: Reading) -> ConsumptionPoint:
    return ConsumptionPoint(
        date=reading.date,
        quantity=0.0,
        cost=0.0,
        odometer=reading.odometer,
        reading_id=reading.id,
        kind=reading.kind,
        is_baseline=True,
    )


def _raw_consumption(mode: ConsumptionMode, previous: Reading, current: Reading) -> float:
    if mode == ConsumptionMode.CUMULATIVE:
        if previous.odometer is None or current.odometer is None:
            return 0.0
        return current.odometer - previous.odometer
    return current.quantity


def compute_points(
    series: Iterable[Reading],
    mode: ConsumptionMode = ConsumptionMode.ADDITIVE,
    cost_fn: Optional[CostFunction] = None
) -> List[ConsumptionPoint]:
    """
    Compute one consumption point per entry.

    Args:
        series: Readings for one subject (manual and estimated)
        mode: ADDITIVE for topups, CUMULATIVE for odometer/meter readings
        cost_fn: ``cost_fn(reading, quantity)``; defaults to the entry's total
            cost for additive series and quantity x unit cost for cumulative ones

    Returns:
        Points sorted ascending by date. Never longer than the input.

    Raises:
        TypeError: If ``series`` is not a sequence

    Examples:
        >>> first = Reading("a", "v", 50, date(2024, 1, 1), is_first_entry=True)
        >>> second = Reading("b", "v", 30, date(2024, 1, 2))
        >>> [p.quantity for p in compute_points([first, second])]
        [0.0, 30]
    """
    ordered = _ensure_sequence(series)
    mode = ConsumptionMode(mode)
    if cost_fn is None:
        cost_fn = entry_total_cost if mode == ConsumptionMode.ADDITIVE else entry_unit_cost

    if not ordered:
        return []

    if len(ordered) == 1:
        only = ordered[0]
        return [_zero_point(only)] if only.is_first_entry else []

    points = []
    if ordered[0].is_first_entry:
        points.append(_zero_point(ordered[0]))

    for previous, current in zip(ordered, ordered[1:]):
        if current.is_first_entry:
            continue

        quantity = _raw_consumption(mode, previous, current)
        if quantity < 0:
            logger.warning(
                f"Negative consumption {quantity:.2f} for subject {current.subject_id} "
                f"on {current.date.isoformat()}, clamping to 0"
            )
            quantity = 0.0

        efficiency = None
        if mode == ConsumptionMode.ADDITIVE:
            efficiency = calculate_miles_per_unit(previous.odometer, current.odometer, quantity)

        points.append(ConsumptionPoint(
            date=current.date,
            quantity=round(quantity, QUANTITY_DECIMALS),
            cost=round(cost_fn(current, quantity), MONEY_DECIMALS),
            odometer=current.odometer,
            efficiency=efficiency,
            reading_id=current.id,
            kind=current.kind,
        ))

    return points


def _pick_daily_readings(readings: List[Reading]) -> List[Reading]:
    # One reading per day: MANUAL beats anything else, otherwise the later one wins
    best: Dict = {}
    for reading in readings:
        existing = best.get(reading.date)
        if existing is None:
            best[reading.date] = reading
        elif reading.kind == EntryKind.MANUAL or existing.kind != EntryKind.MANUAL:
            best[reading.date] = reading
    return [best[day] for day in sorted(best)]


def build_daily_series(
    readings: Iterable[Reading],
    fill_missing_days: bool = True
) -> List[ConsumptionPoint]:
    """
    Build a one-point-per-day consumption series straight from topups.

    Unlike ``compute_points`` every non-baseline topup counts, including the
    earliest one, and days between topups can be filled with zero points so a
    chart shows a continuous axis.

    Args:
        readings: Topups for one subject
        fill_missing_days: Insert zero points for days with no topup

    Returns:
        Daily points sorted ascending by date
    """
    selected = _pick_daily_readings(_ensure_sequence(readings))
    if not selected:
        return []

    points: List[ConsumptionPoint] = []
    for index, current in enumerate(selected):
        if index == 0 and current.is_first_entry:
            points.append(_zero_point(current))
            continue

        previous = selected[index - 1] if index > 0 else None
        if fill_missing_days and previous is not None:
            gap_day = previous.date + timedelta(days=1)
            while gap_day < current.date:
                points.append(ConsumptionPoint(date=gap_day, quantity=0.0, cost=0.0))
                gap_day += timedelta(days=1)

        efficiency = None
        if previous is not None:
            efficiency = calculate_miles_per_unit(previous.odometer, current.odometer, current.quantity)

        points.append(ConsumptionPoint(
            date=current.date,
            quantity=round(max(current.quantity, 0.0), QUANTITY_DECIMALS),
            cost=round(current.total_cost or 0.0, MONEY_DECIMALS),
            odometer=current.odometer,
            efficiency=efficiency,
            reading_id=current.id,
            kind=current.kind,
        ))

    return points
