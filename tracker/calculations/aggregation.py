"""
Aggregation Calculations

Buckets consumption points by period and classifies trends:
- Daily, weekly (Monday-aligned) and monthly bucket keys
- Per-bucket totals, averages, trend and efficiency
- First-half / second-half trend classification
- Period summaries and UK seasonal breakdowns

Trend percentages are relative: |second - first| / first x 100, rounded to
1 decimal, and None when the first-half average is zero.
"""

import logging
from collections import OrderedDict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from .constants import (
    MIN_POINTS_FOR_PAIRWISE_TREND,
    MIN_POINTS_FOR_TREND,
    MONEY_DECIMALS,
    QUANTITY_DECIMALS,
    TREND_THRESHOLD_RATIO,
)
from .efficiency import average_efficiency
from .readings import Bucket, ConsumptionPoint, TrendResult
from .statistics import calculate_percent_change, safe_mean, split_halves

logger = logging.getLogger(__name__)

GRANULARITIES = ("daily", "weekly", "monthly")

TREND_INCREASING = "increasing"
TREND_DECREASING = "decreasing"
TREND_STABLE = "stable"


def bucket_key(day: date, granularity: str) -> str:
    """
    Derive the bucket key for a date.

    Args:
        day: Calendar date of the point
        granularity: "daily", "weekly" or "monthly"

    Returns:
        ISO date, Monday-aligned ISO week start, or YYYY-MM

    Raises:
        ValueError: For an unknown granularity

    Examples:
        >>> bucket_key(date(2024, 3, 14), "weekly")  # a Thursday
        '2024-03-11'
        >>> bucket_key(date(2024, 3, 14), "monthly")
        '2024-03'
    """
    if granularity == "daily":
        return day.isoformat()
    if granularity == "weekly":
        return (day - timedelta(days=day.weekday())).isoformat()
    if granularity == "monthly":
        return f"{day.year:04d}-{day.month:02d}"
    raise ValueError(f"Unknown granularity: {granularity}")


def classify_trend(
    points: Iterable[ConsumptionPoint],
    min_points: int = MIN_POINTS_FOR_TREND
) -> TrendResult:
    """
    Classify the direction of a point series by comparing its two halves.

    The series is split at ``n // 2``. The second half is "increasing" when its
    average exceeds the first half's by more than 5% of the first half's
    average, "decreasing" when it falls short by more than that, and "stable"
    otherwise.

    Args:
        points: Points in date order
        min_points: Below this many points the result is stable/0

    Returns:
        TrendResult with the trend label and relative percentage

    Quantities [10, 10, 20, 20] give first/second averages of 10 and 20, a
    difference of 10 against a threshold of 0.5, so the trend is increasing
    by 100.0%.
    """
    quantities = [p.quantity for p in points]
    if len(quantities) < min_points or len(quantities) < 2:
        return TrendResult(TREND_STABLE, 0.0)

    first_half, second_half = split_halves(quantities)
    first_avg = safe_mean(first_half)
    second_avg = safe_mean(second_half)

    difference = second_avg - first_avg
    threshold = first_avg * TREND_THRESHOLD_RATIO

    if difference > threshold:
        trend = TREND_INCREASING
    elif difference < -threshold:
        trend = TREND_DECREASING
    else:
        trend = TREND_STABLE

    change = calculate_percent_change(second_avg, first_avg)
    percentage = abs(change) if change is not None else None
    return TrendResult(trend, percentage)


def bucket_points(
    points: Iterable[ConsumptionPoint],
    granularity: str = "daily",
    chronological: bool = False
) -> List[Bucket]:
    """
    Group points into period buckets.

    Totals stay unrounded on the Bucket; ``Bucket.to_dict`` rounds for output.

    Args:
        points: Consumption points
        granularity: "daily", "weekly" or "monthly"
        chronological: Sort buckets by key instead of first-seen order

    Returns:
        List of Buckets
    """
    grouped: Dict[str, List[ConsumptionPoint]] = OrderedDict()
    for point in points:
        grouped.setdefault(bucket_key(point.date, granularity), []).append(point)

    buckets = []
    for key, members in grouped.items():
        buckets.append(Bucket(
            key=key,
            total_quantity=sum(p.quantity for p in members),
            total_cost=sum(p.cost for p in members),
            count=len(members),
            trend=classify_trend(members, MIN_POINTS_FOR_PAIRWISE_TREND),
            average_efficiency=average_efficiency(p.efficiency for p in members),
        ))

    if chronological:
        buckets.sort(key=lambda b: b.key)
    return buckets


def bucket_all(points: List[ConsumptionPoint]) -> Dict[str, List[Bucket]]:
    """Bucket the same points at every granularity, chronologically."""
    return {g: bucket_points(points, g, chronological=True) for g in GRANULARITIES}


def summarize(points: Iterable[ConsumptionPoint]) -> dict:
    """
    Summarize a point series over its whole span.

    Baseline (first-entry) points are excluded from totals, averages and trend.

    Returns:
        Dict with total_quantity, total_cost, daily_average,
        average_efficiency, trend, trend_percentage, count, period_start, period_end
    """
    consumption = [p for p in points if not p.is_baseline]
    if not consumption:
        return {
            "total_quantity": 0.0,
            "total_cost": 0.0,
            "daily_average": 0.0,
            "average_efficiency": None,
            "trend": TREND_STABLE,
            "trend_percentage": 0.0,
            "count": 0,
            "period_start": None,
            "period_end": None,
        }

    ordered = sorted(consumption, key=lambda p: p.date)
    total_quantity = sum(p.quantity for p in ordered)
    total_cost = sum(p.cost for p in ordered)
    span_days = max((ordered[-1].date - ordered[0].date).days, 1)
    trend = classify_trend(ordered)

    return {
        "total_quantity": round(total_quantity, QUANTITY_DECIMALS),
        "total_cost": round(total_cost, MONEY_DECIMALS),
        "daily_average": round(total_quantity / span_days, QUANTITY_DECIMALS),
        "average_efficiency": average_efficiency(p.efficiency for p in ordered),
        "trend": trend.trend,
        "trend_percentage": trend.percentage,
        "count": len(ordered),
        "period_start": ordered[0].date.isoformat(),
        "period_end": ordered[-1].date.isoformat(),
    }


def season_for(day: date) -> tuple:
    """
    UK meteorological season for a date, as (season, year).

    January and February belong to the winter that started the previous December.

    Examples:
        >>> season_for(date(2024, 1, 15))
        ('Winter', 2023)
        >>> season_for(date(2024, 7, 1))
        ('Summer', 2024)
    """
    month = day.month
    if month in (3, 4, 5):
        return "Spring", day.year
    if month in (6, 7, 8):
        return "Summer", day.year
    if month in (9, 10, 11):
        return "Autumn", day.year
    if month == 12:
        return "Winter", day.year
    return "Winter", day.year - 1


def seasonal_breakdown(points: Iterable[ConsumptionPoint]) -> List[dict]:
    """Totals per UK season, in chronological order."""
    seasons: Dict[tuple, dict] = {}
    for point in sorted(points, key=lambda p: p.date):
        if point.is_baseline:
            continue
        season, year = season_for(point.date)
        entry = seasons.setdefault((season, year), {
            "season": season,
            "year": year,
            "total_quantity": 0.0,
            "total_cost": 0.0,
            "count": 0,
        })
        entry["total_quantity"] += point.quantity
        entry["total_cost"] += point.cost
        entry["count"] += 1

    result = []
    for entry in seasons.values():
        entry["total_quantity"] = round(entry["total_quantity"], QUANTITY_DECIMALS)
        entry["total_cost"] = round(entry["total_cost"], MONEY_DECIMALS)
        entry["average"] = round(entry["total_quantity"] / entry["count"], QUANTITY_DECIMALS)
        result.append(entry)
    return result
