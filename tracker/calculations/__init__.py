"""
Fuel Tracker Calculation Module

Pure calculation functions for gap-fill estimation, consumption, aggregation,
efficiency, tariff and statistical calculations.

Nothing in this package touches the database, Flask or the network.

Usage:
    from calculations import regenerate_estimates, compute_points, bucket_points
    from calculations.constants import TREND_THRESHOLD_RATIO
"""

# Readings and result types
from .readings import (
    Bucket,
    ConsumptionPoint,
    EntryKind,
    Reading,
    TrendResult,
    synthetic_id,
)

# Gap-fill estimation
from .estimation import (
    average_per_day,
    estimate_interior,
    estimate_trailing,
    regenerate_estimates,
    strip_estimates,
)

# Consumption
from .consumption import (
    ConsumptionMode,
    build_daily_series,
    compute_points,
    entry_total_cost,
    entry_unit_cost,
)

# Aggregation
from .aggregation import (
    GRANULARITIES,
    bucket_all,
    bucket_key,
    bucket_points,
    classify_trend,
    season_for,
    seasonal_breakdown,
    summarize,
)

# Efficiency
from .efficiency import (
    average_efficiency,
    calculate_miles_per_unit,
)

# Tariffs
from .tariff import (
    TariffCostFunction,
    TariffRate,
    annual_targets,
    cost_for_period,
    estimate_annual_cost,
    find_tariff_for_date,
    overlaps,
    validate_tariff_dates,
)

# Statistics
from .statistics import (
    calculate_percent_change,
    safe_mean,
    split_halves,
)

__all__ = [
    # Types
    "Bucket",
    "ConsumptionPoint",
    "EntryKind",
    "Reading",
    "TrendResult",
    "synthetic_id",
    # Estimation
    "average_per_day",
    "estimate_interior",
    "estimate_trailing",
    "regenerate_estimates",
    "strip_estimates",
    # Consumption
    "ConsumptionMode",
    "build_daily_series",
    "compute_points",
    "entry_total_cost",
    "entry_unit_cost",
    # Aggregation
    "GRANULARITIES",
    "bucket_all",
    "bucket_key",
    "bucket_points",
    "classify_trend",
    "season_for",
    "seasonal_breakdown",
    "summarize",
    # Efficiency
    "average_efficiency",
    "calculate_miles_per_unit",
    # Tariffs
    "TariffCostFunction",
    "TariffRate",
    "annual_targets",
    "cost_for_period",
    "estimate_annual_cost",
    "find_tariff_for_date",
    "overlaps",
    "validate_tariff_dates",
    # Statistics
    "calculate_percent_change",
    "safe_mean",
    "split_halves",
]

__version__ = "1.0.0"
