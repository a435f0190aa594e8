"""
Calculation Constants for the fuel tracker

Centralized location for the numeric constants used by the consumption,
estimation and aggregation calculations.
Values are read from Config where they are configurable.
"""

from config import Config

# Reference timezone for calendar-day semantics
REFERENCE_TIMEZONE = Config.REFERENCE_TIMEZONE

# Rounding
QUANTITY_DECIMALS = 2  # Litres / kWh
MONEY_DECIMALS = 2  # Pounds
PERCENT_DECIMALS = 1

# Trend classification
TREND_THRESHOLD_RATIO = 0.05  # 5% of the first-half average
MIN_POINTS_FOR_TREND = 4  # Summary-level trend
MIN_POINTS_FOR_PAIRWISE_TREND = 2  # Per-bucket trend

# Duplicate detection
DUPLICATE_QUANTITY_TOLERANCE = Config.DUPLICATE_QUANTITY_TOLERANCE

# Tariff math
PENCE_PER_POUND = 100.0
DAYS_PER_YEAR = 365
MONTHS_PER_YEAR = 12
DEFAULT_ANNUAL_USAGE_KWH = Config.DEFAULT_ANNUAL_USAGE_KWH

# Synthetic ids for estimated readings
ESTIMATE_ID_PREFIX = "est"
LOCAL_ID_PREFIX = "local"
