"""
Statistical Calculations

Small numeric helpers used by trend classification and summaries:
- Guarded means
- Half splitting
- Percentage change
"""

from typing import List, Optional, Sequence, Tuple

from .constants import PERCENT_DECIMALS


def safe_mean(values: Sequence[float]) -> float:
    """
    Arithmetic mean that returns 0.0 for an empty sequence.

    Examples:
        >>> safe_mean([10, 20])
        15.0
        >>> safe_mean([])
        0.0
    """
    if not values:
        return 0.0
    return sum(values) / len(values)


def split_halves(values: Sequence) -> Tuple[List, List]:
    """
    Split a sequence at ``len // 2``.

    Odd-length input puts the extra element in the second half.

    Examples:
        >>> split_halves([1, 2, 3, 4, 5])
        ([1, 2], [3, 4, 5])
    """
    mid = len(values) // 2
    return list(values[:mid]), list(values[mid:])


def calculate_percent_change(
    new_value: float,
    old_value: float
) -> Optional[float]:
    """
    Calculate percentage change between two values.

    Args:
        new_value: New/current value
        old_value: Old/previous value

    Returns:
        Percentage change rounded to 1 decimal, or None when old_value is 0

    Examples:
        >>> calculate_percent_change(110, 100)
        10.0
        >>> calculate_percent_change(90, 100)
        -10.0
        >>> calculate_percent_change(100, 0) is None
        True
    """
    if old_value == 0:
        return None

    change = ((new_value - old_value) / old_value) * 100
    return round(change, PERCENT_DECIMALS)
