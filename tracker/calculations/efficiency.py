"""
Efficiency Calculations

Handles distance-per-volume metrics between consecutive readings:
- Miles per litre (or per kWh)
- Averages over a point list
"""

from typing import Iterable, Optional


def calculate_miles_per_unit(
    previous_odometer: Optional[float],
    current_odometer: Optional[float],
    quantity: Optional[float]
) -> Optional[float]:
    """
    Calculate distance travelled per unit consumed between two readings.

    Args:
        previous_odometer: Odometer at the earlier reading
        current_odometer: Odometer at this reading
        quantity: Litres/kWh logged at this reading

    Returns:
        Miles per unit rounded to 2 decimals, or None when the distance or
        quantity is not strictly positive

    Examples:
        >>> calculate_miles_per_unit(1000, 1300, 30)
        10.0
        >>> calculate_miles_per_unit(1000, 900, 30) is None
        True
        >>> calculate_miles_per_unit(1000, 1300, 0) is None
        True
    """
    if previous_odometer is None or current_odometer is None or quantity is None:
        return None

    distance = current_odometer - previous_odometer
    if distance <= 0 or quantity <= 0:
        return None

    return round(distance / quantity, 2)



def average_efficiency(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of the defined efficiency values, or None when there are none."""
    defined = [v for v in values if v is not None]
    if not defined:
        return None
    return round(sum(defined) / len(defined), 2)
