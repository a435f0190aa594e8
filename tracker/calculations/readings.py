"""
Reading and point types shared by the calculation modules.

A Reading is one entry in a subject's series (a fuel topup, a meter reading
or an odometer reading). The calculation functions only ever see Readings;
persistence models convert themselves with ``to_reading()``.
"""

import random
import string
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

from utils.timezone import to_calendar_date

from .constants import ESTIMATE_ID_PREFIX, MONEY_DECIMALS

_ID_ALPHABET = string.digits + string.ascii_lowercase


class EntryKind(str, Enum):
    """Where a reading came from."""

    MANUAL = "MANUAL"
    IMPORTED = "IMPORTED"
    ESTIMATED = "ESTIMATED"


def synthetic_id(prefix: str = ESTIMATE_ID_PREFIX) -> str:
    """
    Build a non-persisted id: prefix, epoch milliseconds and a random suffix.

    Examples:
        >>> synthetic_id()  # doctest: +SKIP
        'est-1718000000000-k2j9x0a1b'
    """
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


@dataclass
class Reading:
    """One entry in a consumption series."""

    id: Optional[str]
    subject_id: str
    quantity: float
    date: date
    unit_cost: float = 0.0
    total_cost: Optional[float] = None
    kind: EntryKind = EntryKind.MANUAL
    is_first_entry: bool = False
    odometer: Optional[float] = None
    notes: Optional[str] = None
    fuel_type: Optional[str] = None
    pending: bool = False

    def __post_init__(self):
        self.date = to_calendar_date(self.date)
        self.kind = EntryKind(self.kind)
        if self.total_cost is None:
            self.total_cost = round(self.quantity * self.unit_cost, MONEY_DECIMALS)

    @property
    def is_estimated(self) -> bool:
        return self.kind == EntryKind.ESTIMATED

    def copy(self, **changes) -> "Reading":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        data["kind"] = self.kind.value
        return data


@dataclass
class ConsumptionPoint:
    """Consumption attributed to one entry's date."""

    date: date
    quantity: float
    cost: float
    odometer: Optional[float] = None
    efficiency: Optional[float] = None
    reading_id: Optional[str] = None
    kind: EntryKind = EntryKind.MANUAL
    is_baseline: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "date": self.date.isoformat(),
            "quantity": self.quantity,
            "cost": self.cost,
            "reading_id": self.reading_id,
            "kind": EntryKind(self.kind).value,
        }
        if self.odometer is not None:
            data["odometer"] = self.odometer
        if self.efficiency is not None:
            data["efficiency"] = self.efficiency
        return data


@dataclass
class TrendResult:
    trend: str = "stable"
    percentage: Optional[float] = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"trend": self.trend, "percentage": self.percentage}


@dataclass
class Bucket:
    """Aggregate of the points that fall into one daily/weekly/monthly period."""

    key: str
    total_quantity: float = 0.0
    total_cost: float = 0.0
    count: int = 0
    trend: TrendResult = field(default_factory=TrendResult)
    average_efficiency: Optional[float] = None

    @property
    def average_daily(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_quantity / self.count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.key,
            "total_quantity": round(self.total_quantity, 2),
            "total_cost": round(self.total_cost, 2),
            "average_daily": round(self.average_daily, 2),
            "count": self.count,
            "trend": self.trend.trend,
            "trend_percentage": self.trend.percentage,
            "average_efficiency": self.average_efficiency,
        }
