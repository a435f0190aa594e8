"""
Entry repositories over SQLAlchemy.

Each repository wraps one session and one entry model. Reads return model
instances (routes serialize them) or core Readings (the series trackers
compute over them). Commit failures are rolled back and re-raised as
DatabaseError so callers can fall back to the degraded-write queue.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError

from calculations.constants import MONEY_DECIMALS
from calculations.readings import Reading
from exceptions import DatabaseError, EntryNotFoundError
from models import FuelTopup, MileageEntry

logger = logging.getLogger(__name__)


class EntryRepository:
    """Base repository for per-vehicle dated entries."""

    model = None
    first_flag = None
    # Model column -> Reading attribute
    reading_fields: Dict[str, str] = {}
    label = "entry"

    def __init__(self, db):
        self.db = db

    # ------------------------------------------------------------------ reads

    def _query(self):
        return self.db.query(self.model)

    def list_entries(
        self,
        subject_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list:
        try:
            query = self._query()
            if subject_id:
                query = query.filter(self.model.vehicle_id == subject_id)
            if start_date:
                query = query.filter(self.model.date >= start_date)
            if end_date:
                query = query.filter(self.model.date <= end_date)
            return query.order_by(self.model.date, self.model.created_at).all()
        except OperationalError as e:
            self.db.rollback()
            error = DatabaseError(
                f"Failed to list {self.label}s: {e}", {'subject_id': subject_id}, retryable=True
            )
            logger.error(str(error))
            raise error from e

    def list_readings(self, subject_id: str) -> List[Reading]:
        return [entry.to_reading() for entry in self.list_entries(subject_id)]

    def subject_ids(self) -> List[str]:
        try:
            rows = self.db.query(self.model.vehicle_id).distinct().all()
        except OperationalError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to list vehicles: {e}", retryable=True) from e
        return sorted(row[0] for row in rows)

    def get(self, entry_id: str):
        try:
            entry = self.db.get(self.model, entry_id)
        except OperationalError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to load {self.label} {entry_id}: {e}", retryable=True) from e
        if entry is None:
            raise EntryNotFoundError(f"{self.label.capitalize()} not found", entry_id=entry_id)
        return entry

    # ------------------------------------------------------------- conversion

    def reading_changes(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Translate model-level fields into Reading attribute changes."""
        return {
            self.reading_fields[key]: value
            for key, value in fields.items()
            if key in self.reading_fields
        }

    def reading_from_fields(self, fields: Dict[str, Any], entry_id: Optional[str] = None) -> Reading:
        """Build an unsaved Reading from submitted model fields."""
        changes = self.reading_changes(self.prepare_fields(dict(fields)))
        changes.setdefault("subject_id", "default")
        return Reading(id=entry_id, **changes)

    def prepare_fields(self, fields: Dict[str, Any], existing=None) -> Dict[str, Any]:
        """Hook for derived columns before a write."""
        return fields

    # ---------------------------------------------------------------- writes

    def _commit(self, action: str, entry_id: Optional[str] = None) -> None:
        try:
            self.db.commit()
        except (IntegrityError, OperationalError) as e:
            self.db.rollback()
            details = {'entry_id': entry_id} if entry_id else {}
            error = DatabaseError(
                f"Failed to {action} {self.label}: {e}", details, retryable=isinstance(e, OperationalError)
            )
            logger.error(str(error), exc_info=True)
            raise error from e

    def create(self, fields: Dict[str, Any]):
        entry = self.model(**self.prepare_fields(dict(fields)))
        self.db.add(entry)
        self._commit("create")
        logger.info(f"Created {self.label} {entry.id} for {entry.vehicle_id} on {entry.date}")
        return entry

    def update(self, entry_id: str, fields: Dict[str, Any]):
        entry = self.get(entry_id)
        for key, value in self.prepare_fields(dict(fields), existing=entry).items():
            setattr(entry, key, value)
        self._commit("update", entry_id)
        return entry

    def delete(self, entry_id: str) -> Dict[str, Any]:
        entry = self.get(entry_id)
        payload = entry.to_dict()
        self.db.delete(entry)
        self._commit("delete", entry_id)
        logger.info(f"Deleted {self.label} {entry_id}")
        return payload

    def set_first_entry(self, entry_id: str, value: bool = True):
        """
        Set or clear the baseline flag.

        Setting it clears the flag on every other entry for the same vehicle
        in the same transaction.
        """
        entry = self.get(entry_id)
        if value:
            others = (
                self._query()
                .filter(self.model.vehicle_id == entry.vehicle_id)
                .filter(self.model.id != entry_id)
                .filter(getattr(self.model, self.first_flag).is_(True))
            )
            for other in others:
                setattr(other, self.first_flag, False)
        setattr(entry, self.first_flag, value)
        self._commit("flag", entry_id)
        return entry


class TopupRepository(EntryRepository):
    """Fuel topups (litres are additive consumption)."""

    model = FuelTopup
    first_flag = "is_first_topup"
    label = "fuel topup"
    reading_fields = {
        "vehicle_id": "subject_id",
        "litres": "quantity",
        "date": "date",
        "cost_per_litre": "unit_cost",
        "total_cost": "total_cost",
        "entry_type": "kind",
        "is_first_topup": "is_first_entry",
        "mileage": "odometer",
        "notes": "notes",
        "fuel_type": "fuel_type",
    }

    def prepare_fields(self, fields, existing=None):
        # total_cost follows litres x cost_per_litre unless given explicitly
        if fields.get("total_cost") is not None:
            return fields
        if existing is None or "litres" in fields or "cost_per_litre" in fields:
            litres = fields.get("litres", existing.litres if existing is not None else None)
            cost_per_litre = fields.get(
                "cost_per_litre", existing.cost_per_litre if existing is not None else 0.0
            )
            if litres is not None:
                fields["total_cost"] = round(litres * (cost_per_litre or 0.0), MONEY_DECIMALS)
        return fields


class MileageRepository(EntryRepository):
    """Odometer readings (cumulative)."""

    model = MileageEntry
    first_flag = "is_first_reading"
    label = "mileage entry"
    reading_fields = {
        "vehicle_id": "subject_id",
        "odometer_reading": "quantity",
        "date": "date",
        "is_first_reading": "is_first_entry",
        "notes": "notes",
    }

    def reading_changes(self, fields):
        changes = super().reading_changes(fields)
        if "quantity" in changes:
            changes["odometer"] = changes["quantity"]
        return changes
