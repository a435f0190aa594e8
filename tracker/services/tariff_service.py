"""
Tariff period service.

CRUD for electricity tariff periods. Every successful change publishes
``tariffs_changed`` with the full list of rates so dependent series can be
re-priced.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError

from calculations import (
    TariffRate,
    estimate_annual_cost,
    find_tariff_for_date,
    overlaps,
    validate_tariff_dates,
)
from exceptions import DatabaseError, EntryNotFoundError, TariffValidationError
from models import TariffPeriod
from services.events import TARIFFS_CHANGED
from utils.timezone import local_today, to_calendar_date

logger = logging.getLogger(__name__)

TARIFF_FIELDS = (
    'name',
    'start_date',
    'end_date',
    'unit_rate',
    'standing_charge',
    'estimated_annual_usage',
    'estimated_annual_cost',
)


def list_tariffs(db) -> List[TariffPeriod]:
    """All tariff periods, newest first."""
    try:
        return db.query(TariffPeriod).order_by(TariffPeriod.start_date.desc()).all()
    except OperationalError as e:
        db.rollback()
        raise DatabaseError(f"Failed to list tariffs: {e}", retryable=True) from e


def get_rates(db) -> List[TariffRate]:
    return [tariff.to_rate() for tariff in list_tariffs(db)]


def get_tariff(db, tariff_id: str) -> TariffPeriod:
    tariff = db.get(TariffPeriod, tariff_id)
    if tariff is None:
        raise EntryNotFoundError("Tariff not found", entry_id=tariff_id)
    return tariff


def get_current_tariff(db, today=None) -> Optional[TariffPeriod]:
    """Tariff in force today, if any."""
    rate = find_tariff_for_date(get_rates(db), today or local_today(), today)
    if rate is None:
        return None
    return db.get(TariffPeriod, rate.id)


def _prepare(db, fields: Dict[str, Any], existing: Optional[TariffPeriod] = None) -> Dict[str, Any]:
    values = {key: fields[key] for key in TARIFF_FIELDS if key in fields}
    for key in ('start_date', 'end_date'):
        if key in values:
            values[key] = to_calendar_date(values[key])

    start = values.get('start_date', existing.start_date if existing else None)
    end = values['end_date'] if 'end_date' in values else (existing.end_date if existing else None)
    tariff_id = existing.id if existing else None

    error = validate_tariff_dates(start, end)
    if error:
        raise TariffValidationError(error, tariff_id=tariff_id)

    if overlaps(get_rates(db), start, end, exclude_id=tariff_id):
        raise TariffValidationError("Tariff period overlaps an existing period", tariff_id=tariff_id)

    unit_rate = values.get('unit_rate', existing.unit_rate if existing else None)
    if unit_rate is None:
        raise TariffValidationError("Unit rate is required", tariff_id=tariff_id)
    standing = values.get('standing_charge', existing.standing_charge if existing else 0.0) or 0.0
    values.setdefault('standing_charge', standing)

    # Annual cost is derived unless supplied explicitly
    if fields.get('estimated_annual_cost') is None:
        usage = values.get(
            'estimated_annual_usage', existing.estimated_annual_usage if existing else None
        )
        values['estimated_annual_cost'] = estimate_annual_cost(unit_rate, standing, usage)
    return values


def _commit(db, action: str) -> None:
    try:
        db.commit()
    except (IntegrityError, OperationalError) as e:
        db.rollback()
        error = DatabaseError(f"Failed to {action} tariff: {e}", retryable=isinstance(e, OperationalError))
        logger.error(str(error), exc_info=True)
        raise error from e


def _publish(db, bus) -> None:
    if bus is not None:
        bus.publish(TARIFFS_CHANGED, {"tariffs": get_rates(db)})


def create_tariff(db, fields: Dict[str, Any], bus=None) -> TariffPeriod:
    tariff = TariffPeriod(**_prepare(db, fields))
    db.add(tariff)
    _commit(db, "create")
    logger.info(f"Created tariff {tariff.id} from {tariff.start_date}")
    _publish(db, bus)
    return tariff


def update_tariff(db, tariff_id: str, fields: Dict[str, Any], bus=None) -> TariffPeriod:
    tariff = get_tariff(db, tariff_id)
    for key, value in _prepare(db, fields, existing=tariff).items():
        setattr(tariff, key, value)
    _commit(db, "update")
    _publish(db, bus)
    return tariff


def delete_tariff(db, tariff_id: str, bus=None) -> None:
    tariff = get_tariff(db, tariff_id)
    db.delete(tariff)
    _commit(db, "delete")
    logger.info(f"Deleted tariff {tariff_id}")
    _publish(db, bus)
