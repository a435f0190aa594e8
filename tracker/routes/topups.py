"""
Fuel topup routes.

Handles topup CRUD, bulk import, the first-topup baseline flag and the
derived consumption series (manual entries plus estimates).
"""

import logging
import math

from flask import Blueprint, jsonify, request

from config import Config
from database import get_db
from exceptions import DuplicateEntryError
from extensions import RateLimits, limiter
from models import FUEL_GRADES, FUEL_TYPES
from services import TOPUPS, get_tracker
from services.repository import TopupRepository
from utils.time_utils import parse_date, parse_query_date_range

logger = logging.getLogger(__name__)

topups_bp = Blueprint('topups', __name__)

ENTRY_TYPES = ('MANUAL', 'IMPORTED', 'ESTIMATED')

TEXT_FIELDS = ('retailer', 'location_name', 'notes')


def validate_topup_data(data, partial=False):
    """
    Validate fuel topup data.

    ``partial`` skips required-field checks (for updates).

    Returns (is_valid, errors) tuple.
    """
    errors = []

    if not partial:
        for field in ('litres', 'date'):
            if data.get(field) in (None, ''):
                errors.append(f'{field} is required')
        if 'cost_per_litre' not in data and 'total_cost' not in data:
            errors.append('cost_per_litre or total_cost is required')

    if 'vehicle_id' in data and not str(data.get('vehicle_id') or '').strip():
        errors.append('vehicle_id must not be empty')

    numeric_fields = {
        'litres': (0, Config.MAX_LITRES_PER_ENTRY),
        'cost_per_litre': (0, Config.MAX_COST_PER_LITRE),
        'total_cost': (0, Config.MAX_LITRES_PER_ENTRY * Config.MAX_COST_PER_LITRE),
        'mileage': (0, 10000000),
    }

    for field, (min_val, max_val) in numeric_fields.items():
        value = data.get(field)
        if value is None:
            continue
        try:
            num_val = float(value)
        except (ValueError, TypeError):
            errors.append(f'{field} must be a valid number')
            continue
        if not math.isfinite(num_val):
            errors.append(f'{field} must be a finite number')
            continue
        if num_val < min_val or num_val > max_val:
            errors.append(f'{field} must be between {min_val} and {max_val}')
        elif field == 'litres' and num_val == 0:
            errors.append('litres must be greater than 0')

    if data.get('date') not in (None, '') and parse_date(data.get('date')) is None:
        errors.append('date must be a valid date')

    entry_type = data.get('entry_type')
    if entry_type is not None and entry_type not in ENTRY_TYPES:
        errors.append(f'entry_type must be one of {", ".join(ENTRY_TYPES)}')

    fuel_type = data.get('fuel_type')
    if fuel_type is not None and fuel_type not in FUEL_TYPES:
        errors.append(f'fuel_type must be one of {", ".join(FUEL_TYPES)}')

    fuel_grade = data.get('fuel_grade')
    if fuel_grade is not None and fuel_grade not in FUEL_GRADES:
        errors.append(f'fuel_grade must be one of {", ".join(FUEL_GRADES)}')

    if 'is_first_topup' in data and not isinstance(data['is_first_topup'], bool):
        errors.append('is_first_topup must be true or false')

    return len(errors) == 0, errors


def build_topup_fields(data):
    """Model fields from validated request data."""
    fields = {}
    if 'vehicle_id' in data:
        fields['vehicle_id'] = str(data['vehicle_id']).strip()
    if 'date' in data:
        fields['date'] = parse_date(data['date'])
    for field in ('litres', 'cost_per_litre', 'total_cost', 'mileage'):
        if field in data:
            fields[field] = float(data[field]) if data[field] is not None else None
    for field in ('entry_type', 'fuel_type', 'fuel_grade', 'is_first_topup') + TEXT_FIELDS:
        if field in data:
            fields[field] = data[field]

    if 'litres' in fields and 'cost_per_litre' not in fields and fields.get('total_cost') is not None:
        # Only the total was given; derive the unit price
        fields['cost_per_litre'] = round(fields['total_cost'] / fields['litres'], 4)
    return fields


def _write_response(payload, persisted, status=200):
    if persisted:
        return jsonify(payload), status
    return jsonify(payload), 202


@topups_bp.route('/fuel-topups', methods=['GET'])
def list_topups():
    """
    List persisted topups.

    Query params:
        vehicle_id: Filter by vehicle
        start_date / end_date / range: Date filter
    """
    try:
        start, end = parse_query_date_range(request.args)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    repository = TopupRepository(get_db())
    entries = repository.list_entries(request.args.get('vehicle_id'), start, end)
    return jsonify([e.to_dict() for e in entries])


@topups_bp.route('/fuel-topups/series', methods=['GET'])
@limiter.limit(RateLimits.READ_HEAVY)
def get_topup_series():
    """
    Derived series for one vehicle: manual entries, estimates, points and buckets.

    Query params:
        vehicle_id: Vehicle (default 'default')
        daily: 'true' adds a one-point-per-day series built from the topups
        fill_missing_days: 'false' leaves days without a topup out of ``daily``
    """
    tracker = get_tracker(TOPUPS)
    snapshot = tracker.snapshot(request.args.get('vehicle_id', 'default'))
    data = snapshot.to_dict()
    if request.args.get('daily', 'false').lower() == 'true':
        fill = request.args.get('fill_missing_days', 'true').lower() != 'false'
        data['daily'] = [p.to_dict() for p in snapshot.daily_series(fill_missing_days=fill)]
    return jsonify(data)


@topups_bp.route('/fuel-topups/<entry_id>', methods=['GET'])
def get_topup(entry_id):
    entry = TopupRepository(get_db()).get(entry_id)
    return jsonify(entry.to_dict())


@topups_bp.route('/fuel-topups', methods=['POST'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def create_topup():
    """
    Add a manual topup.

    Returns 201 when stored, 202 when queued because the database is down.
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    is_valid, errors = validate_topup_data(data)
    if not is_valid:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    payload, persisted = get_tracker(TOPUPS).add_entry(build_topup_fields(data))
    return _write_response(payload, persisted, 201)


@topups_bp.route('/fuel-topups/<entry_id>', methods=['PUT', 'PATCH'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def update_topup(entry_id):
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    is_valid, errors = validate_topup_data(data, partial=True)
    if not is_valid:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    payload, persisted = get_tracker(TOPUPS).update_entry(entry_id, build_topup_fields(data))
    return _write_response(payload, persisted)


@topups_bp.route('/fuel-topups/<entry_id>', methods=['DELETE'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def delete_topup(entry_id):
    payload, persisted = get_tracker(TOPUPS).delete_entry(entry_id)
    if not persisted:
        return jsonify(payload), 202
    return jsonify({'message': f'Fuel topup {entry_id} deleted successfully', 'entry': payload})


@topups_bp.route('/fuel-topups/<entry_id>/first', methods=['POST'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def toggle_first_topup(entry_id):
    """Toggle the baseline flag; setting it clears it on the vehicle's other topups."""
    payload, persisted = get_tracker(TOPUPS).toggle_first_entry(entry_id)
    return _write_response(payload, persisted)


@topups_bp.route('/fuel-topups/bulk', methods=['POST'])
@limiter.limit(RateLimits.VERY_EXPENSIVE)
def bulk_create_topups():
    """
    Import many topups at once.

    Every entry is validated before anything is written. Duplicates of
    existing entries are skipped rather than failing the import.

    Request body:
        entries: List of topup objects
    """
    data = request.get_json(silent=True) or {}
    entries = data.get('entries')
    if not isinstance(entries, list) or not entries:
        return jsonify({'error': 'entries array is required'}), 400

    errors = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f'Entry {index}: must be an object')
            continue
        is_valid, entry_errors = validate_topup_data(entry)
        if not is_valid:
            errors.append(f'Entry {index}: {", ".join(entry_errors)}')
    if errors:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    tracker = get_tracker(TOPUPS)
    created = skipped = queued = 0
    for entry in entries:
        try:
            _, persisted = tracker.add_entry(build_topup_fields(entry))
        except DuplicateEntryError as e:
            logger.info(f"Bulk import skipped duplicate: {e}")
            skipped += 1
            continue
        if persisted:
            created += 1
        else:
            queued += 1

    return jsonify({
        'message': f'Created {created} fuel topup entries',
        'count': created,
        'skipped': skipped,
        'queued': queued,
    }), 201
