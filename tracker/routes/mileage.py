"""
Mileage routes.

Odometer reading CRUD plus the cumulative distance chart. Distance per
period is the odometer delta between consecutive readings.
"""

import logging
import math

from flask import Blueprint, jsonify, request

from database import get_db
from exceptions import DuplicateEntryError
from extensions import RateLimits, limiter
from models import MILEAGE_ENTRY_TYPES
from services import MILEAGE, get_tracker
from services.repository import MileageRepository
from utils.time_utils import parse_date, parse_query_date_range

logger = logging.getLogger(__name__)

mileage_bp = Blueprint('mileage', __name__)

MAX_ODOMETER = 10000000


def validate_mileage_data(data, partial=False):
    """
    Validate mileage entry data.

    Returns (is_valid, errors) tuple.
    """
    errors = []

    if not partial:
        for field in ('date', 'odometer_reading'):
            if data.get(field) in (None, ''):
                errors.append(f'{field} is required')

    for field in ('odometer_reading', 'trip_distance'):
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
        if num_val < 0 or num_val > MAX_ODOMETER:
            errors.append(f'{field} must be between 0 and {MAX_ODOMETER}')

    if data.get('date') not in (None, '') and parse_date(data.get('date')) is None:
        errors.append('date must be a valid date')

    entry_type = data.get('entry_type')
    if entry_type is not None and entry_type not in MILEAGE_ENTRY_TYPES:
        errors.append(f'entry_type must be one of {", ".join(MILEAGE_ENTRY_TYPES)}')

    if 'is_first_reading' in data and not isinstance(data['is_first_reading'], bool):
        errors.append('is_first_reading must be true or false')

    return len(errors) == 0, errors


def build_mileage_fields(data):
    fields = {}
    if 'vehicle_id' in data:
        fields['vehicle_id'] = str(data['vehicle_id']).strip() or 'default'
    if 'date' in data:
        fields['date'] = parse_date(data['date'])
    for field in ('odometer_reading', 'trip_distance'):
        if field in data:
            fields[field] = float(data[field]) if data[field] is not None else None
    for field in ('trip_purpose', 'notes', 'linked_fuel_topup_id', 'entry_type', 'is_first_reading'):
        if field in data:
            fields[field] = data[field]
    return fields


@mileage_bp.route('/mileage', methods=['GET'])
def list_mileage():
    try:
        start, end = parse_query_date_range(request.args)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    entries = MileageRepository(get_db()).list_entries(request.args.get('vehicle_id'), start, end)
    return jsonify([e.to_dict() for e in entries])


@mileage_bp.route('/mileage/chart', methods=['GET'])
@limiter.limit(RateLimits.READ_HEAVY)
def get_mileage_chart():
    """
    Distance driven between readings, bucketed by period.

    Query params:
        vehicle_id: Vehicle (default 'default')
        period: daily, weekly or monthly (default daily)
    """
    period = request.args.get('period', 'daily')
    snapshot = get_tracker(MILEAGE).snapshot(request.args.get('vehicle_id', 'default'))
    if period not in snapshot.buckets:
        return jsonify({'error': f'Unknown period: {period}'}), 400

    return jsonify({
        'vehicle_id': snapshot.subject_id,
        'points': [p.to_dict() for p in snapshot.points],
        'buckets': [b.to_dict() for b in snapshot.buckets[period]],
        'summary': snapshot.summary(),
        'pending_count': len(snapshot.pending),
    })


@mileage_bp.route('/mileage/<entry_id>', methods=['GET'])
def get_mileage_entry(entry_id):
    return jsonify(MileageRepository(get_db()).get(entry_id).to_dict())


@mileage_bp.route('/mileage', methods=['POST'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def create_mileage_entry():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    is_valid, errors = validate_mileage_data(data)
    if not is_valid:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    payload, persisted = get_tracker(MILEAGE).add_entry(build_mileage_fields(data))
    return jsonify(payload), 201 if persisted else 202


@mileage_bp.route('/mileage/<entry_id>', methods=['PUT', 'PATCH'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def update_mileage_entry(entry_id):
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    is_valid, errors = validate_mileage_data(data, partial=True)
    if not is_valid:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    payload, persisted = get_tracker(MILEAGE).update_entry(entry_id, build_mileage_fields(data))
    return jsonify(payload), 200 if persisted else 202


@mileage_bp.route('/mileage/<entry_id>', methods=['DELETE'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def delete_mileage_entry(entry_id):
    payload, persisted = get_tracker(MILEAGE).delete_entry(entry_id)
    if not persisted:
        return jsonify(payload), 202
    return jsonify({'message': f'Mileage entry {entry_id} deleted successfully', 'entry': payload})


@mileage_bp.route('/mileage/<entry_id>/first', methods=['POST'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def toggle_first_reading(entry_id):
    payload, persisted = get_tracker(MILEAGE).toggle_first_entry(entry_id)
    return jsonify(payload), 200 if persisted else 202


@mileage_bp.route('/mileage/bulk', methods=['POST'])
@limiter.limit(RateLimits.VERY_EXPENSIVE)
def bulk_create_mileage():
    data = request.get_json(silent=True) or {}
    entries = data.get('entries')
    if not isinstance(entries, list) or not entries:
        return jsonify({'error': 'entries array is required'}), 400

    errors = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f'Entry {index}: must be an object')
            continue
        is_valid, entry_errors = validate_mileage_data(entry)
        if not is_valid:
            errors.append(f'Entry {index}: {", ".join(entry_errors)}')
    if errors:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    tracker = get_tracker(MILEAGE)
    created = skipped = 0
    for entry in entries:
        try:
            tracker.add_entry(build_mileage_fields(entry))
        except DuplicateEntryError:
            skipped += 1
            continue
        created += 1

    return jsonify({
        'message': f'Created {created} mileage entries',
        'count': created,
        'skipped': skipped,
    }), 201
