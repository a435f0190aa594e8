"""
Tariff routes.

Electricity tariff period CRUD plus the current tariff and its annual and
monthly targets. Changes re-price every electric consumption series.
"""

import logging
import math

from flask import Blueprint, jsonify, request

from calculations import annual_targets
from database import get_db
from extensions import RateLimits, limiter
from services import get_event_bus, tariff_service
from utils.time_utils import parse_date

logger = logging.getLogger(__name__)

tariffs_bp = Blueprint('tariffs', __name__)


def validate_tariff_data(data, partial=False):
    """
    Validate tariff period data.

    Returns (is_valid, errors) tuple.
    """
    errors = []

    if not partial:
        for field in ('start_date', 'unit_rate'):
            if data.get(field) in (None, ''):
                errors.append(f'{field} is required')

    for field in ('start_date', 'end_date'):
        value = data.get(field)
        if value not in (None, '') and parse_date(value) is None:
            errors.append(f'{field} must be a valid date')

    for field in ('unit_rate', 'standing_charge', 'estimated_annual_usage', 'estimated_annual_cost'):
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
        elif num_val < 0:
            errors.append(f'{field} must not be negative')

    return len(errors) == 0, errors


def build_tariff_fields(data):
    fields = {}
    if 'name' in data:
        fields['name'] = data['name']
    for field in ('start_date', 'end_date'):
        if field in data:
            fields[field] = parse_date(data[field]) if data[field] else None
    for field in ('unit_rate', 'standing_charge', 'estimated_annual_usage', 'estimated_annual_cost'):
        if field in data:
            fields[field] = float(data[field]) if data[field] is not None else None
    return fields


@tariffs_bp.route('/tariffs', methods=['GET'])
def list_tariffs():
    return jsonify([t.to_dict() for t in tariff_service.list_tariffs(get_db())])


@tariffs_bp.route('/tariffs/current', methods=['GET'])
def get_current_tariff():
    tariff = tariff_service.get_current_tariff(get_db())
    if tariff is None:
        return jsonify({'error': 'No tariff in force today'}), 404
    return jsonify(tariff.to_dict())


@tariffs_bp.route('/tariffs/targets', methods=['GET'])
def get_targets():
    """Annual and monthly usage/cost targets from the current tariff."""
    tariff = tariff_service.get_current_tariff(get_db())
    targets = annual_targets(tariff.to_rate() if tariff else None)
    targets['tariff_id'] = tariff.id if tariff else None
    return jsonify(targets)


@tariffs_bp.route('/tariffs/<tariff_id>', methods=['GET'])
def get_tariff(tariff_id):
    return jsonify(tariff_service.get_tariff(get_db(), tariff_id).to_dict())


@tariffs_bp.route('/tariffs', methods=['POST'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def create_tariff():
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    is_valid, errors = validate_tariff_data(data)
    if not is_valid:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    tariff = tariff_service.create_tariff(get_db(), build_tariff_fields(data), bus=get_event_bus())
    return jsonify(tariff.to_dict()), 201


@tariffs_bp.route('/tariffs/<tariff_id>', methods=['PUT', 'PATCH'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def update_tariff(tariff_id):
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    is_valid, errors = validate_tariff_data(data, partial=True)
    if not is_valid:
        return jsonify({'error': 'Validation failed', 'details': errors}), 400

    tariff = tariff_service.update_tariff(get_db(), tariff_id, build_tariff_fields(data), bus=get_event_bus())
    return jsonify(tariff.to_dict())


@tariffs_bp.route('/tariffs/<tariff_id>', methods=['DELETE'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def delete_tariff(tariff_id):
    tariff_service.delete_tariff(get_db(), tariff_id, bus=get_event_bus())
    return jsonify({'message': f'Tariff {tariff_id} deleted successfully'})
