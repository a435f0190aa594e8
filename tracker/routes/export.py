"""
Export routes for the fuel tracker.

CSV and JSON downloads of consumption data and raw topups.
"""

import csv
import io
import logging

from flask import Blueprint, Response, jsonify, request

from calculations import EntryKind
from database import get_db
from extensions import RateLimits, limiter
from services import TOPUPS, get_tracker
from services.repository import TopupRepository
from utils import utc_now
from utils.time_utils import parse_query_date_range

logger = logging.getLogger(__name__)

export_bp = Blueprint('export', __name__)


def _csv_response(rows, header, filename):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    for row in rows:
        writer.writerow(row)

    output.seek(0)
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )


@export_bp.route('/export/consumption', methods=['GET'])
@limiter.limit(RateLimits.EXPENSIVE)
def export_consumption():
    """
    Export the consumption series as CSV or JSON.

    Rows are the vehicle's consumption points, so estimated days and
    tariff pricing match the analytics endpoints. The baseline topup is
    left out.

    Query params:
        format: 'json' (default) or 'csv'
        vehicle_id: Vehicle (default 'default')
        start_date / end_date / range: Date filter
        include_estimates: 'false' to export manual entries only
    """
    export_format = request.args.get('format', 'json').lower()
    try:
        start, end = parse_query_date_range(request.args)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    include_estimates = request.args.get('include_estimates', 'true').lower() != 'false'

    snapshot = get_tracker(TOPUPS).snapshot(request.args.get('vehicle_id', 'default'))
    points = snapshot.select_points(start, end, include_estimates, include_baseline=False)
    records = [
        {
            'date': p.date.isoformat(),
            'litres': round(p.quantity, 2),
            'cost': round(p.cost, 2),
            'type': EntryKind(p.kind).value,
            'topup_id': None if p.kind == EntryKind.ESTIMATED else p.reading_id,
        }
        for p in points
    ]

    if export_format == 'csv':
        rows = ([r['date'], r['litres'], r['cost'], r['type'], r['topup_id'] or ''] for r in records)
        return _csv_response(rows, ['Date', 'Litres', 'Cost', 'Type', 'Topup ID'], 'consumption-data.csv')

    return jsonify({
        'success': True,
        'data': records,
        'metadata': {
            'total_records': len(records),
            'export_date': utc_now().isoformat(),
            'format': 'json',
        },
    })


@export_bp.route('/export/topups', methods=['GET'])
@limiter.limit(RateLimits.EXPENSIVE)
def export_topups():
    """
    Export persisted topups as CSV or JSON.

    Query params:
        format: 'csv' (default) or 'json'
        vehicle_id, start_date, end_date, range
    """
    export_format = request.args.get('format', 'csv').lower()
    try:
        start, end = parse_query_date_range(request.args)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    topups = TopupRepository(get_db()).list_entries(request.args.get('vehicle_id'), start, end)

    if export_format == 'json':
        return jsonify([t.to_dict() for t in topups])

    rows = (
        [
            t.date.strftime('%d/%m/%Y'),
            t.created_at.strftime('%H:%M') if t.created_at else '',
            t.litres,
            t.cost_per_litre,
            t.total_cost,
            t.mileage if t.mileage is not None else '',
            t.fuel_type or '',
            t.entry_type,
            t.notes or '',
            t.created_at.isoformat() if t.created_at else '',
            t.updated_at.isoformat() if t.updated_at else '',
        ]
        for t in topups
    )
    header = [
        'Date', 'Time', 'Litres', 'Cost Per Litre', 'Total Cost', 'Mileage',
        'Fuel Type', 'Type', 'Notes', 'Created At', 'Updated At',
    ]
    filename = f'fuel-topups-{utc_now().date().isoformat()}.csv'
    return _csv_response(rows, header, filename)
