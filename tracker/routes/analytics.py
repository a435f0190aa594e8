"""
Analytics Routes - consumption summary, trends and seasonal breakdown

All figures come from the vehicle's current series snapshot, so estimated
gap-fill entries are included unless ``include_estimates=false``.
"""

import logging

from flask import Blueprint, jsonify, request

from calculations import GRANULARITIES, EntryKind, bucket_points, seasonal_breakdown, summarize
from extensions import RateLimits, limiter
from services import TOPUPS, get_tracker
from utils.time_utils import parse_query_date_range

logger = logging.getLogger(__name__)

analytics_bp = Blueprint("analytics", __name__)


def _filtered_points():
    """
    Points from the requested vehicle's snapshot after query filters.

    Raises:
        ValueError: On an unparseable date range
    """
    start, end = parse_query_date_range(request.args)
    include_estimates = request.args.get("include_estimates", "true").lower() != "false"
    snapshot = get_tracker(TOPUPS).snapshot(request.args.get("vehicle_id", "default"))
    return snapshot, snapshot.select_points(start, end, include_estimates)


@analytics_bp.route("/analytics/summary", methods=["GET"])
@limiter.limit(RateLimits.READ_HEAVY)
def get_summary():
    """
    Totals, daily average, efficiency and trend over the selected period.

    Query params:
        vehicle_id, start_date, end_date, range, include_estimates
    """
    try:
        snapshot, points = _filtered_points()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    summary = summarize(points)
    summary["vehicle_id"] = snapshot.subject_id
    summary["estimated_count"] = sum(1 for p in points if EntryKind(p.kind) == EntryKind.ESTIMATED)
    summary["pending_count"] = len(snapshot.pending)
    return jsonify(summary)


@analytics_bp.route("/analytics/trends", methods=["GET"])
@limiter.limit(RateLimits.READ_HEAVY)
def get_trends():
    """
    Per-period buckets with their own trend.

    Query params:
        period: daily, weekly or monthly (default monthly)
        order: 'desc' (default, newest first) or 'asc'
    """
    period = request.args.get("period", "monthly")
    if period not in GRANULARITIES:
        return jsonify({"error": f"period must be one of {', '.join(GRANULARITIES)}"}), 400

    try:
        _, points = _filtered_points()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    consumption = [p for p in points if not p.is_baseline]
    buckets = bucket_points(consumption, period, chronological=True)
    if request.args.get("order", "desc").lower() != "asc":
        buckets.reverse()
    return jsonify({"period": period, "data": [b.to_dict() for b in buckets]})


@analytics_bp.route("/analytics/consumption", methods=["GET"])
@limiter.limit(RateLimits.READ_HEAVY)
def get_consumption():
    """Consumption points with cost, odometer and efficiency where known."""
    try:
        _, points = _filtered_points()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "data": [p.to_dict() for p in points if not p.is_baseline],
        "count": sum(1 for p in points if not p.is_baseline),
    })


@analytics_bp.route("/analytics/seasonal", methods=["GET"])
@limiter.limit(RateLimits.READ_HEAVY)
def get_seasonal():
    """Totals per UK season (Winter spans December to February)."""
    try:
        _, points = _filtered_points()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"data": seasonal_breakdown(points)})
