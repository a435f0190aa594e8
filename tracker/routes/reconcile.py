"""
Reconciliation route.

Replays writes that were queued while the database was unavailable.
The scheduler does the same periodically; this endpoint runs it on demand.
"""

import logging

from flask import Blueprint, jsonify

from extensions import RateLimits, limiter
from services import get_trackers

logger = logging.getLogger(__name__)

reconcile_bp = Blueprint('reconcile', __name__)


@reconcile_bp.route('/reconcile', methods=['POST'])
@limiter.limit(RateLimits.WRITE_MODERATE)
def reconcile():
    results = {tracker.topic: tracker.reconcile() for tracker in get_trackers()}
    remaining = sum(r['remaining'] for r in results.values())
    return jsonify({'results': results, 'remaining': remaining})


@reconcile_bp.route('/reconcile', methods=['GET'])
def pending_writes():
    """Writes still waiting for the database."""
    return jsonify({
        tracker.topic: [w.to_dict() for w in tracker.write_queue.pending()]
        if tracker.write_queue is not None else []
        for tracker in get_trackers()
    })
