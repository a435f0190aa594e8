"""
Fuel price routes.

Proxies the UK retailer price feeds (avoiding browser CORS) and compares a
price paid with the current averages. Averages are cached for
PRICE_CACHE_TIMEOUT_SECONDS.
"""

import logging
import math

from flask import Blueprint, jsonify, request

from config import Config
from extensions import RateLimits, cache, limiter
from services import price_service

logger = logging.getLogger(__name__)

fuel_prices_bp = Blueprint('fuel_prices', __name__)

AVERAGES_CACHE_KEY = 'fuel_prices:averages'


def get_cached_averages():
    """Current averages, fetched from the retailers at most once per cache period."""
    averages = cache.get(AVERAGES_CACHE_KEY)
    if averages is None:
        averages = price_service.fetch_averages()
        # Defaults are not cached so the next request retries the feeds
        if averages.get('source') != price_service.SOURCE_MANUAL:
            cache.set(AVERAGES_CACHE_KEY, averages, timeout=Config.PRICE_CACHE_TIMEOUT_SECONDS)
    return averages


@fuel_prices_bp.route('/fuel-prices/averages', methods=['GET'])
@limiter.limit(RateLimits.EXTERNAL_FETCH)
def get_averages():
    """
    UK average fuel prices in pence per litre.

    Never fails: when no retailer responds the static defaults are returned.
    """
    return jsonify({'success': True, 'data': get_cached_averages()})


@fuel_prices_bp.route('/fuel-prices/retailers', methods=['GET'])
def get_retailers():
    return jsonify({'success': True, 'data': price_service.retailer_names()})


@fuel_prices_bp.route('/fuel-prices/compare', methods=['GET'])
@limiter.limit(RateLimits.EXTERNAL_FETCH)
def compare_price():
    """
    Compare a price paid against the average for its grade.

    Query params:
        price: Price paid, pence per litre (required)
        grade: UNLEADED, SUPER_UNLEADED, PREMIUM_DIESEL or STANDARD_DIESEL
    """
    raw_price = request.args.get('price')
    try:
        user_price = float(raw_price)
    except (TypeError, ValueError):
        return jsonify({'error': 'price must be a valid number'}), 400
    if not math.isfinite(user_price):
        return jsonify({'error': 'price must be a finite number'}), 400
    if user_price <= 0:
        return jsonify({'error': 'price must be greater than 0'}), 400

    grade = request.args.get('grade', 'UNLEADED').upper()
    if grade not in price_service.GRADE_FIELDS:
        return jsonify({'error': f'Unknown fuel grade: {grade}'}), 400

    averages = get_cached_averages()
    comparison = price_service.compare_price(user_price, price_service.price_for_grade(averages, grade))
    comparison['grade'] = grade
    comparison['source'] = averages.get('source')
    return jsonify({'success': True, 'data': comparison})
