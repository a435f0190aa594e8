"""
Flask extensions for the fuel tracker.

This module initializes Flask extensions that need to be shared
across the application to avoid circular imports.
"""

import os

from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from config import Config

# Rate limiting storage (memory unless RATE_LIMIT_STORAGE_URI points elsewhere)
RATE_LIMIT_STORAGE = Config.RATE_LIMIT_STORAGE_URI

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per hour", "200 per minute"],
    storage_uri=RATE_LIMIT_STORAGE,
    strategy="fixed-window",
    headers_enabled=True,
)

# Response cache (NullCache in testing mode)
cache = Cache()


def init_cache(app):
    """Initialize cache based on environment."""
    if app.config.get('TESTING') or os.environ.get('FLASK_TESTING'):
        cache.init_app(app, config={'CACHE_TYPE': 'NullCache'})
    else:
        cache.init_app(app, config={
            'CACHE_TYPE': 'SimpleCache',
            'CACHE_DEFAULT_TIMEOUT': Config.CACHE_TIMEOUT_SECONDS,
        })


class RateLimits:
    """Common rate limit configurations for different endpoint types."""

    # Read-heavy endpoints (series, analytics)
    READ_HEAVY = "500 per hour"

    # Entry writes (POST/PUT/DELETE)
    WRITE_MODERATE = "300 per hour"

    # Exports
    EXPENSIVE = "20 per hour"

    # Bulk imports
    VERY_EXPENSIVE = "5 per hour"

    # Endpoints that fan out to retailer feeds
    EXTERNAL_FETCH = "30 per hour"
