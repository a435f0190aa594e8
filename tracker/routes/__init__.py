"""
Routes module for the fuel tracker Flask blueprints.

This module contains Flask blueprints that handle different areas of the API.
"""

from routes.analytics import analytics_bp
from routes.export import export_bp
from routes.fuel_prices import fuel_prices_bp
from routes.mileage import mileage_bp
from routes.reconcile import reconcile_bp
from routes.tariffs import tariffs_bp
from routes.topups import topups_bp

__all__ = [
    "topups_bp",
    "mileage_bp",
    "analytics_bp",
    "fuel_prices_bp",
    "tariffs_bp",
    "export_bp",
    "reconcile_bp",
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    app.register_blueprint(topups_bp, url_prefix="/api")
    app.register_blueprint(mileage_bp, url_prefix="/api")
    app.register_blueprint(analytics_bp, url_prefix="/api")
    app.register_blueprint(fuel_prices_bp, url_prefix="/api")
    app.register_blueprint(tariffs_bp, url_prefix="/api")
    app.register_blueprint(export_bp, url_prefix="/api")
    app.register_blueprint(reconcile_bp, url_prefix="/api")
