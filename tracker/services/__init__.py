"""
Services module for the fuel tracker business logic.

This module contains the service layer that sits between the Flask route
handlers and the pure calculations package. The per-app service instances
(event bus and series trackers) live in ``app.extensions["fuel_tracker"]``.
"""

from flask import current_app

EXTENSION_KEY = "fuel_tracker"

TOPUPS = "topups"
MILEAGE = "mileage"


def _registry(app=None):
    return (app or current_app).extensions[EXTENSION_KEY]


def get_tracker(name, app=None):
    """ConsumptionTracker for ``topups`` or ``mileage``."""
    return _registry(app)[name]


def get_trackers(app=None):
    registry = _registry(app)
    return [registry[TOPUPS], registry[MILEAGE]]


def get_event_bus(app=None):
    return _registry(app)["bus"]


__all__ = [
    'EXTENSION_KEY',
    'TOPUPS',
    'MILEAGE',
    'get_tracker',
    'get_trackers',
    'get_event_bus',
]
