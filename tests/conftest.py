"""
Pytest fixtures for fuel tracker tests.
"""

import os
import sys
from datetime import date, timedelta

import pytest

# Add tracker to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'tracker'))

# Set DATABASE_URL BEFORE importing app to use SQLite for tests
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['FLASK_TESTING'] = 'true'

from app import app as flask_app, mileage_tracker, topup_tracker  # noqa: E402
from calculations import EntryKind, Reading  # noqa: E402
from database import SessionLocal, engine  # noqa: E402
from extensions import init_cache  # noqa: E402
from models import Base  # noqa: E402


def _reset_trackers():
    for tracker in (topup_tracker, mileage_tracker):
        tracker.invalidate()
        tracker.write_queue.clear()
    topup_tracker.set_tariffs([])


@pytest.fixture
def app():
    """Create application for testing."""
    flask_app.config['TESTING'] = True

    # Reinitialize cache to ensure it uses NullCache
    init_cache(flask_app)

    Base.metadata.create_all(engine)
    _reset_trackers()

    yield flask_app

    _reset_trackers()
    SessionLocal.remove()
    Base.metadata.drop_all(engine)


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    """Provide a database session for tests."""
    session = SessionLocal()
    yield session
    session.rollback()
    SessionLocal.remove()


def make_reading(day, quantity, unit_cost=1.5, reading_id=None, subject_id='car-1', **kwargs):
    """Manual Reading on ``day`` (a date or day offset from 2024-01-01)."""
    if isinstance(day, int):
        day = date(2024, 1, 1) + timedelta(days=day)
    return Reading(
        id=reading_id or f'r-{day.isoformat()}-{quantity}',
        subject_id=subject_id,
        quantity=quantity,
        date=day,
        unit_cost=unit_cost,
        kind=kwargs.pop('kind', EntryKind.MANUAL),
        **kwargs,
    )


@pytest.fixture
def reading_factory():
    return make_reading


@pytest.fixture
def sample_topup_payload():
    """Valid POST body for /api/fuel-topups."""
    return {
        'vehicle_id': 'car-1',
        'date': '2024-03-01',
        'litres': 40.0,
        'cost_per_litre': 1.45,
        'mileage': 12000,
        'fuel_type': 'PETROL',
        'fuel_grade': 'UNLEADED',
    }


@pytest.fixture
def retailer_payloads():
    """Feed bodies in the shapes retailers actually publish."""
    return {
        'stations': {'stations': [
            {'site_id': 'a', 'prices': {}, 'unleaded': 135.9, 'diesel': 144.9},
            {'site_id': 'b', 'unleaded': '137.9', 'diesel': 146.9},
        ]},
        'data': {'data': [{'ULSP': 138.0, 'ULSD': 147.0, 'SUPER_UNLEADED': 152.0}]},
        'list': [{'petrol': 134.0}, {'petrol': 'n/a', 'Diesel': 143.0}],
        'single': {'Unleaded': 136.0, 'premium': 160.0},
    }
