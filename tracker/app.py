"""
Fuel Tracker - Flask Application

Records fuel topups, odometer readings and electricity tariffs, and serves
the derived consumption, cost and trend analytics over a REST API with
real-time updates over WebSocket.
"""

import atexit
import logging
import os

from flask import Flask, jsonify
from flask_socketio import SocketIO

import database
from calculations import ConsumptionMode
from config import Config
from exceptions import DatabaseError, FuelTrackerError
from extensions import init_cache, limiter
from routes import register_blueprints
from services import EXTENSION_KEY, MILEAGE, TOPUPS, tariff_service
from services.events import EventBus
from services.repository import MileageRepository, TopupRepository
from services.scheduler import init_scheduler, shutdown_scheduler
from services.series_service import ConsumptionTracker
from services.write_queue import PendingWriteQueue
from utils.error_codes import ErrorCode, get_error_metadata
from utils.realtime import SocketIOBridge, register_handlers

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Topups of these fuel types are priced from the tariff in force on their date
TARIFF_PRICED_FUEL_TYPES = ('ELECTRIC',)

TESTING = bool(os.environ.get('FLASK_TESTING'))

# Initialize Flask app
app = Flask(__name__)
app.config.from_object(Config)
if TESTING:
    app.config['RATELIMIT_ENABLED'] = False

init_cache(app)
limiter.init_app(app)
socketio = SocketIO(app, cors_allowed_origins="*", async_mode="threading")
register_handlers(socketio)
database.init_app(app)

# ============================================================================
# Series trackers
# ============================================================================

bus = EventBus()

topup_tracker = ConsumptionTracker(
    lambda: TopupRepository(database.get_db()),
    bus=bus,
    mode=ConsumptionMode.ADDITIVE,
    topic='fuel-topups',
    write_queue=PendingWriteQueue(),
)
topup_tracker.subscribe_to_tariffs(bus, fuel_types=TARIFF_PRICED_FUEL_TYPES)

# Odometer readings are cumulative and never gap-filled
mileage_tracker = ConsumptionTracker(
    lambda: MileageRepository(database.get_db()),
    bus=bus,
    mode=ConsumptionMode.CUMULATIVE,
    estimate=False,
    topic='mileage',
    write_queue=PendingWriteQueue(),
)

realtime_bridge = SocketIOBridge(socketio).attach(bus)
atexit.register(realtime_bridge.detach, bus)

app.extensions[EXTENSION_KEY] = {
    'bus': bus,
    TOPUPS: topup_tracker,
    MILEAGE: mileage_tracker,
}


def load_tariffs():
    """Price electric topups from the stored tariffs."""
    with database.session_scope() as db:
        try:
            topup_tracker.set_tariffs(tariff_service.get_rates(db))
        except DatabaseError as e:
            logger.warning(f"Tariffs unavailable at startup, using entry costs: {e}")


load_tariffs()

# ============================================================================
# Error handling
# ============================================================================


def server_error_code(error):
    if isinstance(error, DatabaseError):
        return ErrorCode.E200_DB_CONNECTION_FAILED if error.retryable else ErrorCode.E202_DB_CONSTRAINT_VIOLATION
    return ErrorCode.E500_INTERNAL_SERVER_ERROR


@app.errorhandler(FuelTrackerError)
def handle_tracker_error(error):
    if error.status_code >= 500:
        # Database messages carry SQL and parameters; keep them in the log only
        code = server_error_code(error)
        logger.error(f"Request failed [{code.value}]: {error}")
        return jsonify({'error': get_error_metadata(code)['description'], 'code': code.value}), error.status_code
    body = {'error': error.message}
    if error.details:
        body['details'] = error.details
    return jsonify(body), error.status_code


@app.route('/health')
def health():
    queued = sum(len(t.write_queue) for t in (topup_tracker, mileage_tracker) if t.write_queue is not None)
    return jsonify({'status': 'ok', 'queued_writes': queued})


register_blueprints(app)

# ============================================================================
# Background Tasks
# ============================================================================

def warn_unreplayed_writes():
    """Log queued writes that will be lost when the process exits."""
    for tracker in (topup_tracker, mileage_tracker):
        queued = len(tracker.write_queue)
        if queued:
            logger.warning(f"Discarding {queued} unreplayed {tracker.topic} writes at shutdown")


atexit.register(warn_unreplayed_writes)

if not TESTING:
    init_scheduler([topup_tracker, mileage_tracker])
    atexit.register(shutdown_scheduler)


if __name__ == '__main__':
    socketio.run(app, host=Config.FLASK_HOST, port=Config.FLASK_PORT, debug=Config.DEBUG,
                 allow_unsafe_werkzeug=True)
