"""
Database session management for the fuel tracker.

Provides the database engine and session factory that can be imported
by blueprints and services without circular dependencies.
"""

import logging
import time
from contextlib import contextmanager

from config import Config
from flask import g, has_app_context
from models import Base, get_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker

logger = logging.getLogger(__name__)

# Create engine and session factory
engine = get_engine(Config.DATABASE_URL)
SessionLocal = scoped_session(sessionmaker(bind=engine))

# Queries slower than this are logged
SLOW_QUERY_THRESHOLD_MS = 500


@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.time())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries."""
    total_time = time.time() - conn.info["query_start_time"].pop(-1)
    duration_ms = total_time * 1000

    if duration_ms > SLOW_QUERY_THRESHOLD_MS:
        truncated_query = statement[:200] + "..." if len(statement) > 200 else statement
        logger.warning(
            f"Slow query detected: {duration_ms:.2f}ms - {truncated_query}", extra={"duration_ms": duration_ms}
        )


def get_db():
    """
    Get database session for the current request.

    Inside a Flask app context the session is stored on ``g`` so it is
    closed at teardown; outside one (scheduler jobs) the thread-local
    scoped session is returned.
    """
    if not has_app_context():
        return SessionLocal()
    if "db" not in g:
        g.db = SessionLocal()
    return g.db


def close_db(exception=None):
    """
    Close database session at end of request.

    Registered with teardown_appcontext.
    """
    db = g.pop("db", None)
    if db is not None:
        SessionLocal.remove()


@contextmanager
def session_scope():
    """Session for work outside a request; removed on exit."""
    session = SessionLocal()
    try:
        yield session
    finally:
        SessionLocal.remove()


def create_tables():
    """Create any missing tables."""
    Base.metadata.create_all(engine)


def init_app(app):
    """
    Initialize database with Flask app.

    Registers the teardown function to close sessions and creates tables.
    """
    app.teardown_appcontext(close_db)
    create_tables()
