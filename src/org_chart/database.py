"""Flask-SQLAlchemy and Flask-Migrate wiring for the hierarchy tables."""

import logging

from flask import Flask
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import get_database_url, get_value, mask_database_url

logger = logging.getLogger(__name__)

# Shared with the models and HierarchyStore
db = SQLAlchemy()
migrate = Migrate()

SERVER_POOL_OPTIONS = {
    "pool_recycle": 3600,
    "pool_pre_ping": True,
    "connect_args": {"connect_timeout": 5},
}


def engine_options(database_url: str, config: dict) -> dict:
    """SQLAlchemy engine options: pool sizing for PostgreSQL, none for SQLite."""
    if database_url.startswith("sqlite"):
        return {}
    return {
        **SERVER_POOL_OPTIONS,
        "pool_size": get_value(config, "database", "pool_size", default=10),
        "pool_timeout": get_value(config, "database", "pool_timeout", default=30),
    }


def init_database(app: Flask, config: dict) -> bool:
    """
    Bind ``db`` and ``migrate`` to the app and probe the connection.

    The app starts even when the probe fails; ``/health`` reports the outage.

    Returns:
        True if the database answered the probe
    """
    database_url = get_database_url(config)
    app.config.update(
        SQLALCHEMY_DATABASE_URI=database_url,
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SQLALCHEMY_ENGINE_OPTIONS=engine_options(database_url, config),
    )
    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        connected, error = check_database_health()

    if connected:
        logger.info(f"Database connected to {mask_database_url(database_url)}")
    else:
        logger.error(f"Database connection failed: {mask_database_url(database_url)} ({error})")
    return connected


def check_database_health() -> tuple[bool, str | None]:
    """Run ``SELECT 1`` in the current app context. Returns (connected, error)."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        return False, f"{type(e).__name__}: {str(e)[:100]}"
    return True, None
