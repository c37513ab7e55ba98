"""Health check endpoint."""

import logging

from flask import Blueprint, current_app, jsonify

from ..database import check_database_health

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


def get_cache_health() -> dict:
    """
    Get cache coordinator status.

    Returns:
        Dictionary with backend name, namespace and hit/miss counters
    """
    cache = current_app.extensions.get("cache")
    if cache is None:
        return {"status": "not_initialized"}
    stats = cache.stats
    stats["status"] = "degraded" if stats["errors"] else "healthy"
    return stats


@health_bp.route("/health")
def health_check():
    """
    Health check endpoint.

    Returns:
        JSON response with status, version, database and cache state
    """
    version = current_app.config.get("APP_VERSION", "unknown")

    db_connected, db_error = check_database_health()
    cache_health = get_cache_health()

    # Cache errors only slow reads down; the database decides overall health
    overall_status = "healthy" if db_connected else "degraded"

    response = {
        "status": overall_status,
        "version": version,
        "database": "connected" if db_connected else "disconnected",
        "cache": cache_health,
    }

    if db_error:
        response["database_error"] = db_error

    return jsonify(response)
