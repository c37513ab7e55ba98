"""Flask application factory."""

import atexit
import logging
import logging.config
from pathlib import Path

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from . import __version__
from .config import get_bulk_config, get_cache_config, get_value, load_config
from .database import init_database
from .services.access import AccessPolicy
from .services.bulk_executor import BulkBatchExecutor
from .services.cache_backend import create_cache_backend
from .services.cache_coordinator import CacheCoordinator
from .services.cache_invalidation import CacheInvalidationSubscriber
from .services.change_events import ChangeEventBus
from .services.entity_service import HierarchyService
from .services.entity_validation import EntityValidator
from .services.errors import (
    AccessDenied,
    BatchLimitExceeded,
    DependentRecordsExist,
    EntityNotFound,
    FieldInvariantError,
    HierarchyCorrupted,
    OrgChartError,
    ReferencedEntityNotFound,
    ValidationFailed,
)
from .services.hierarchy_store import HierarchyStore
from .services.hierarchy_views import HierarchyViews
from .services.tree_index import TreeIndex


def setup_logging(config: dict, app_root: Path) -> None:
    """Configure structured logging to console and file."""
    log_level = get_value(config, "logging", "level", default="INFO")
    log_file = get_value(config, "logging", "file", default="logs/app.log")
    max_bytes = get_value(config, "logging", "max_bytes", default=10_000_000)  # 10MB
    backup_count = get_value(config, "logging", "backup_count", default=5)

    # Ensure logs directory exists
    log_path = app_root / log_file
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": log_level,
                "formatter": "standard",
                "filename": str(log_path),
                "maxBytes": max_bytes,
                "backupCount": backup_count,
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console", "file"],
        },
    }

    logging.config.dictConfig(logging_config)


def create_app(config_path: str = "config.yaml", testing: bool = False) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_path: Path to the YAML configuration file
        testing: If True, mark the app as under test before services are built

    Returns:
        Configured Flask application instance
    """
    # Determine the application root directory
    app_root = Path(config_path).parent.absolute()
    if not app_root.exists():
        app_root = Path.cwd()

    # Load configuration
    config = load_config(config_path)

    app = Flask(__name__)

    if testing:
        app.config["TESTING"] = True

    # Configure Flask
    app.config["DEBUG"] = get_value(config, "server", "debug", default=False)
    app.config["APP_CONFIG"] = config
    app.config["APP_VERSION"] = __version__
    app.config["APP_ROOT"] = str(app_root)

    # Setup logging
    setup_logging(config, app_root)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting org chart v{__version__}")

    # Initialize database (continues even if connection fails)
    db_connected = init_database(app, config)
    app.config["DATABASE_CONNECTED"] = db_connected

    init_services(app, config)

    @atexit.register
    def cleanup():
        # Wrap in try-except as logging may be shut down during atexit
        try:
            cache = app.extensions.get("cache")
            if cache:
                cache.close()
        except Exception as e:
            logger.warning(f"Error during shutdown cleanup: {e}")

    # Register error handlers
    register_error_handlers(app)

    # Register blueprints
    register_blueprints(app)

    # Register CLI command groups
    register_cli_commands(app)

    return app


def init_services(app: Flask, config: dict) -> None:
    """Build the hierarchy services and store them on ``app.extensions``."""
    logger = logging.getLogger(__name__)

    store = HierarchyStore()
    tree_index = TreeIndex(store, max_depth=get_value(config, "hierarchy", "max_depth", default=64))

    cache_config = get_cache_config(config)
    cache = CacheCoordinator(
        create_cache_backend(cache_config),
        namespace=cache_config["namespace"],
        ttls=cache_config["ttl"],
        default_ttl=cache_config["ttl"]["record"],
    )
    logger.info(f"Cache initialized (backend={cache.backend.name}, namespace={cache.namespace})")

    event_bus = ChangeEventBus()
    event_bus.subscribe(CacheInvalidationSubscriber(cache, store, tree_index))

    service = HierarchyService(store, EntityValidator(store, tree_index), event_bus)
    bulk_config = get_bulk_config(config)

    app.extensions["hierarchy_store"] = store
    app.extensions["tree_index"] = tree_index
    app.extensions["cache"] = cache
    app.extensions["event_bus"] = event_bus
    app.extensions["hierarchy_service"] = service
    app.extensions["bulk_executor"] = BulkBatchExecutor(
        store, service, limit=bulk_config["limit"], atomic=bulk_config["atomic"]
    )
    app.extensions["hierarchy_views"] = HierarchyViews(store, tree_index, cache)
    app.extensions["access_policy"] = AccessPolicy.from_config(
        get_value(config, "access", default={}) or {}
    )


def error_status(error: OrgChartError) -> int:
    """HTTP status for a hierarchy error."""
    if isinstance(error, (BatchLimitExceeded, ReferencedEntityNotFound)):
        return 400
    if isinstance(error, AccessDenied):
        return 403
    if isinstance(error, EntityNotFound):
        return 404
    if isinstance(error, DependentRecordsExist):
        return 409
    if isinstance(error, (ValidationFailed, FieldInvariantError)):
        return 422
    if isinstance(error, HierarchyCorrupted):
        return 500
    return 400


def register_error_handlers(app: Flask) -> None:
    """Render hierarchy errors and HTTP errors as JSON."""
    logger = logging.getLogger(__name__)

    @app.errorhandler(OrgChartError)
    def hierarchy_error(error: OrgChartError):
        status = error_status(error)
        if status >= 500:
            logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify({"error": error.to_dict()}), status

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        return jsonify({"error": {"code": error.name.lower().replace(" ", "_"), "message": error.description}}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        # In production, don't expose error details
        if not app.debug:
            return jsonify({"error": {"code": "internal_error", "message": "Internal server error"}}), 500
        # In debug mode, let Flask's default handler show details
        raise error


def register_blueprints(app: Flask) -> None:
    """Register application blueprints."""
    from .routes.health import health_bp
    from .routes.hierarchy import hierarchy_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(hierarchy_bp)


def register_cli_commands(app: Flask) -> None:
    """Register Flask CLI command groups."""
    from .cli.cache_cli import cache_cli

    app.cli.add_command(cache_cli)
