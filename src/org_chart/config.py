"""Configuration loader with YAML and environment variable support."""

import os
import re
import sys
from pathlib import Path
from typing import Any

import yaml


# Default configuration values
DEFAULTS = {
    "server": {
        "host": "0.0.0.0",
        "port": 5060,
        "debug": False,
    },
    "logging": {
        "level": "INFO",
        "file": "logs/app.log",
        "max_bytes": 10_000_000,
        "backup_count": 5,
    },
    "app": {
        "environment": "development",
    },
    "database": {
        "host": "localhost",
        "port": 5432,
        "name": "org_chart",
        "user": "postgres",
        "password": "",
        "pool_size": 10,
        "pool_timeout": 30,
    },
    "cache": {
        "backend": "memory",
        "url": "redis://localhost:6379/0",
        "namespace": None,
        "socket_timeout": 0.2,
        "connect_timeout": 1.0,
        "max_entries": 5000,
        "ttl": {
            "record": 3600,
            "tree": 86400,
            "org_chart": 300,
            "hierarchy": 3600,
            "subordinates": 300,
            "count": 3600,
        },
    },
    "bulk": {
        "limit": 50,
        "atomic": True,
    },
    "hierarchy": {
        "max_depth": 64,
    },
    "access": {
        "read_only": False,
        "deny": {},
    },
}

_BOOL = lambda x: x.lower() in ("true", "1", "yes")  # noqa: E731

# Environment variable mappings
# Maps env var name to (config_section, config_key, type_converter)
ENV_MAPPINGS = {
    "FLASK_SERVER_HOST": ("server", "host", str),
    "FLASK_SERVER_PORT": ("server", "port", int),
    "FLASK_DEBUG": ("server", "debug", _BOOL),
    "FLASK_LOG_LEVEL": ("logging", "level", str),
    "APP_ENVIRONMENT": ("app", "environment", str),
    "DATABASE_HOST": ("database", "host", str),
    "DATABASE_PORT": ("database", "port", int),
    "DATABASE_NAME": ("database", "name", str),
    "DATABASE_USER": ("database", "user", str),
    "DATABASE_PASSWORD": ("database", "password", str),
    "DATABASE_POOL_SIZE": ("database", "pool_size", int),
    "DATABASE_POOL_TIMEOUT": ("database", "pool_timeout", int),
    "CACHE_BACKEND": ("cache", "backend", str),
    "REDIS_URL": ("cache", "url", str),
    "CACHE_NAMESPACE": ("cache", "namespace", str),
    "CACHE_SOCKET_TIMEOUT": ("cache", "socket_timeout", float),
    "CACHE_CONNECT_TIMEOUT": ("cache", "connect_timeout", float),
    "BULK_LIMIT": ("bulk", "limit", int),
    "BULK_ATOMIC": ("bulk", "atomic", _BOOL),
    "HIERARCHY_MAX_DEPTH": ("hierarchy", "max_depth", int),
    "ACCESS_READ_ONLY": ("access", "read_only", _BOOL),
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_config(config_path: Path) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r") as f:
        content = yaml.safe_load(f)
        return content if content else {}


def apply_env_overrides(config: dict) -> dict:
    """Apply environment variable overrides to configuration."""
    result = config.copy()

    for env_var, (section, key, converter) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is not None:
            result[section] = dict(result.get(section, {}))
            result[section][key] = converter(value)

    return result


def load_config(config_path: str | Path = "config.yaml") -> dict:
    """Load config: env vars > config.yaml > DEFAULTS."""
    if isinstance(config_path, str):
        config_path = Path(config_path)

    config = deep_merge(DEFAULTS, load_yaml_config(config_path))
    config = apply_env_overrides(config)

    return config


def get_value(config: dict, *keys: str, default: Any = None) -> Any:
    """Get a nested configuration value by key path."""
    result = config
    for key in keys:
        if isinstance(result, dict) and key in result:
            result = result[key]
        else:
            return default
    return result


def _extract_db_name(url: str) -> str:
    """Extract the database name from a database URL.

    PostgreSQL URLs yield the path component without query params; SQLite
    URLs yield the file stem (``/tmp/org_chart_test.db`` -> ``org_chart_test``).
    """
    if "/" not in url:
        return ""
    name = url.rsplit("/", 1)[-1]
    if "?" in name:
        name = name.split("?", 1)[0]
    if url.startswith("sqlite") and name.endswith(".db"):
        name = name[: -len(".db")]
    return name


def get_database_url(config: dict) -> str:
    """Build database URL. DATABASE_URL env var takes precedence over config fields."""
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        _guard_production_db(database_url, config)
        return database_url

    db = config.get("database", {})
    host = db.get("host", "localhost")
    port = db.get("port", 5432)
    name = db.get("name", "org_chart")
    user = db.get("user", "postgres")
    password = db.get("password", "")

    if password:
        url = f"postgresql://{user}:{password}@{host}:{port}/{name}"
    else:
        url = f"postgresql://{user}@{host}:{port}/{name}"

    _guard_production_db(url, config)
    return url


def _guard_production_db(database_url: str, config: dict) -> None:
    """Raise RuntimeError if tests are trying to connect to a non-test database.

    Convention: test databases MUST have a name ending with '_test'.
    """
    if "_pytest" not in sys.modules and "pytest" not in sys.modules:
        return

    db_name = _extract_db_name(database_url)
    if not db_name:
        return  # in-memory or custom

    if not db_name.endswith("_test"):
        raise RuntimeError(
            f"SAFETY GUARD: Refusing to connect to database '{db_name}' "
            f"during test run. Test databases MUST have names ending with "
            f"'_test' (e.g. '{db_name}_test'). Set the DATABASE_URL "
            f"environment variable to a test database URL."
        )


def mask_database_url(url: str) -> str:
    """Mask the password in a database URL for safe logging."""
    return re.sub(r"(postgresql://[^:]+:)[^@]+(@)", r"\1***\2", url)


def get_cache_config(config: dict) -> dict:
    """Get cache configuration with defaults and a resolved namespace."""
    environment = get_value(config, "app", "environment", default="development")
    namespace = get_value(config, "cache", "namespace") or f"org_chart_{environment}"
    ttl = dict(DEFAULTS["cache"]["ttl"])
    ttl.update(get_value(config, "cache", "ttl", default={}) or {})
    return {
        "backend": get_value(config, "cache", "backend", default="memory"),
        "url": get_value(config, "cache", "url", default="redis://localhost:6379/0"),
        "namespace": namespace,
        "socket_timeout": get_value(config, "cache", "socket_timeout", default=0.2),
        "connect_timeout": get_value(config, "cache", "connect_timeout", default=1.0),
        "max_entries": get_value(config, "cache", "max_entries", default=5000),
        "ttl": ttl,
    }


def get_bulk_config(config: dict) -> dict:
    """Get bulk operation configuration with defaults."""
    return {
        "limit": get_value(config, "bulk", "limit", default=50),
        "atomic": get_value(config, "bulk", "atomic", default=True),
    }
