"""Tests for database configuration and connectivity."""

from unittest.mock import patch

from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from org_chart.config import DEFAULTS, ENV_MAPPINGS
from org_chart.database import check_database_health, db, engine_options


class TestDatabaseConfigDefaults:
    """Test database configuration defaults."""

    def test_database_defaults_exist(self):
        db_defaults = DEFAULTS["database"]
        assert db_defaults["host"] == "localhost"
        assert db_defaults["port"] == 5432
        assert db_defaults["name"] == "org_chart"
        assert db_defaults["pool_size"] == 10

    def test_database_env_mappings_exist(self):
        for var in ("DATABASE_HOST", "DATABASE_PORT", "DATABASE_NAME", "DATABASE_USER", "DATABASE_PASSWORD"):
            assert var in ENV_MAPPINGS, f"{var} not in ENV_MAPPINGS"


class TestEngineOptions:

    def test_sqlite_uses_default_pool(self):
        assert engine_options("sqlite:////tmp/org_chart_test.db", DEFAULTS) == {}

    def test_postgres_pool_from_config(self):
        options = engine_options(
            "postgresql://u@localhost/org_chart",
            {"database": {"pool_size": 3, "pool_timeout": 7}},
        )
        assert options["pool_size"] == 3
        assert options["pool_timeout"] == 7
        assert options["pool_pre_ping"] is True


class TestDatabaseInit:
    """Test database initialization on the app."""

    def test_app_connected(self, app):
        assert app.config["DATABASE_CONNECTED"] is True
        assert "_test" in app.config["SQLALCHEMY_DATABASE_URI"]

    def test_hierarchy_tables_created(self, app):
        tables = set(inspect(db.engine).get_table_names())
        assert {"departments", "positions", "employees"} <= tables


class TestCheckDatabaseHealth:

    def test_healthy(self, app):
        assert check_database_health() == (True, None)

    def test_reports_error(self, app):
        with patch.object(db.session, "execute", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
            connected, error = check_database_health()
        assert connected is False
        assert error.startswith("OperationalError")
