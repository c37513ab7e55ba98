"""Pytest fixtures for org chart tests."""

import os

import pytest

from org_chart.app import create_app
from org_chart.database import db


# ---------------------------------------------------------------------------
# Production database safety guard (session-scoped, autouse)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def _force_test_database(tmp_path_factory):
    """Force ALL tests to use a throwaway test database. Never connect to production.

    Sets DATABASE_URL before any test or fixture can create a Flask app. The
    file name ends in '_test' so the config safety guard accepts it.
    """
    db_path = tmp_path_factory.mktemp("database") / "org_chart_test.db"
    test_url = os.environ.get("TEST_DATABASE_URL") or f"sqlite:///{db_path}"
    original = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = test_url

    yield

    # Restore original (or remove if it wasn't set)
    if original is not None:
        os.environ["DATABASE_URL"] = original
    else:
        os.environ.pop("DATABASE_URL", None)


@pytest.fixture
def app(tmp_path):
    """Create a Flask application with a fresh schema and an in-memory cache."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "logging:\n"
        "  level: WARNING\n"
        "app:\n"
        "  environment: test\n"
        "cache:\n"
        "  backend: memory\n"
    )
    app = create_app(config_path=str(config_path), testing=True)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def db_session(app):
    """The application's scoped session, bound to the test database."""
    return db.session


@pytest.fixture
def services(app):
    """The wired service objects from ``app.extensions``."""
    return app.extensions
