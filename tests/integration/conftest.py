"""Fixtures for integration tests.

Integration tests run against the application's real session and schema
(see the top-level ``app`` fixture); factories are bound to it here.
"""

import pytest

from .factories import bind_factories


@pytest.fixture(autouse=True)
def _set_factory_session(db_session):
    """Inject the test db_session into all factories."""
    bind_factories(db_session)
