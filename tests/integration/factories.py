"""Factory Boy factory definitions for the hierarchy models.

Each factory produces a valid, persistable live row. Positions default to
level 5 in a fresh department; employees default to a fresh position.
"""

import factory
from factory.alchemy import SQLAlchemyModelFactory

from org_chart.models import Department, Employee, Position


class DepartmentFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Department
        sqlalchemy_session = None  # Set via fixture
        sqlalchemy_session_persistence = "commit"

    name = factory.Sequence(lambda n: f"Department {n}")
    description = None
    parent_department = None
    manager_id = None


class PositionFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Position
        sqlalchemy_session = None
        sqlalchemy_session_persistence = "commit"

    title = factory.Sequence(lambda n: f"Position {n}")
    level = 5
    department = factory.SubFactory(DepartmentFactory)
    parent_position = None


class EmployeeFactory(SQLAlchemyModelFactory):
    class Meta:
        model = Employee
        sqlalchemy_session = None
        sqlalchemy_session_persistence = "commit"

    first_name = factory.Sequence(lambda n: f"First{n}")
    last_name = factory.Sequence(lambda n: f"Last{n}")
    email = factory.Sequence(lambda n: f"employee{n}@example.com")
    position = factory.SubFactory(PositionFactory)
    manager = None


ALL_FACTORIES = (DepartmentFactory, PositionFactory, EmployeeFactory)


def bind_factories(session) -> None:
    """Inject a session into every factory."""
    for factory_class in ALL_FACTORIES:
        factory_class._meta.sqlalchemy_session = session
