"""Tests for batch create / update / delete in atomic and best-effort modes."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from org_chart.models import Department, Employee, Position
from org_chart.services.bulk_executor import BulkBatchExecutor
from org_chart.services.change_events import Operation
from org_chart.services.errors import (
    AccessDenied,
    BatchLimitExceeded,
    InvalidValue,
    ReferencedEntityNotFound,
)

from ..integration.factories import DepartmentFactory, EmployeeFactory, PositionFactory, bind_factories


@pytest.fixture(autouse=True)
def _set_factory_session(db_session):
    bind_factories(db_session)


@pytest.fixture
def executor(services):
    return services["bulk_executor"]


@pytest.fixture
def events(services):
    received = []
    services["event_bus"].subscribe(received.append)
    return received


def live_names(db_session) -> list[str]:
    stmt = select(Department.name).where(Department.deleted_at.is_(None)).order_by(Department.id)
    return list(db_session.scalars(stmt))


class TestPreflight:

    def test_over_limit_rejected_without_storage_access(self):
        store = MagicMock()
        service = MagicMock()
        executor = BulkBatchExecutor(store, service, limit=50)
        records = [{"name": f"D{i}"} for i in range(51)]
        with pytest.raises(BatchLimitExceeded) as exc:
            executor.execute("department", "create", records)
        assert exc.value.details == {"size": 51, "limit": 50}
        assert store.mock_calls == []
        assert service.mock_calls == []

    def test_over_limit_inserts_nothing(self, executor, db_session):
        records = [{"name": f"D{i}"} for i in range(51)]
        with pytest.raises(BatchLimitExceeded):
            executor.execute("department", "create", records, limit=50)
        assert live_names(db_session) == []

    def test_missing_reference_is_fatal_in_both_modes(self, executor, db_session):
        records = [{"name": "Ok"}, {"name": "Child", "parent_department_id": 999}]
        for atomic in (True, False):
            with pytest.raises(ReferencedEntityNotFound) as exc:
                executor.execute("department", "create", records, atomic=atomic)
            assert exc.value.missing_ids == [999]
        assert live_names(db_session) == []

    def test_references_checked_once_per_kind(self, services):
        store = services["hierarchy_store"]
        calls = []
        original = store.exists_all

        def counting(kind, ids):
            calls.append(kind.value)
            return original(kind, ids)

        store.exists_all = counting
        try:
            parent = DepartmentFactory()
            records = [{"name": f"C{i}", "parent_department_id": parent.id} for i in range(5)]
            services["bulk_executor"].execute("department", "create", records)
        finally:
            del store.exists_all
        assert calls == ["department"]

    def test_required_fields_reported_per_record(self, executor):
        result = executor.execute("department", "create", [{"name": "A"}, {"description": "x"}], atomic=False)
        assert [d.name for d in result.succeeded] == ["A"]
        assert result.failed[0].index == 1
        assert [(e.field, e.code) for e in result.failed[0].errors] == [("name", "required")]

    def test_duplicates_within_batch(self, executor):
        result = executor.execute("department", "create", [{"name": "Same"}, {"name": "Same"}], atomic=False)
        assert len(result.succeeded) == 1
        assert result.failed[0].index == 1
        assert result.failed[0].errors[0].code == "duplicate"

    def test_case_insensitive_email_duplicates_within_batch(self, executor):
        position = PositionFactory()
        records = [
            {"first_name": "A", "last_name": "A", "email": "x@example.com", "position_id": position.id},
            {"first_name": "B", "last_name": "B", "email": "X@Example.com", "position_id": position.id},
        ]
        result = executor.execute("employee", "create", records, atomic=False)
        assert len(result.succeeded) == 1
        assert result.failed[0].errors[0].field == "email"

    def test_unauthorized(self, executor):
        with pytest.raises(AccessDenied):
            executor.execute("department", "create", [{"name": "A"}], authorized=False)

    def test_empty_batch(self, executor):
        result = executor.execute("department", "create", [])
        assert result.ok
        assert result.succeeded == []


class TestAtomicMode:

    def test_duplicate_of_live_row_rejects_whole_batch(self, executor, db_session, events):
        DepartmentFactory(name="Existing")
        result = executor.execute("department", "create", [{"name": "Fresh"}, {"name": "Existing"}], atomic=True)
        assert result.atomic is True
        assert result.succeeded == []
        assert [f.index for f in result.failed] == [1]
        assert result.failed[0].errors[0].code == "duplicate"
        assert live_names(db_session) == ["Existing"]
        assert events == []

    def test_execution_failure_rolls_back_earlier_records(self, executor, db_session):
        a = DepartmentFactory(name="A")
        b = DepartmentFactory(name="B", parent_department=a)
        records = [
            {"id": b.id, "name": "B renamed"},
            {"id": a.id, "parent_department_id": b.id},  # cycle
        ]
        result = executor.execute("department", "update", records, atomic=True)
        assert result.succeeded == []
        assert result.failed[0].index == 1
        assert result.failed[0].errors[0].code == "cycle"
        db_session.expire_all()
        assert db_session.get(Department, b.id).name == "B"

    def test_success_commits_all_and_publishes_each(self, executor, db_session, events):
        result = executor.execute("department", "create", [{"name": "X"}, {"name": "Y"}])
        assert result.ok
        assert live_names(db_session) == ["X", "Y"]
        assert [e.operation for e in events] == [Operation.CREATE, Operation.CREATE]
        assert sorted(e.entity_id for e in events) == sorted(d.id for d in result.succeeded)

    def test_duplicate_within_batch_rejects_whole_batch(self, executor):
        result = executor.execute("department", "create", [{"name": "Q"}, {"name": "Q"}], atomic=True)
        assert result.succeeded == []
        assert result.failed[0].index == 1


class TestBestEffortMode:

    def test_duplicate_of_live_row_only_fails_that_record(self, executor, db_session):
        DepartmentFactory(name="Existing")
        result = executor.execute("department", "create", [{"name": "Fresh"}, {"name": "Existing"}], atomic=False)
        assert [d.name for d in result.succeeded] == ["Fresh"]
        assert [(f.index, f.errors[0].code) for f in result.failed] == [(1, "duplicate")]
        assert live_names(db_session) == ["Existing", "Fresh"]

    def test_persisted_set_is_exactly_the_passing_records(self, executor, db_session):
        parent = PositionFactory(level=5)
        records = [
            {"title": "Ok 1", "level": 4, "department_id": parent.department_id, "parent_position_id": parent.id},
            {"title": "Too high", "level": 9, "department_id": parent.department_id, "parent_position_id": parent.id},
            {"title": "Ok 2", "level": 1, "department_id": parent.department_id, "parent_position_id": parent.id},
        ]
        result = executor.execute("position", "create", records, atomic=False)
        assert [p.title for p in result.succeeded] == ["Ok 1", "Ok 2"]
        assert [f.index for f in result.failed] == [1]
        titles = set(db_session.scalars(select(Position.title)))
        assert titles == {parent.title, "Ok 1", "Ok 2"}

    def test_delete_with_dependents_reported(self, executor, db_session):
        busy = DepartmentFactory()
        EmployeeFactory(position=PositionFactory(department=busy))
        idle = DepartmentFactory()
        result = executor.execute("department", "delete", [busy.id, {"id": idle.id}], atomic=False)
        assert [d.id for d in result.succeeded] == [idle.id]
        assert result.failed[0].errors[0].code == "dependents"
        db_session.expire_all()
        assert db_session.get(Department, busy.id).is_live

    def test_to_dict(self, executor):
        result = executor.execute("department", "create", [{"name": "Z"}, {}], atomic=False)
        payload = result.to_dict()
        assert payload["operation"] == "create"
        assert payload["succeeded"][0]["name"] == "Z"
        assert payload["failed"][0]["errors"][0]["field"] == "name"


class TestConvenienceBatches:

    @pytest.fixture
    def org(self):
        department = DepartmentFactory()
        head = PositionFactory(level=5, department=department)
        lead = PositionFactory(level=4, department=department, parent_position=head)
        engineer = PositionFactory(level=2, department=department, parent_position=lead)
        return {
            "department": department,
            "head": head,
            "lead": lead,
            "engineer": engineer,
            "boss": EmployeeFactory(position=head),
            "lead_holder": EmployeeFactory(position=lead),
            "staff": [EmployeeFactory(position=engineer) for _ in range(2)],
        }

    def test_transfer_employees_sets_default_manager(self, executor, org, db_session):
        ids = [e.id for e in org["staff"]]
        result = executor.transfer_employees(ids, org["lead"].id, atomic=False)
        assert result.ok
        db_session.expire_all()
        for employee_id in ids:
            employee = db_session.get(Employee, employee_id)
            assert employee.position_id == org["lead"].id
            assert employee.manager_id == org["boss"].id

    def test_assign_manager(self, executor, org, db_session):
        ids = [e.id for e in org["staff"]]
        assert executor.assign_manager(ids, org["lead_holder"].id).ok
        db_session.expire_all()
        assert {db_session.get(Employee, i).manager_id for i in ids} == {org["lead_holder"].id}

    def test_assign_manager_rejects_self_management(self, executor, org):
        with pytest.raises(InvalidValue):
            executor.assign_manager([org["boss"].id], org["boss"].id)

    def test_assign_manager_level_violation(self, executor, org):
        peer = org["staff"][0]
        result = executor.assign_manager([org["staff"][1].id], peer.id)
        assert result.failed[0].errors[0].code == "level"

    def test_transfer_positions(self, executor, org, db_session):
        target = DepartmentFactory()
        result = executor.transfer_positions([org["engineer"].id], target.id)
        assert result.ok
        db_session.expire_all()
        assert db_session.get(Position, org["engineer"].id).department_id == target.id

    def test_transfer_to_missing_position_is_fatal(self, executor, org):
        with pytest.raises(ReferencedEntityNotFound):
            executor.transfer_employees([org["staff"][0].id], 12345)
