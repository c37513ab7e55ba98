"""Tests for the department, position and employee API."""

import pytest

from org_chart.services.access import AccessPolicy

from ..integration.factories import DepartmentFactory, EmployeeFactory, PositionFactory, bind_factories


@pytest.fixture(autouse=True)
def _set_factory_session(db_session):
    bind_factories(db_session)


def error_codes(response) -> set:
    return {e["code"] for e in response.get_json()["error"].get("details") or []}


class TestReads:

    def test_unknown_kind_is_404(self, client):
        response = client.get("/api/teams")
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "not_found"

    def test_list_with_count(self, client):
        DepartmentFactory(name="Engineering")
        DepartmentFactory(name="Sales")

        response = client.get("/api/departments")

        assert response.status_code == 200
        data = response.get_json()
        assert data["count"] == 2
        assert [d["name"] for d in data["items"]] == ["Engineering", "Sales"]

    def test_show_record(self, client):
        department = DepartmentFactory(name="Engineering")

        response = client.get(f"/api/departments/{department.id}")

        assert response.status_code == 200
        assert response.get_json()["name"] == "Engineering"

    def test_missing_record_is_404(self, client):
        response = client.get("/api/employees/999")
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "entity_not_found"

    def test_department_tree(self, client):
        root = DepartmentFactory(name="Company")
        DepartmentFactory(name="Engineering", parent_department=root)

        response = client.get("/api/departments/tree")

        assert response.status_code == 200
        tree = response.get_json()
        assert [node["name"] for node in tree] == ["Company"]
        assert [child["name"] for child in tree[0]["children"]] == ["Engineering"]

    def test_hierarchy_view(self, client):
        top = PositionFactory(level=5)
        low = PositionFactory(level=3, department=top.department, parent_position=top)

        response = client.get(f"/api/positions/{low.id}/hierarchy")

        assert response.status_code == 200
        data = response.get_json()
        assert [a["id"] for a in data["ancestors"]] == [top.id]
        assert data["entity"]["id"] == low.id

    def test_unsupported_view_is_404(self, client):
        position = PositionFactory()
        response = client.get(f"/api/positions/{position.id}/org_chart")
        assert response.status_code == 404

    def test_force_reloads_cached_view(self, client, db_session):
        department = DepartmentFactory(name="Before")
        assert client.get(f"/api/departments/{department.id}").get_json()["name"] == "Before"

        # Direct write bypasses the change events, so the cache is stale
        department.name = "After"
        db_session.commit()

        assert client.get(f"/api/departments/{department.id}").get_json()["name"] == "Before"
        assert client.get(f"/api/departments/{department.id}?force=1").get_json()["name"] == "After"


class TestMutations:

    def test_create_department(self, client):
        response = client.post("/api/departments", json={"name": "  Engineering  "})

        assert response.status_code == 201
        data = response.get_json()
        assert data["name"] == "Engineering"
        assert data["id"] is not None

    def test_create_requires_json_object(self, client):
        response = client.post("/api/departments", json=["name"])
        assert response.status_code == 400

    def test_create_validation_errors_are_422(self, client):
        response = client.post("/api/positions", json={"title": "Engineer", "level": 0})

        assert response.status_code == 422
        assert response.get_json()["error"]["code"] == "validation_failed"
        assert {"required", "invalid"} <= error_codes(response)

    def test_update_cycle_is_422(self, client):
        root = DepartmentFactory()
        child = DepartmentFactory(parent_department=root)

        response = client.patch(f"/api/departments/{root.id}", json={"parent_department_id": child.id})

        assert response.status_code == 422
        assert "cycle" in error_codes(response)

    def test_update_missing_is_404(self, client):
        response = client.put("/api/departments/999", json={"name": "Nowhere"})
        assert response.status_code == 404

    def test_update_department(self, client):
        department = DepartmentFactory(name="Old")

        response = client.put(f"/api/departments/{department.id}", json={"name": "New"})

        assert response.status_code == 200
        assert response.get_json()["name"] == "New"
        assert client.get(f"/api/departments/{department.id}").get_json()["name"] == "New"

    def test_delete_with_dependents_is_409(self, client):
        position = PositionFactory()
        EmployeeFactory(position=position)

        response = client.delete(f"/api/positions/{position.id}")

        assert response.status_code == 409
        error = response.get_json()["error"]
        assert error["code"] == "dependents"
        assert "employees" in error["details"]

    def test_delete_leaf(self, client):
        employee = EmployeeFactory()

        response = client.delete(f"/api/employees/{employee.id}")

        assert response.status_code == 200
        assert response.get_json()["deleted_at"] is not None
        assert client.get("/api/employees").get_json()["count"] == 0

    def test_read_only_policy_denies_writes(self, app, client):
        app.extensions["access_policy"] = AccessPolicy(read_only=True)

        response = client.post("/api/departments", json={"name": "Engineering"})

        assert response.status_code == 403
        assert response.get_json()["error"]["code"] == "access_denied"
        assert client.get("/api/departments").status_code == 200

    def test_denied_view_is_403(self, app, client):
        app.extensions["access_policy"] = AccessPolicy(deny={"employee": ["view"]})
        assert client.get("/api/employees").status_code == 403


class TestBatches:

    def test_bulk_create(self, client):
        response = client.post(
            "/api/departments/bulk/create",
            json={"records": [{"name": "A"}, {"name": "B"}]},
        )

        assert response.status_code == 200
        data = response.get_json()
        assert [d["name"] for d in data["succeeded"]] == ["A", "B"]
        assert data["failed"] == []

    def test_atomic_failure_is_422_and_persists_nothing(self, client):
        response = client.post(
            "/api/departments/bulk/create",
            json={"records": [{"name": "A"}, {"name": ""}]},
        )

        assert response.status_code == 422
        data = response.get_json()
        assert data["succeeded"] == []
        assert [f["index"] for f in data["failed"]] == [1]
        assert client.get("/api/departments").get_json()["count"] == 0

    def test_best_effort_keeps_valid_records(self, client):
        response = client.post(
            "/api/departments/bulk/create",
            json={"records": [{"name": "A"}, {"name": ""}], "atomic": False},
        )

        assert response.status_code == 200
        data = response.get_json()
        assert [d["name"] for d in data["succeeded"]] == ["A"]
        assert [f["index"] for f in data["failed"]] == [1]

    def test_atomic_string_false_is_best_effort(self, client):
        response = client.post(
            "/api/departments/bulk/create",
            json={"records": [{"name": "A"}, {"name": ""}], "atomic": "false"},
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["atomic"] is False
        assert [d["name"] for d in data["succeeded"]] == ["A"]

    def test_over_limit_is_400(self, client):
        records = [{"name": f"D{i}"} for i in range(51)]

        response = client.post("/api/departments/bulk/create", json={"records": records})

        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "batch_limit_exceeded"

    def test_missing_reference_is_400(self, client):
        response = client.post(
            "/api/positions/bulk/create",
            json={"records": [{"title": "Engineer", "level": 3, "department_id": 999}]},
        )

        assert response.status_code == 400
        error = response.get_json()["error"]
        assert error["code"] == "not_found"
        assert error["details"]["missing_ids"] == [999]

    def test_unknown_operation_is_404(self, client):
        response = client.post("/api/departments/bulk/merge", json={"records": []})
        assert response.status_code == 404

    def test_records_must_be_list(self, client):
        response = client.post("/api/departments/bulk/create", json={"records": "A"})
        assert response.status_code == 400

    def test_bulk_delete_by_id(self, client):
        a = DepartmentFactory()
        b = DepartmentFactory()

        response = client.post("/api/departments/bulk/delete", json={"records": [a.id, b.id]})

        assert response.status_code == 200
        assert client.get("/api/departments").get_json()["count"] == 0

    def test_transfer_employees(self, client):
        department = DepartmentFactory()
        target = PositionFactory(department=department)
        employees = [EmployeeFactory(), EmployeeFactory()]

        response = client.post(
            "/api/employees/transfer",
            json={"employee_ids": [e.id for e in employees], "position_id": target.id},
        )

        assert response.status_code == 200
        assert {e["position_id"] for e in response.get_json()["succeeded"]} == {target.id}

    def test_assign_manager(self, client):
        department = DepartmentFactory()
        head = PositionFactory(level=5, department=department)
        staff = PositionFactory(level=3, department=department, parent_position=head)
        boss = EmployeeFactory(position=head)
        reports = [EmployeeFactory(position=staff), EmployeeFactory(position=staff)]

        response = client.post(
            "/api/employees/assign_manager",
            json={"employee_ids": [e.id for e in reports], "manager_id": boss.id},
        )

        assert response.status_code == 200
        assert {e["manager_id"] for e in response.get_json()["succeeded"]} == {boss.id}

    def test_transfer_positions(self, client):
        target = DepartmentFactory()
        positions = [PositionFactory(), PositionFactory()]

        response = client.post(
            "/api/positions/transfer",
            json={"position_ids": [p.id for p in positions], "department_id": target.id},
        )

        assert response.status_code == 200
        assert {p["department_id"] for p in response.get_json()["succeeded"]} == {target.id}

    def test_bulk_denied_is_403(self, app, client):
        app.extensions["access_policy"] = AccessPolicy(read_only=True)
        response = client.post("/api/departments/bulk/create", json={"records": [{"name": "A"}]})
        assert response.status_code == 403
