"""JSON-ready dict renderings of the hierarchical models."""

from datetime import datetime
from typing import Any


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def department_to_dict(department) -> dict:
    return {
        "id": department.id,
        "name": department.name,
        "description": department.description,
        "parent_department_id": department.parent_department_id,
        "manager_id": department.manager_id,
        "deleted_at": _iso(department.deleted_at),
    }


def position_to_dict(position) -> dict:
    return {
        "id": position.id,
        "title": position.title,
        "description": position.description,
        "level": position.level,
        "department_id": position.department_id,
        "parent_position_id": position.parent_position_id,
        "deleted_at": _iso(position.deleted_at),
    }


def employee_to_dict(employee) -> dict:
    return {
        "id": employee.id,
        "first_name": employee.first_name,
        "last_name": employee.last_name,
        "email": employee.email,
        "position_id": employee.position_id,
        "manager_id": employee.manager_id,
        "deleted_at": _iso(employee.deleted_at),
    }


def employee_summary(employee) -> dict | None:
    if employee is None:
        return None
    return {
        "id": employee.id,
        "first_name": employee.first_name,
        "last_name": employee.last_name,
    }


_SERIALIZERS = {
    "department": department_to_dict,
    "position": position_to_dict,
    "employee": employee_to_dict,
}


def entity_to_dict(kind: Any, entity) -> dict:
    """Render any hierarchical entity by kind (enum or string)."""
    key = getattr(kind, "value", kind)
    return _SERIALIZERS[key](entity)
