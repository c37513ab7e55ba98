"""Per-record validation for hierarchical entities.

Validation runs against the entity's current state plus a dict of proposed
changes, before anything is applied to the ORM object, so a rejected change
never reaches the session. Attribute checks, uniqueness, reference existence,
CycleGuard, LevelInvariant and the department-manager rule all report as
FieldError entries.
"""

import logging
import re
from typing import Any

from ..models import Department
from .cycle_guard import CycleGuard
from .errors import (
    CycleError,
    DuplicateValue,
    FieldError,
    InvalidValue,
    LevelError,
    MissingRequiredField,
)
from .hierarchy_store import EntityKind, HierarchyStore, KindSpec, get_kind_spec
from .level_invariant import validate_manager_level, validate_position_level
from .tree_index import TreeIndex

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

INTEGER_FIELDS = {
    "level",
    "parent_department_id",
    "manager_id",
    "department_id",
    "parent_position_id",
    "position_id",
}

MAX_LENGTHS = {
    "name": 128,
    "title": 128,
    "first_name": 64,
    "last_name": 64,
    "email": 255,
}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalize_params(kind: "str | EntityKind", params: dict) -> tuple[dict, list[FieldError]]:
    """Coerce a raw parameter map into typed changes.

    Strips strings, maps blank optional values to None, converts id and level
    fields to int. ``id`` is ignored; any other unknown key is an error.
    """
    spec = get_kind_spec(kind)
    changes: dict[str, Any] = {}
    errors: list[FieldError] = []

    for name, value in (params or {}).items():
        if name == "id":
            continue
        if name not in spec.fields:
            errors.append(InvalidValue("unknown field", field=name).to_field_error())
            continue
        if isinstance(value, str):
            value = value.strip()
            if value == "":
                value = None
        if name in INTEGER_FIELDS and value is not None:
            if isinstance(value, bool):
                errors.append(InvalidValue("must be an integer", field=name).to_field_error())
                continue
            try:
                value = int(value)
            except (TypeError, ValueError):
                errors.append(InvalidValue("must be an integer", field=name).to_field_error())
                continue
        changes[name] = value

    return changes, errors


class EntityValidator:
    """Validates proposed changes to one entity against the live hierarchy."""

    def __init__(self, store: HierarchyStore, tree_index: TreeIndex):
        self.store = store
        self.tree_index = tree_index

    def validate(
        self,
        kind: "str | EntityKind",
        entity,
        changes: dict,
        is_new: bool,
        skip_uniqueness: bool = False,
    ) -> list[FieldError]:
        """Return every field error for applying ``changes`` to ``entity``.

        Args:
            kind: Entity kind
            entity: Current ORM object (a fresh, unsaved instance when is_new)
            changes: Normalised field -> new value map
            is_new: True for creates; required fields are then enforced
            skip_uniqueness: Set when the caller has already checked uniqueness
                for the whole batch
        """
        spec = get_kind_spec(kind)
        effective = {name: changes.get(name, getattr(entity, name, None)) for name in spec.fields}
        touched = set(changes) if not is_new else {n for n in spec.fields if effective[n] is not None}

        errors = self._attribute_errors(spec, effective, touched, is_new)
        if not skip_uniqueness:
            errors.extend(self._uniqueness_errors(spec, entity, effective, touched))

        failed = {e.field for e in errors}
        referenced = {}
        for name, target_kind in spec.references.items():
            value = effective[name]
            if value is None or name in failed:
                continue
            target = self.store.find(target_kind, value)
            if target is None:
                if name in touched:
                    errors.append(FieldError(
                        field=name, code="not_found",
                        message=f"{target_kind.value} {value} not found",
                    ))
                    failed.add(name)
                continue
            referenced[name] = target

        parent_field = spec.parent_field
        if parent_field in touched and parent_field not in failed:
            try:
                guard = CycleGuard(lambda i: self.store.parent_id(spec.kind, i), field=parent_field)
                guard.validate(getattr(entity, "id", None), effective[parent_field])
            except CycleError as e:
                errors.append(e.to_field_error())
                failed.add(parent_field)

        if parent_field not in failed:
            if spec.kind is EntityKind.POSITION:
                errors.extend(self._position_level_errors(entity, effective, touched, referenced, is_new))
            elif spec.kind is EntityKind.EMPLOYEE:
                errors.extend(self._employee_level_errors(entity, effective, touched, referenced, is_new))
            elif "manager_id" in touched and "manager_id" in referenced:
                errors.extend(self._department_manager_errors(entity, referenced["manager_id"], is_new))

        if not is_new:
            errors.extend(self._managed_scope_errors(spec.kind, entity, touched, failed, referenced))

        return errors

    # --- attribute checks ---

    def _attribute_errors(self, spec: KindSpec, effective: dict, touched: set, is_new: bool) -> list[FieldError]:
        errors = []
        for name in spec.required_fields:
            if (is_new or name in touched) and _blank(effective[name]):
                errors.append(MissingRequiredField("can't be blank", field=name).to_field_error())

        for name, limit in MAX_LENGTHS.items():
            value = effective.get(name)
            if name in touched and isinstance(value, str) and len(value) > limit:
                errors.append(InvalidValue(f"is too long (maximum is {limit} characters)", field=name).to_field_error())

        if spec.kind is EntityKind.POSITION and "level" in touched:
            level = effective["level"]
            if level is not None and level <= 0:
                errors.append(InvalidValue("must be greater than 0", field="level").to_field_error())

        if spec.kind is EntityKind.EMPLOYEE and "email" in touched:
            email = effective["email"]
            if isinstance(email, str) and email and not EMAIL_PATTERN.match(email):
                errors.append(InvalidValue("is invalid", field="email").to_field_error())

        return errors

    def _uniqueness_errors(self, spec: KindSpec, entity, effective: dict, touched: set) -> list[FieldError]:
        errors = []
        entity_id = getattr(entity, "id", None)
        for name in spec.unique_fields:
            value = effective[name]
            if name not in touched or _blank(value):
                continue
            taken = self.store.existing_values(spec.kind, name, [value], exclude_ids=[entity_id])
            if taken:
                errors.append(DuplicateValue("has already been taken", field=name).to_field_error())
        return errors

    # --- ordering invariants ---

    def _position_level_errors(self, entity, effective, touched, referenced, is_new) -> list[FieldError]:
        level = effective["level"]
        if level is None or not ({"level", "parent_position_id"} & touched):
            return []
        try:
            parent = referenced.get("parent_position_id")
            validate_position_level(level, parent.level if parent is not None else None)
            if not is_new and "level" in touched:
                for child in self.store.children(EntityKind.POSITION, entity):
                    if not child.level < level:
                        raise LevelError(
                            f"must be greater than subordinate position levels (position {child.id} is {child.level})",
                            field="level",
                        )
                self._check_holder_levels(entity, level)
        except LevelError as e:
            return [e.to_field_error()]
        return []

    def _check_holder_levels(self, position, level: int) -> None:
        """Holders of ``position`` must stay below their managers and above their reports."""

        def level_of(position_id):
            if position_id == position.id:
                return level
            found = self.store.find(EntityKind.POSITION, position_id)
            return found.level if found is not None else None

        for holder in self.store.employees_in_positions([position.id]):
            manager = self.store.find(EntityKind.EMPLOYEE, holder.manager_id)
            manager_level = level_of(manager.position_id) if manager is not None else None
            if manager_level is not None and not level < manager_level:
                raise LevelError(
                    f"must be less than the level of holder {holder.id}'s manager ({manager_level})",
                    field="level",
                )
            for report in self.store.children(EntityKind.EMPLOYEE, holder):
                report_level = level_of(report.position_id)
                if report_level is not None and not report_level < level:
                    raise LevelError(
                        f"must be greater than the level of holder {holder.id}'s report "
                        f"{report.id} ({report_level})",
                        field="level",
                    )

    def _employee_level_errors(self, entity, effective, touched, referenced, is_new) -> list[FieldError]:
        if not ({"manager_id", "position_id"} & touched):
            return []
        position = referenced.get("position_id")
        if position is None:
            return []
        errors = []
        manager = referenced.get("manager_id")
        if manager is not None:
            manager_position = self.store.find(EntityKind.POSITION, manager.position_id)
            try:
                validate_manager_level(
                    position.level, manager_position.level if manager_position is not None else None
                )
            except LevelError as e:
                errors.append(e.to_field_error())
        if not is_new and "position_id" in touched:
            for report in self.store.children(EntityKind.EMPLOYEE, entity):
                report_position = self.store.find(EntityKind.POSITION, report.position_id)
                if report_position is not None and not report_position.level < position.level:
                    errors.append(LevelError(
                        f"must rank above direct reports (employee {report.id} is at level {report_position.level})",
                        field="position_id",
                    ).to_field_error())
                    break
        return errors

    def _department_manager_errors(self, department, manager, is_new) -> list[FieldError]:
        """The manager must work in the department or one of its sub-departments."""
        scope = set()
        if not is_new and department.id is not None:
            scope = {d.id for d in self.tree_index.subtree(EntityKind.DEPARTMENT, department)}
        if self.store.department_id_of_employee(manager) not in scope:
            return [InvalidValue("must be an employee of the department", field="manager_id").to_field_error()]
        return []

    # --- department manager scope after moves ---

    def _managed_scope_errors(self, kind, entity, touched, failed, referenced) -> list[FieldError]:
        """Moves that would take a department's manager out of that department's subtree."""
        if kind is EntityKind.DEPARTMENT:
            return self._reparent_scope_errors(entity, touched, failed, referenced)

        if kind is EntityKind.EMPLOYEE:
            field_name, holders = "position_id", [entity]
            position = referenced.get("position_id")
            new_department_id = position.department_id if position is not None else None
        else:
            field_name = "department_id"
            holders = self.store.employees_in_positions([entity.id])
            department = referenced.get("department_id")
            new_department_id = department.id if department is not None else None
        if field_name not in touched or field_name in failed or new_department_id is None:
            return []

        for holder in holders:
            for managed in self.store.find_all(EntityKind.DEPARTMENT, Department.manager_id == holder.id):
                scope = {d.id for d in self.tree_index.subtree(EntityKind.DEPARTMENT, managed)}
                if new_department_id not in scope:
                    return [InvalidValue(
                        f"would move employee {holder.id} out of department {managed.id}, which they manage",
                        field=field_name,
                    ).to_field_error()]
        return []

    def _reparent_scope_errors(self, department, touched, failed, referenced) -> list[FieldError]:
        """Old ancestors must not lose the sub-department their manager works in."""
        if "parent_department_id" not in touched or "parent_department_id" in failed:
            return []
        moved = {d.id for d in self.tree_index.subtree(EntityKind.DEPARTMENT, department)}
        kept = set()
        new_parent = referenced.get("parent_department_id")
        if new_parent is not None:
            kept = {new_parent.id} | {a.id for a in self.tree_index.ancestors(EntityKind.DEPARTMENT, new_parent)}

        for ancestor in self.tree_index.ancestors(EntityKind.DEPARTMENT, department):
            if ancestor.id in kept or ancestor.manager_id is None:
                continue
            manager = self.store.find(EntityKind.EMPLOYEE, ancestor.manager_id)
            if manager is not None and self.store.department_id_of_employee(manager) in moved:
                return [InvalidValue(
                    f"would move the manager of department {ancestor.id} out of its subtree",
                    field="parent_department_id",
                ).to_field_error()]
        return []
