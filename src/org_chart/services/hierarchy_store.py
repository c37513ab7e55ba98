"""Storage abstraction over the hierarchical models.

Wraps ``db.session`` behind the find / find_all / exists_all / save /
soft_delete / transaction contract that the validators, TreeIndex and the
batch executor consume. All hierarchy reads are scoped to live rows unless
``include_deleted`` is requested.
"""

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..database import db
from ..models import Department, Employee, Position
from .errors import DependentRecordsExist, EntityNotFound, FieldError, InvalidValue, ValidationFailed

logger = logging.getLogger(__name__)


class EntityKind(str, enum.Enum):
    """The closed set of hierarchical entity kinds."""

    DEPARTMENT = "department"
    POSITION = "position"
    EMPLOYEE = "employee"

    @classmethod
    def parse(cls, value: "str | EntityKind") -> "EntityKind":
        if isinstance(value, cls):
            return value
        normalised = str(value).strip().lower().rstrip("s")
        for kind in cls:
            if kind.value == normalised:
                return kind
        raise InvalidValue(f"Unknown entity type: {value}", field="entity_type")


@dataclass(frozen=True)
class KindSpec:
    """Static description of one entity kind's fields and constraints."""

    kind: EntityKind
    model: type
    parent_field: str
    fields: tuple[str, ...]
    required_fields: tuple[str, ...]
    unique_fields: tuple[str, ...]
    case_insensitive_fields: tuple[str, ...] = ()
    references: dict[str, EntityKind] = field(default_factory=dict)


KIND_SPECS: dict[EntityKind, KindSpec] = {
    EntityKind.DEPARTMENT: KindSpec(
        kind=EntityKind.DEPARTMENT,
        model=Department,
        parent_field="parent_department_id",
        fields=("name", "description", "parent_department_id", "manager_id"),
        required_fields=("name",),
        unique_fields=("name",),
        references={
            "parent_department_id": EntityKind.DEPARTMENT,
            "manager_id": EntityKind.EMPLOYEE,
        },
    ),
    EntityKind.POSITION: KindSpec(
        kind=EntityKind.POSITION,
        model=Position,
        parent_field="parent_position_id",
        fields=("title", "description", "level", "department_id", "parent_position_id"),
        required_fields=("title", "level", "department_id"),
        unique_fields=("title",),
        references={
            "department_id": EntityKind.DEPARTMENT,
            "parent_position_id": EntityKind.POSITION,
        },
    ),
    EntityKind.EMPLOYEE: KindSpec(
        kind=EntityKind.EMPLOYEE,
        model=Employee,
        parent_field="manager_id",
        fields=("first_name", "last_name", "email", "position_id", "manager_id"),
        required_fields=("first_name", "last_name", "email", "position_id"),
        unique_fields=("email",),
        case_insensitive_fields=("email",),
        references={
            "position_id": EntityKind.POSITION,
            "manager_id": EntityKind.EMPLOYEE,
        },
    ),
}


def get_kind_spec(kind: "str | EntityKind") -> KindSpec:
    return KIND_SPECS[EntityKind.parse(kind)]


class HierarchyStore:
    """Session-backed reads and writes for departments, positions and employees."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # --- Reads ---

    def _live(self, kind: EntityKind):
        model = KIND_SPECS[kind].model
        return select(model).where(model.deleted_at.is_(None))

    def find(self, kind: "str | EntityKind", entity_id: Any, include_deleted: bool = False):
        """Return the entity with ``entity_id`` or None."""
        if entity_id is None:
            return None
        spec = get_kind_spec(kind)
        entity = self.session.get(spec.model, entity_id)
        if entity is None or (not include_deleted and not entity.is_live):
            return None
        return entity

    def get(self, kind: "str | EntityKind", entity_id: Any, include_deleted: bool = False):
        """Like ``find`` but raises EntityNotFound on a miss."""
        entity = self.find(kind, entity_id, include_deleted=include_deleted)
        if entity is None:
            raise EntityNotFound(EntityKind.parse(kind).value, entity_id)
        return entity

    def find_all(self, kind: "str | EntityKind", *criteria, include_deleted: bool = False) -> list:
        """Return entities matching all ``criteria``, ordered by id."""
        spec = get_kind_spec(kind)
        stmt = select(spec.model) if include_deleted else self._live(spec.kind)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        return list(self.session.scalars(stmt.order_by(spec.model.id)))

    def count(self, kind: "str | EntityKind") -> int:
        spec = get_kind_spec(kind)
        stmt = select(func.count(spec.model.id)).where(spec.model.deleted_at.is_(None))
        return self.session.scalar(stmt) or 0

    def exists_all(self, kind: "str | EntityKind", ids: Iterable[Any]) -> list:
        """Return the subset of ``ids`` that do not resolve to live rows.

        Issues a single query regardless of how many ids are checked.
        """
        wanted = []
        for entity_id in ids:
            if entity_id is not None and entity_id not in wanted:
                wanted.append(entity_id)
        if not wanted:
            return []
        spec = get_kind_spec(kind)
        stmt = select(spec.model.id).where(
            spec.model.id.in_(wanted), spec.model.deleted_at.is_(None)
        )
        found = set(self.session.scalars(stmt))
        return [entity_id for entity_id in wanted if entity_id not in found]

    def existing_values(
        self,
        kind: "str | EntityKind",
        field_name: str,
        values: Iterable[Any],
        exclude_ids: Iterable[Any] = (),
    ) -> set:
        """Return which of ``values`` are already taken by live rows.

        Case-insensitive fields are compared (and returned) lowercased.
        """
        spec = get_kind_spec(kind)
        column = getattr(spec.model, field_name)
        insensitive = field_name in spec.case_insensitive_fields
        wanted = {v.lower() if insensitive and isinstance(v, str) else v for v in values if v is not None}
        if not wanted:
            return set()
        target = func.lower(column) if insensitive else column
        stmt = select(target).where(target.in_(wanted), spec.model.deleted_at.is_(None))
        excluded = [i for i in exclude_ids if i is not None]
        if excluded:
            stmt = stmt.where(spec.model.id.not_in(excluded))
        return set(self.session.scalars(stmt))

    # --- Hierarchy reads ---

    def parent(self, kind: "str | EntityKind", entity):
        spec = get_kind_spec(kind)
        return self.find(spec.kind, getattr(entity, spec.parent_field))

    def parent_id(self, kind: "str | EntityKind", entity_id: Any):
        """Parent id of a live entity, or None at a root / for unknown ids."""
        spec = get_kind_spec(kind)
        entity = self.find(spec.kind, entity_id)
        if entity is None:
            return None
        return getattr(entity, spec.parent_field)

    def children(self, kind: "str | EntityKind", entity) -> list:
        spec = get_kind_spec(kind)
        return self.find_all(spec.kind, getattr(spec.model, spec.parent_field) == entity.id)

    def roots(self, kind: "str | EntityKind") -> list:
        spec = get_kind_spec(kind)
        return self.find_all(spec.kind, getattr(spec.model, spec.parent_field).is_(None))

    def positions_in_departments(self, department_ids: Iterable[int]) -> list[Position]:
        return self.find_all(EntityKind.POSITION, Position.department_id.in_(list(department_ids)))

    def employees_in_departments(self, department_ids: Iterable[int]) -> list[Employee]:
        ids = list(department_ids)
        stmt = (
            self._live(EntityKind.EMPLOYEE)
            .join(Position, Employee.position_id == Position.id)
            .where(Position.department_id.in_(ids), Position.deleted_at.is_(None))
            .order_by(Employee.id)
        )
        return list(self.session.scalars(stmt))

    def employees_in_positions(self, position_ids: Iterable[int]) -> list[Employee]:
        return self.find_all(EntityKind.EMPLOYEE, Employee.position_id.in_(list(position_ids)))

    def department_id_of_employee(self, employee) -> int | None:
        position = self.find(EntityKind.POSITION, employee.position_id, include_deleted=True)
        return position.department_id if position is not None else None

    def dependents(self, kind: "str | EntityKind", entity) -> dict[str, list[int]]:
        """Live dependents that block deletion, keyed by relation name."""
        spec = get_kind_spec(kind)
        found: dict[str, list[int]] = {}
        if spec.kind is EntityKind.DEPARTMENT:
            found["sub_departments"] = [d.id for d in self.children(spec.kind, entity)]
            found["positions"] = [p.id for p in self.positions_in_departments([entity.id])]
            found["employees"] = [e.id for e in self.employees_in_departments([entity.id])]
        elif spec.kind is EntityKind.POSITION:
            found["subordinate_positions"] = [p.id for p in self.children(spec.kind, entity)]
            found["employees"] = [e.id for e in self.employees_in_positions([entity.id])]
        else:
            found["subordinates"] = [e.id for e in self.children(spec.kind, entity)]
            found["managed_departments"] = [
                d.id for d in self.find_all(EntityKind.DEPARTMENT, Department.manager_id == entity.id)
            ]
        return {name: ids for name, ids in found.items() if ids}

    # --- Writes ---

    def save(self, entity) -> None:
        """Stage and flush ``entity``.

        Raises:
            ValidationFailed: If the database rejects the row.
        """
        self.session.add(entity)
        try:
            self.session.flush()
        except IntegrityError as e:
            logger.warning(f"Integrity error saving {entity!r}: {e.orig}")
            raise ValidationFailed(
                [FieldError(field="base", code="integrity", message=str(e.orig))]
            ) from e

    def soft_delete(self, kind: "str | EntityKind", entity) -> None:
        """Tombstone ``entity`` unless it still has live dependents.

        Raises:
            DependentRecordsExist: If any live dependent remains.
        """
        spec = get_kind_spec(kind)
        blocking = self.dependents(spec.kind, entity)
        if blocking:
            names = ", ".join(sorted(blocking))
            raise DependentRecordsExist(
                f"Cannot delete {spec.kind.value} {entity.id} with live dependents: {names}",
                dependents=blocking,
            )
        entity.mark_deleted()
        self.session.flush()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back on any exception."""
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
