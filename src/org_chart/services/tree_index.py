"""Ancestor, descendant and combined views over a hierarchical entity.

TreeIndex is stateless: it walks whatever reader it is given (normally a
HierarchyStore) and never caches. Two conventions hold for every kind:

- ``ancestors`` are returned root-first, ending with the direct parent.
- ``descendants`` are a pre-order depth-first flattening; siblings follow
  the reader's order (by id for the store).

Every walk tracks visited ids and a depth bound, so corrupt data (a loop
introduced outside this system, or an absurdly deep chain) raises
HierarchyCorrupted instead of spinning.
"""

import logging
from typing import Any, Protocol

from .errors import HierarchyCorrupted
from .hierarchy_store import EntityKind
from .serializers import employee_summary, entity_to_dict, position_to_dict

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


class HierarchyReader(Protocol):
    """Read interface TreeIndex walks over."""

    def find(self, kind: EntityKind, entity_id: Any) -> Any: ...

    def parent(self, kind: EntityKind, entity: Any) -> Any: ...

    def children(self, kind: EntityKind, entity: Any) -> list: ...

    def roots(self, kind: EntityKind) -> list: ...

    def positions_in_departments(self, department_ids: list) -> list: ...

    def employees_in_departments(self, department_ids: list) -> list: ...


class TreeIndex:
    """Computes hierarchy views from a reader."""

    def __init__(self, reader: HierarchyReader, max_depth: int = DEFAULT_MAX_DEPTH):
        self.reader = reader
        self.max_depth = max_depth

    def _corrupted(self, kind: EntityKind, entity_id: Any, reason: str) -> HierarchyCorrupted:
        logger.error(f"Hierarchy corruption in {kind.value} {entity_id}: {reason}")
        return HierarchyCorrupted(
            f"{kind.value} hierarchy at {entity_id} is corrupt: {reason}",
            details={"entity_type": kind.value, "entity_id": entity_id},
        )

    def ancestors(self, kind: EntityKind, entity) -> list:
        """Parent chain of ``entity``, root-first."""
        kind = EntityKind.parse(kind)
        chain = []
        seen = {entity.id}
        current = self.reader.parent(kind, entity)
        while current is not None:
            if current.id in seen:
                raise self._corrupted(kind, entity.id, f"parent chain revisits {current.id}")
            if len(chain) >= self.max_depth:
                raise self._corrupted(kind, entity.id, f"parent chain deeper than {self.max_depth}")
            seen.add(current.id)
            chain.append(current)
            current = self.reader.parent(kind, current)
        chain.reverse()
        return chain

    def descendants(self, kind: EntityKind, entity) -> list:
        """All entities below ``entity`` in pre-order."""
        kind = EntityKind.parse(kind)
        result = []
        seen = {entity.id}
        stack = [(child, 1) for child in reversed(self.reader.children(kind, entity))]
        while stack:
            node, depth = stack.pop()
            if node.id in seen:
                raise self._corrupted(kind, entity.id, f"subtree revisits {node.id}")
            if depth > self.max_depth:
                raise self._corrupted(kind, entity.id, f"subtree deeper than {self.max_depth}")
            seen.add(node.id)
            result.append(node)
            stack.extend((child, depth + 1) for child in reversed(self.reader.children(kind, node)))
        return result

    def subtree(self, kind: EntityKind, entity) -> list:
        """``entity`` followed by its descendants."""
        return [entity] + self.descendants(kind, entity)

    def hierarchy(self, kind: EntityKind, entity) -> list:
        """Ancestors (root-first), then ``entity``, then its descendants."""
        return self.ancestors(kind, entity) + [entity] + self.descendants(kind, entity)

    def tree(self, kind: EntityKind, entity) -> dict:
        """Nested rendering of ``entity`` and everything below it."""
        kind = EntityKind.parse(kind)
        seen: set = set()

        def build(node, depth: int) -> dict:
            if node.id in seen:
                raise self._corrupted(kind, entity.id, f"subtree revisits {node.id}")
            if depth > self.max_depth:
                raise self._corrupted(kind, entity.id, f"subtree deeper than {self.max_depth}")
            seen.add(node.id)
            rendered = entity_to_dict(kind, node)
            if kind is EntityKind.DEPARTMENT:
                rendered["manager"] = employee_summary(
                    self.reader.find(EntityKind.EMPLOYEE, node.manager_id)
                )
            rendered["children"] = [
                build(child, depth + 1) for child in self.reader.children(kind, node)
            ]
            return rendered

        return build(entity, 0)

    def forest(self, kind: EntityKind) -> list[dict]:
        """Nested trees for every live root of ``kind``."""
        kind = EntityKind.parse(kind)
        return [self.tree(kind, root) for root in self.reader.roots(kind)]

    def org_chart(self, department) -> dict:
        """Department with its positions, employees and direct sub-departments."""
        positions = self.reader.positions_in_departments([department.id])
        employees = self.reader.employees_in_departments([department.id])

        positions_by_id = {p.id: p for p in positions}
        employees_by_id = {e.id: e for e in employees}
        employee_ids_by_position: dict[int, list[int]] = {p.id: [] for p in positions}
        for employee in employees:
            employee_ids_by_position.setdefault(employee.position_id, []).append(employee.id)

        rendered_employees = []
        for employee in employees:
            manager = employees_by_id.get(employee.manager_id)
            if manager is None and employee.manager_id is not None:
                manager = self.reader.find(EntityKind.EMPLOYEE, employee.manager_id)
            position = positions_by_id.get(employee.position_id)
            entry = entity_to_dict(EntityKind.EMPLOYEE, employee)
            entry["position"] = (
                {"id": position.id, "title": position.title, "level": position.level}
                if position is not None else None
            )
            entry["manager"] = employee_summary(manager)
            rendered_employees.append(entry)

        rendered_positions = []
        for position in positions:
            entry = position_to_dict(position)
            entry["employee_ids"] = employee_ids_by_position.get(position.id, [])
            rendered_positions.append(entry)

        head = entity_to_dict(EntityKind.DEPARTMENT, department)
        head["manager"] = employee_summary(
            self.reader.find(EntityKind.EMPLOYEE, department.manager_id)
        )

        return {
            "department": head,
            "positions": rendered_positions,
            "employees": rendered_employees,
            "sub_departments": [
                {"id": child.id, "name": child.name}
                for child in self.reader.children(EntityKind.DEPARTMENT, department)
            ],
        }
