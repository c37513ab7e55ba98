"""Cascading cache invalidation driven by ChangeEvents.

For a committed change to entity E the subscriber drops:

- E's record key and all of E's view keys;
- the keys of every ancestor on E's current and previous parent chains;
- the ``hierarchy`` view of every descendant (it embeds E);
- scope keys: the department owning a position; an employee's position
  and department, current and previous, each with its ancestors; the
  departments an employee manages;
- the kind's collection views (``{kind}:all:*``).

Reads happen after commit, so "current" means the committed state.
"""

import logging
from dataclasses import dataclass, field

from ..models import Department
from .cache_coordinator import ALL, CacheCoordinator, cache_key, view_prefix
from .change_events import ChangeEvent
from .errors import HierarchyCorrupted
from .hierarchy_store import EntityKind, HierarchyStore
from .tree_index import TreeIndex

logger = logging.getLogger(__name__)


@dataclass
class InvalidationPlan:
    """Keys and prefixes one event invalidates (un-namespaced)."""

    entities: set[tuple[str, int]] = field(default_factory=set)
    keys: set[str] = field(default_factory=set)
    prefixes: set[str] = field(default_factory=set)

    def add_entity(self, kind: EntityKind, entity_id) -> None:
        if entity_id is not None:
            self.entities.add((kind.value, entity_id))

    def all_keys(self) -> set[str]:
        keys = set(self.keys)
        keys.update(cache_key(kind, entity_id) for kind, entity_id in self.entities)
        return keys

    def all_prefixes(self) -> set[str]:
        prefixes = set(self.prefixes)
        prefixes.update(view_prefix(kind, entity_id) for kind, entity_id in self.entities)
        return prefixes


class CacheInvalidationSubscriber:
    """ChangeEventBus subscriber that applies the invalidation cascade."""

    def __init__(self, cache: CacheCoordinator, store: HierarchyStore, tree_index: TreeIndex):
        self.cache = cache
        self.store = store
        self.tree_index = tree_index

    def __call__(self, event: ChangeEvent) -> None:
        plan = self.plan(event)
        for key in sorted(plan.all_keys()):
            self.cache.invalidate(key)
        for prefix in sorted(plan.all_prefixes()):
            self.cache.invalidate_by_prefix(prefix)
        logger.debug(
            f"Invalidated caches for {event.entity_type} {event.entity_id} "
            f"({event.operation.value}): {len(plan.entities)} entities"
        )

    def plan(self, event: ChangeEvent) -> InvalidationPlan:
        kind = EntityKind.parse(event.entity_type)
        plan = InvalidationPlan()
        plan.add_entity(kind, event.entity_id)
        plan.prefixes.add(f"{kind.value}:{ALL}:")

        entity = self.store.find(kind, event.entity_id, include_deleted=True)
        try:
            if entity is not None and entity.is_live:
                # Every descendant's hierarchy view embeds this entity as an ancestor
                for descendant in self.tree_index.descendants(kind, entity):
                    plan.keys.add(cache_key(kind, descendant.id, "hierarchy"))
            if kind is EntityKind.DEPARTMENT:
                self._plan_department(event, entity, plan)
            elif kind is EntityKind.POSITION:
                self._plan_position(event, entity, plan)
            else:
                self._plan_employee(event, entity, plan)
        except HierarchyCorrupted:
            # The chain cannot be enumerated; drop every view of the kind
            logger.warning(f"Falling back to prefix invalidation for {kind.value} {event.entity_id}")
            plan.prefixes.add(f"{kind.value}:")
            if kind is not EntityKind.DEPARTMENT:
                plan.prefixes.add(f"{EntityKind.DEPARTMENT.value}:")
        return plan

    # --- helpers ---

    def _values(self, event: ChangeEvent, entity, field_name: str) -> list:
        """Current and (if changed) previous value of ``field_name``."""
        values = []
        if entity is not None:
            values.append(getattr(entity, field_name))
        if field_name in event.changed_fields:
            values.append(event.previous_value(field_name))
        return [v for i, v in enumerate(values) if v is not None and v not in values[:i]]

    def _add_chain(self, kind: EntityKind, start_id, plan: InvalidationPlan) -> None:
        """Add ``start_id`` and every ancestor of it."""
        plan.add_entity(kind, start_id)
        start = self.store.find(kind, start_id)
        if start is None:
            return
        for ancestor in self.tree_index.ancestors(kind, start):
            plan.add_entity(kind, ancestor.id)

    def _add_department_scope(self, department_ids: list, plan: InvalidationPlan) -> None:
        for department_id in department_ids:
            self._add_chain(EntityKind.DEPARTMENT, department_id, plan)
        if department_ids:
            plan.prefixes.add(f"{EntityKind.DEPARTMENT.value}:{ALL}:")

    # --- per kind ---

    def _plan_department(self, event: ChangeEvent, entity, plan: InvalidationPlan) -> None:
        for parent_id in self._values(event, entity, "parent_department_id"):
            self._add_chain(EntityKind.DEPARTMENT, parent_id, plan)

    def _plan_position(self, event: ChangeEvent, entity, plan: InvalidationPlan) -> None:
        for parent_id in self._values(event, entity, "parent_position_id"):
            self._add_chain(EntityKind.POSITION, parent_id, plan)

        self._add_department_scope(self._values(event, entity, "department_id"), plan)

    def _plan_employee(self, event: ChangeEvent, entity, plan: InvalidationPlan) -> None:
        for manager_id in self._values(event, entity, "manager_id"):
            self._add_chain(EntityKind.EMPLOYEE, manager_id, plan)

        department_ids = []
        for position_id in self._values(event, entity, "position_id"):
            self._add_chain(EntityKind.POSITION, position_id, plan)
            position = self.store.find(EntityKind.POSITION, position_id, include_deleted=True)
            if position is not None and position.department_id not in department_ids:
                department_ids.append(position.department_id)

        if entity is not None:
            for department in self.store.find_all(
                EntityKind.DEPARTMENT, Department.manager_id == entity.id
            ):
                if department.id not in department_ids:
                    department_ids.append(department.id)
            # Org charts render each employee's manager, possibly across departments
            for report in self.store.children(EntityKind.EMPLOYEE, entity):
                department_id = self.store.department_id_of_employee(report)
                if department_id is not None and department_id not in department_ids:
                    department_ids.append(department_id)

        self._add_department_scope(department_ids, plan)
