"""Cached read side: single records and aggregate hierarchy views.

Every read goes through the CacheCoordinator; on a miss (or with
``force=True``) the view is materialised by TreeIndex from the store.
TTLs come from ``cache.ttl`` in config.
"""

import logging
from typing import Any

from .cache_coordinator import ALL, VIEWS, CacheCoordinator, cache_key
from .errors import InvalidValue
from .hierarchy_store import EntityKind, HierarchyStore
from .serializers import employee_summary, entity_to_dict
from .tree_index import TreeIndex

logger = logging.getLogger(__name__)

# Which views each kind supports
KIND_VIEWS = {
    EntityKind.DEPARTMENT: ("tree", "org_chart", "hierarchy", "count"),
    EntityKind.POSITION: ("tree", "hierarchy", "count"),
    EntityKind.EMPLOYEE: ("tree", "hierarchy", "subordinates"),
}


class HierarchyViews:
    """Read-through cached views over the live hierarchy."""

    def __init__(self, store: HierarchyStore, tree_index: TreeIndex, cache: CacheCoordinator):
        self.store = store
        self.tree_index = tree_index
        self.cache = cache

    def record(self, kind: "str | EntityKind", entity_id: int, force: bool = False) -> dict:
        """A single record. Soft-deleted rows stay addressable by id."""
        kind = EntityKind.parse(kind)
        return self.cache.fetch(
            cache_key(kind, entity_id),
            self.cache.ttl_for(None),
            lambda: entity_to_dict(kind, self.store.get(kind, entity_id, include_deleted=True)),
            force=force,
        )

    def view(self, kind: "str | EntityKind", entity_id: int, view: str, force: bool = False) -> Any:
        """Dispatch to a named view of one entity."""
        kind = EntityKind.parse(kind)
        if view not in VIEWS or view not in KIND_VIEWS[kind]:
            raise InvalidValue(f"Unsupported view '{view}' for {kind.value}", field="view")
        return self.cache.fetch(
            cache_key(kind, entity_id, view),
            self.cache.ttl_for(view),
            lambda: self._materialise(kind, entity_id, view),
            force=force,
        )

    def department_tree(self, force: bool = False) -> list[dict]:
        """Nested tree of every live root department."""
        return self.cache.fetch(
            cache_key(EntityKind.DEPARTMENT, ALL, "tree"),
            self.cache.ttl_for("tree"),
            lambda: self.tree_index.forest(EntityKind.DEPARTMENT),
            force=force,
        )

    def org_chart(self, department_id: int, force: bool = False) -> dict:
        return self.view(EntityKind.DEPARTMENT, department_id, "org_chart", force=force)

    def hierarchy(self, kind: "str | EntityKind", entity_id: int, force: bool = False) -> dict:
        return self.view(kind, entity_id, "hierarchy", force=force)

    def subordinates(self, employee_id: int, force: bool = False) -> dict:
        return self.view(EntityKind.EMPLOYEE, employee_id, "subordinates", force=force)

    def total_count(self, kind: "str | EntityKind", force: bool = False) -> int:
        """Number of live rows of ``kind``."""
        kind = EntityKind.parse(kind)
        return self.cache.fetch(
            cache_key(kind, ALL, "count"),
            self.cache.ttl_for("count"),
            lambda: self.store.count(kind),
            force=force,
        )

    # --- loaders ---

    def _materialise(self, kind: EntityKind, entity_id: int, view: str) -> Any:
        entity = self.store.get(kind, entity_id)
        logger.debug(f"Materialising {kind.value} {entity_id} {view}")
        if view == "tree":
            return self.tree_index.tree(kind, entity)
        if view == "org_chart":
            return self.tree_index.org_chart(entity)
        if view == "hierarchy":
            return {
                "ancestors": [entity_to_dict(kind, a) for a in self.tree_index.ancestors(kind, entity)],
                "entity": entity_to_dict(kind, entity),
                "descendants": [entity_to_dict(kind, d) for d in self.tree_index.descendants(kind, entity)],
            }
        if view == "subordinates":
            return {
                "direct": [employee_summary(e) for e in self.store.children(kind, entity)],
                "all": [employee_summary(e) for e in self.tree_index.descendants(kind, entity)],
            }
        return self._counts(kind, entity)

    def _counts(self, kind: EntityKind, entity) -> dict:
        if kind is EntityKind.DEPARTMENT:
            department_ids = [d.id for d in self.tree_index.subtree(kind, entity)]
            return {
                "sub_departments": len(department_ids) - 1,
                "positions": len(self.store.positions_in_departments(department_ids)),
                "employees": len(self.store.employees_in_departments(department_ids)),
            }
        position_ids = [p.id for p in self.tree_index.subtree(kind, entity)]
        return {
            "subordinate_positions": len(position_ids) - 1,
            "employees": len(self.store.employees_in_positions(position_ids)),
        }
