"""Single-record create / update / delete for hierarchical entities.

Each public mutation runs in its own transaction and publishes one
ChangeEvent after the commit. The ``stage_*`` methods do the work without
committing so the batch executor can compose them inside its own
transaction scope.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .change_events import ChangeEvent, ChangeEventBus, Operation
from .entity_validation import EntityValidator, normalize_params
from .errors import AccessDenied, ValidationFailed
from .hierarchy_store import EntityKind, HierarchyStore, get_kind_spec

logger = logging.getLogger(__name__)


@dataclass
class StagedChange:
    """A flushed but not yet committed mutation of one entity."""

    kind: EntityKind
    entity: Any
    operation: Operation
    changed_fields: tuple[str, ...] = ()
    previous: dict = field(default_factory=dict)

    def to_event(self) -> ChangeEvent:
        return ChangeEvent(
            entity_type=self.kind.value,
            entity_id=self.entity.id,
            operation=self.operation,
            changed_fields=self.changed_fields,
            previous=dict(self.previous),
        )


class HierarchyService:
    """Validated single-record mutations with post-commit change events."""

    def __init__(self, store: HierarchyStore, validator: EntityValidator, event_bus: ChangeEventBus):
        self.store = store
        self.validator = validator
        self.event_bus = event_bus

    # --- public mutations ---

    def create(self, kind: "str | EntityKind", params: dict, authorized: bool = True):
        """Create one entity and return it."""
        self._require(authorized, "create", kind)
        with self.store.transaction():
            staged = self.stage_create(kind, params)
        self.publish([staged])
        logger.info(f"Created {staged.kind.value} {staged.entity.id}")
        return staged.entity

    def update(self, kind: "str | EntityKind", entity_id: Any, params: dict, authorized: bool = True):
        """Apply ``params`` to an existing entity and return it."""
        self._require(authorized, "update", kind)
        with self.store.transaction():
            staged = self.stage_update(kind, entity_id, params)
        if staged.changed_fields:
            self.publish([staged])
            logger.info(
                f"Updated {staged.kind.value} {staged.entity.id}: {', '.join(staged.changed_fields)}"
            )
        return staged.entity

    def delete(self, kind: "str | EntityKind", entity_id: Any, authorized: bool = True):
        """Soft-delete an entity with no live dependents."""
        self._require(authorized, "delete", kind)
        with self.store.transaction():
            staged = self.stage_delete(kind, entity_id)
        self.publish([staged])
        logger.info(f"Deleted {staged.kind.value} {staged.entity.id}")
        return staged.entity

    def publish(self, staged: list[StagedChange]) -> None:
        """Emit one ChangeEvent per staged change. Call only after commit."""
        self.event_bus.publish_all([s.to_event() for s in staged])

    # --- staging (no commit) ---

    def stage_create(self, kind: "str | EntityKind", params: dict, skip_uniqueness: bool = False) -> StagedChange:
        spec = get_kind_spec(kind)
        changes, errors = normalize_params(spec.kind, params)
        entity = spec.model()
        if not errors:
            self._default_manager(spec.kind, entity, changes, params)
            errors = self.validator.validate(
                spec.kind, entity, changes, is_new=True, skip_uniqueness=skip_uniqueness
            )
        if errors:
            raise ValidationFailed(errors)

        for name, value in changes.items():
            setattr(entity, name, value)
        self.store.save(entity)
        return StagedChange(
            kind=spec.kind,
            entity=entity,
            operation=Operation.CREATE,
            changed_fields=tuple(sorted(n for n, v in changes.items() if v is not None)),
        )

    def stage_update(
        self, kind: "str | EntityKind", entity_id: Any, params: dict, skip_uniqueness: bool = False
    ) -> StagedChange:
        spec = get_kind_spec(kind)
        entity = self.store.get(spec.kind, entity_id)
        changes, errors = normalize_params(spec.kind, params)
        changes = {n: v for n, v in changes.items() if getattr(entity, n) != v}
        if not errors:
            self._default_manager(spec.kind, entity, changes, params)
            errors = self.validator.validate(
                spec.kind, entity, changes, is_new=False, skip_uniqueness=skip_uniqueness
            )
        if errors:
            raise ValidationFailed(errors)

        previous = {name: getattr(entity, name) for name in changes}
        for name, value in changes.items():
            setattr(entity, name, value)
        if changes:
            self.store.save(entity)
        return StagedChange(
            kind=spec.kind,
            entity=entity,
            operation=Operation.UPDATE,
            changed_fields=tuple(sorted(changes)),
            previous=previous,
        )

    def stage_delete(self, kind: "str | EntityKind", entity_id: Any) -> StagedChange:
        spec = get_kind_spec(kind)
        entity = self.store.get(spec.kind, entity_id)
        self.store.soft_delete(spec.kind, entity)
        return StagedChange(
            kind=spec.kind,
            entity=entity,
            operation=Operation.DELETE,
            changed_fields=("deleted_at",),
            previous={"deleted_at": None},
        )

    # --- helpers ---

    def _require(self, authorized: bool, action: str, kind) -> None:
        if not authorized:
            kind_name = EntityKind.parse(kind).value
            logger.warning(f"Denied {action} on {kind_name}")
            raise AccessDenied(f"Not allowed to {action} {kind_name}")

    def _default_manager(self, kind: EntityKind, entity, changes: dict, params: dict) -> None:
        """Moving an employee without naming a manager reports them to the parent position's holder."""
        if kind is not EntityKind.EMPLOYEE or "manager_id" in (params or {}):
            return
        if changes.get("position_id") is None:
            return
        position = self.store.find(EntityKind.POSITION, changes["position_id"])
        if position is None or position.parent_position_id is None:
            return
        holders = [
            e for e in self.store.employees_in_positions([position.parent_position_id])
            if e.id != entity.id
        ]
        manager_id = holders[0].id if holders else None
        if manager_id != entity.manager_id:
            changes["manager_id"] = manager_id
        else:
            changes.pop("manager_id", None)
