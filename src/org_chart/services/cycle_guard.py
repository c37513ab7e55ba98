"""Cycle detection for self-referencing parent pointers."""

import logging
from typing import Callable, Hashable, Optional

from .errors import CycleError

logger = logging.getLogger(__name__)

ParentLookup = Callable[[Hashable], Optional[Hashable]]


def validate_parent(
    entity_id: Hashable | None,
    proposed_parent_id: Hashable | None,
    parent_of: ParentLookup,
    field: str = "parent_id",
) -> None:
    """Reject a parent assignment that would close a cycle.

    Walks the parent chain upward from ``proposed_parent_id`` using
    ``parent_of`` (which returns ``None`` at a root or for an unknown id).
    The walk keeps an explicit visited set, so a chain that is already
    corrupt terminates instead of looping.

    Args:
        entity_id: Id of the entity being re-parented (None for a new record)
        proposed_parent_id: New parent id, or None to make the entity a root
        parent_of: Read function mapping an id to its parent id
        field: Field name attached to the resulting error

    Raises:
        CycleError: If the proposed parent is the entity itself, one of its
            descendants, or sits on a chain that already loops.
    """
    if proposed_parent_id is None:
        return

    if entity_id is not None and proposed_parent_id == entity_id:
        raise CycleError("circular hierarchy is not allowed: entity cannot be its own parent", field=field)

    visited: set = set()
    current = proposed_parent_id
    while current is not None:
        if (entity_id is not None and current == entity_id) or current in visited:
            logger.debug(
                "Cycle detected re-parenting %s under %s (at node %s)",
                entity_id, proposed_parent_id, current,
            )
            raise CycleError("circular hierarchy is not allowed", field=field)
        visited.add(current)
        current = parent_of(current)


class CycleGuard:
    """Binds ``validate_parent`` to one parent lookup and field name."""

    def __init__(self, parent_of: ParentLookup, field: str = "parent_id"):
        self.parent_of = parent_of
        self.field = field

    def validate(self, entity_id: Hashable | None, proposed_parent_id: Hashable | None) -> None:
        validate_parent(entity_id, proposed_parent_id, self.parent_of, field=self.field)
