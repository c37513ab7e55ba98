"""Access decisions for the HTTP surface.

Resources and actions are closed enums; each resource kind has its own
evaluator. The default policy allows everything, matching a deployment
where access is controlled at the network layer. ``access.read_only``
and ``access.deny`` in config narrow it.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from .hierarchy_store import EntityKind

logger = logging.getLogger(__name__)


class ResourceKind(str, enum.Enum):
    DEPARTMENT = "department"
    POSITION = "position"
    EMPLOYEE = "employee"
    CACHE = "cache"

    @classmethod
    def for_entity(cls, kind: "str | EntityKind") -> "ResourceKind":
        return cls(EntityKind.parse(kind).value)


class ActionKind(str, enum.Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BULK = "bulk"

    @property
    def mutates(self) -> bool:
        return self is not ActionKind.VIEW


@dataclass(frozen=True)
class AccessRequest:
    resource: ResourceKind
    action: ActionKind
    entity_id: int | None = None


Evaluator = Callable[[AccessRequest], bool]


class AccessPolicy:
    """Resolves (resource, action) pairs to an allow/deny decision."""

    def __init__(self, read_only: bool = False, deny: dict | None = None):
        self.read_only = read_only
        self.deny = {
            ResourceKind(resource): {ActionKind(a) for a in actions}
            for resource, actions in (deny or {}).items()
        }
        self._evaluators: dict[ResourceKind, Evaluator] = {
            ResourceKind.DEPARTMENT: self._evaluate_department,
            ResourceKind.POSITION: self._evaluate_position,
            ResourceKind.EMPLOYEE: self._evaluate_employee,
            ResourceKind.CACHE: self._evaluate_cache,
        }

    @classmethod
    def from_config(cls, access_config: dict) -> "AccessPolicy":
        return cls(
            read_only=bool(access_config.get("read_only", False)),
            deny=access_config.get("deny") or {},
        )

    def allows(self, resource: ResourceKind, action: ActionKind, entity_id: int | None = None) -> bool:
        request = AccessRequest(ResourceKind(resource), ActionKind(action), entity_id)
        allowed = self._evaluators[request.resource](request)
        if not allowed:
            logger.info(f"Access denied: {request.action.value} on {request.resource.value}")
        return allowed

    def _denied(self, request: AccessRequest) -> bool:
        return request.action in self.deny.get(request.resource, set())

    def _hierarchy_allows(self, request: AccessRequest) -> bool:
        if request.action.mutates and self.read_only:
            return False
        return not self._denied(request)

    def _evaluate_department(self, request: AccessRequest) -> bool:
        return self._hierarchy_allows(request)

    def _evaluate_position(self, request: AccessRequest) -> bool:
        return self._hierarchy_allows(request)

    def _evaluate_employee(self, request: AccessRequest) -> bool:
        return self._hierarchy_allows(request)

    def _evaluate_cache(self, request: AccessRequest) -> bool:
        # Cache maintenance never alters data, so read-only mode does not apply
        if request.action not in (ActionKind.VIEW, ActionKind.DELETE):
            return False
        return not self._denied(request)
