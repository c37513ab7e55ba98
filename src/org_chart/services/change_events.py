"""Explicit post-commit change events.

Mutations publish a ChangeEvent after their transaction commits; cache policy
lives entirely in subscribers (see cache_invalidation). Nothing is published
for a rolled-back change.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Operation(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: "str | Operation") -> "Operation":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class ChangeEvent:
    """One committed mutation of one hierarchical entity.

    ``previous`` holds the pre-mutation values of ``changed_fields`` so
    subscribers can reach the old parent chain and old scope after a move.
    """

    entity_type: str
    entity_id: int
    operation: Operation
    changed_fields: tuple[str, ...] = ()
    previous: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def previous_value(self, name: str) -> Any:
        return self.previous.get(name)


ChangeHandler = Callable[[ChangeEvent], None]


class ChangeEventBus:
    """In-process fan-out of ChangeEvents to subscribers, in subscription order."""

    def __init__(self):
        self._subscribers: list[ChangeHandler] = []
        self._lock = threading.Lock()
        self._published = 0

    def subscribe(self, handler: ChangeHandler) -> None:
        with self._lock:
            if handler not in self._subscribers:
                self._subscribers.append(handler)

    def unsubscribe(self, handler: ChangeHandler) -> bool:
        with self._lock:
            if handler in self._subscribers:
                self._subscribers.remove(handler)
                return True
            return False

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every subscriber. Returns the number that succeeded.

        A failing subscriber is logged and skipped; the mutation that produced
        the event has already committed.
        """
        with self._lock:
            subscribers = list(self._subscribers)
            self._published += 1

        delivered = 0
        for handler in subscribers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(
                    f"Change subscriber {handler!r} failed for "
                    f"{event.entity_type} {event.entity_id} ({event.operation.value})"
                )
        return delivered

    def publish_all(self, events: list[ChangeEvent]) -> int:
        return sum(self.publish(event) for event in events)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def published_count(self) -> int:
        with self._lock:
            return self._published
