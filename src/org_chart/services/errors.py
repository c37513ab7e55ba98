"""Error taxonomy for hierarchy mutations, batch execution and caching.

Field-level invariant failures (CycleError, LevelError, and the attribute
checks) are converted to FieldError entries at the entity boundary. The
remaining errors are raised to the caller.
"""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class FieldError:
    """A validation failure attached to one field of one record."""

    field: str
    code: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class OrgChartError(Exception):
    """Base class for all hierarchy errors."""

    code = "error"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class FieldInvariantError(OrgChartError):
    """An invariant violation that belongs to a single field."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_field_error(self, field: str | None = None) -> FieldError:
        return FieldError(field=field or self.field or "base", code=self.code, message=self.message)


class CycleError(FieldInvariantError):
    """The proposed parent would make an entity its own ancestor."""

    code = "cycle"


class LevelError(FieldInvariantError):
    """A child (or report) does not rank strictly below its parent (or manager)."""

    code = "level"


class MissingRequiredField(FieldInvariantError):
    code = "required"


class DuplicateValue(FieldInvariantError):
    code = "duplicate"


class InvalidValue(FieldInvariantError):
    code = "invalid"


class DependentRecordsExist(FieldInvariantError):
    """The entity still has live dependents and cannot be deleted."""

    code = "dependents"

    def __init__(self, message: str, dependents: dict[str, list[int]] | None = None):
        super().__init__(message, field="id")
        self.details = dependents or {}


class ReferencedEntityNotFound(OrgChartError):
    """One or more referenced ids do not resolve to live records."""

    code = "not_found"

    def __init__(self, entity_type: str, missing_ids: list[int]):
        ids = ", ".join(str(i) for i in missing_ids)
        super().__init__(
            f"{entity_type} not found with ids: {ids}",
            details={"entity_type": entity_type, "missing_ids": list(missing_ids)},
        )
        self.entity_type = entity_type
        self.missing_ids = list(missing_ids)


class BatchLimitExceeded(OrgChartError):
    code = "batch_limit_exceeded"

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Batch size {size} exceeds limit of {limit}",
            details={"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class ValidationFailed(OrgChartError):
    """A record failed one or more field validations."""

    code = "validation_failed"

    def __init__(self, field_errors: list[FieldError], message: str = "Validation failed"):
        super().__init__(message, details=[e.to_dict() for e in field_errors])
        self.field_errors = list(field_errors)


class EntityNotFound(OrgChartError):
    code = "entity_not_found"

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class AccessDenied(OrgChartError):
    code = "access_denied"


class HierarchyCorrupted(OrgChartError):
    """A traversal revisited a node or exceeded the configured depth."""

    code = "hierarchy_corrupted"


class CacheBackendError(Exception):
    """Raised by cache backends; absorbed by the CacheCoordinator."""
