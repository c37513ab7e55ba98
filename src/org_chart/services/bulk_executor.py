"""Bounded batch create / update / delete with configurable atomicity.

Pre-flight runs before anything is written:

(a) size limit, checked before any storage access;
(b) required fields on create;
(c) unique fields within the batch and against live rows;
(d) every referenced id, one existence query per referenced kind;
(e) live dependents of delete targets.

Limit and missing references are fatal to the whole batch. Everything else
is reported per record. In atomic mode any failure means nothing is
persisted; in best-effort mode each record commits on its own.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .change_events import Operation
from .entity_service import HierarchyService, StagedChange
from .entity_validation import normalize_params
from .errors import (
    AccessDenied,
    BatchLimitExceeded,
    DependentRecordsExist,
    DuplicateValue,
    EntityNotFound,
    FieldError,
    InvalidValue,
    MissingRequiredField,
    ReferencedEntityNotFound,
    ValidationFailed,
)
from .hierarchy_store import EntityKind, HierarchyStore, get_kind_spec
from .serializers import entity_to_dict

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


@dataclass
class RecordFailure:
    """Why one submitted record was not persisted."""

    index: int
    record: Any
    errors: list[FieldError]

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "record": self.record,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class BatchResult:
    kind: EntityKind
    operation: Operation
    atomic: bool
    succeeded: list = field(default_factory=list)
    failed: list[RecordFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "entity_type": self.kind.value,
            "operation": self.operation.value,
            "atomic": self.atomic,
            "succeeded": [entity_to_dict(self.kind, e) for e in self.succeeded],
            "failed": [f.to_dict() for f in self.failed],
        }


@dataclass
class _Prepared:
    index: int
    record: Any
    target_id: Any = None
    changes: dict = field(default_factory=dict)
    params: dict = field(default_factory=dict)
    errors: list[FieldError] = field(default_factory=list)


class _AtomicAbort(Exception):
    def __init__(self, failure: RecordFailure):
        super().__init__(f"record {failure.index} failed")
        self.failure = failure


class BulkBatchExecutor:
    """Runs create / update / delete over a bounded list of records."""

    def __init__(
        self,
        store: HierarchyStore,
        service: HierarchyService,
        limit: int = DEFAULT_LIMIT,
        atomic: bool = True,
    ):
        self.store = store
        self.service = service
        self.limit = limit
        self.atomic = atomic

    def execute(
        self,
        kind: "str | EntityKind",
        operation: "str | Operation",
        records: list,
        atomic: bool | None = None,
        limit: int | None = None,
        authorized: bool = True,
    ) -> BatchResult:
        """Execute one batch.

        Args:
            kind: Entity kind every record belongs to
            operation: create, update or delete
            records: Parameter maps (create), maps with an ``id`` (update),
                ids or maps with an ``id`` (delete)
            atomic: Override the configured mode
            limit: Override the configured size cap
            authorized: Caller's already-resolved mutate decision

        Raises:
            AccessDenied: If ``authorized`` is False.
            BatchLimitExceeded: If the batch is larger than the limit.
            ReferencedEntityNotFound: If any referenced id is missing.
        """
        spec = get_kind_spec(kind)
        operation = Operation.parse(operation)
        atomic = self.atomic if atomic is None else atomic
        limit = self.limit if limit is None else limit
        records = list(records or [])

        if not authorized:
            raise AccessDenied(f"Not allowed to {operation.value} {spec.kind.value}")
        if len(records) > limit:
            logger.warning(f"Rejected {operation.value} batch of {len(records)} {spec.kind.value} records (limit {limit})")
            raise BatchLimitExceeded(len(records), limit)

        result = BatchResult(kind=spec.kind, operation=operation, atomic=atomic)
        if not records:
            return result

        prepared = [self._prepare(spec.kind, operation, i, r) for i, r in enumerate(records)]
        if operation is Operation.CREATE:
            self._check_required(spec.kind, prepared)
        if operation is not Operation.DELETE:
            self._check_uniqueness(spec.kind, prepared)
        self._check_references(spec.kind, operation, prepared)
        if operation is Operation.DELETE:
            self._check_dependents(spec.kind, prepared)

        for item in prepared:
            if item.errors:
                result.failed.append(RecordFailure(item.index, item.record, item.errors))

        if atomic:
            self._run_atomic(spec.kind, operation, prepared, result)
        else:
            self._run_best_effort(spec.kind, operation, prepared, result)

        logger.info(
            f"Batch {operation.value} {spec.kind.value} ({'atomic' if atomic else 'best-effort'}): "
            f"{len(result.succeeded)} succeeded, {len(result.failed)} failed"
        )
        return result

    # --- convenience batches ---

    def transfer_employees(self, employee_ids: list, position_id: int, **options) -> BatchResult:
        """Move employees to a new position; managers follow the position default."""
        records = [{"id": i, "position_id": position_id} for i in employee_ids]
        return self.execute(EntityKind.EMPLOYEE, Operation.UPDATE, records, **options)

    def assign_manager(self, employee_ids: list, manager_id: int, **options) -> BatchResult:
        """Point every listed employee at ``manager_id``."""
        if manager_id in employee_ids:
            raise InvalidValue("An employee cannot be their own manager", field="manager_id")
        records = [{"id": i, "manager_id": manager_id} for i in employee_ids]
        return self.execute(EntityKind.EMPLOYEE, Operation.UPDATE, records, **options)

    def transfer_positions(self, position_ids: list, department_id: int, **options) -> BatchResult:
        """Move positions to another department."""
        records = [{"id": i, "department_id": department_id} for i in position_ids]
        return self.execute(EntityKind.POSITION, Operation.UPDATE, records, **options)

    # --- pre-flight ---

    def _prepare(self, kind: EntityKind, operation: Operation, index: int, record: Any) -> _Prepared:
        item = _Prepared(index=index, record=record)
        if operation is Operation.DELETE and not isinstance(record, dict):
            record = {"id": record}
        if not isinstance(record, dict):
            item.errors.append(InvalidValue("record must be an object", field="base").to_field_error())
            return item

        if operation is not Operation.CREATE:
            target_id = record.get("id")
            try:
                item.target_id = int(target_id) if target_id is not None else None
            except (TypeError, ValueError):
                item.errors.append(InvalidValue("must be an integer", field="id").to_field_error())
                return item
            if item.target_id is None:
                item.errors.append(MissingRequiredField("can't be blank", field="id").to_field_error())
                return item

        if operation is not Operation.DELETE:
            item.params = {k: v for k, v in record.items() if k != "id"}
            item.changes, errors = normalize_params(kind, item.params)
            item.errors.extend(errors)
        return item

    def _check_references(self, kind: EntityKind, operation: Operation, prepared: list[_Prepared]) -> None:
        spec = get_kind_spec(kind)
        wanted: dict[EntityKind, list] = {}
        for item in prepared:
            if item.target_id is not None:
                wanted.setdefault(kind, []).append(item.target_id)
            for name, target_kind in spec.references.items():
                value = item.changes.get(name)
                if value is not None:
                    wanted.setdefault(target_kind, []).append(value)

        for target_kind, ids in wanted.items():
            missing = self.store.exists_all(target_kind, ids)
            if missing:
                logger.warning(f"Batch {operation.value} {kind.value} references missing {target_kind.value} ids {missing}")
                raise ReferencedEntityNotFound(target_kind.value, missing)

    def _check_required(self, kind: EntityKind, prepared: list[_Prepared]) -> None:
        spec = get_kind_spec(kind)
        for item in prepared:
            for name in spec.required_fields:
                value = item.changes.get(name)
                if value is None and not any(e.field == name for e in item.errors):
                    item.errors.append(MissingRequiredField("can't be blank", field=name).to_field_error())

    def _check_uniqueness(self, kind: EntityKind, prepared: list[_Prepared]) -> None:
        spec = get_kind_spec(kind)
        for name in spec.unique_fields:
            insensitive = name in spec.case_insensitive_fields

            def normalise(value):
                return value.lower() if insensitive and isinstance(value, str) else value

            seen: dict[Any, int] = {}
            candidates = []
            for item in prepared:
                value = item.changes.get(name)
                if value is None:
                    continue
                key = normalise(value)
                if key in seen:
                    item.errors.append(DuplicateValue(
                        f"duplicates record {seen[key]} in this batch", field=name
                    ).to_field_error())
                    continue
                seen[key] = item.index
                candidates.append(item)

            if not candidates:
                continue
            taken = self.store.existing_values(
                kind,
                name,
                [item.changes[name] for item in candidates],
                exclude_ids=[item.target_id for item in candidates],
            )
            for item in candidates:
                if normalise(item.changes[name]) in taken:
                    item.errors.append(DuplicateValue("has already been taken", field=name).to_field_error())

    def _check_dependents(self, kind: EntityKind, prepared: list[_Prepared]) -> None:
        for item in prepared:
            if item.errors or item.target_id is None:
                continue
            entity = self.store.find(kind, item.target_id)
            if entity is None:
                continue
            blocking = self.store.dependents(kind, entity)
            if blocking:
                names = ", ".join(sorted(blocking))
                item.errors.append(DependentRecordsExist(
                    f"has live dependents: {names}", dependents=blocking
                ).to_field_error())

    # --- execution ---

    def _stage(self, kind: EntityKind, operation: Operation, item: _Prepared) -> StagedChange:
        if operation is Operation.CREATE:
            return self.service.stage_create(kind, item.params)
        if operation is Operation.UPDATE:
            return self.service.stage_update(kind, item.target_id, item.params)
        return self.service.stage_delete(kind, item.target_id)

    def _failure(self, item: _Prepared, error: Exception) -> RecordFailure:
        if isinstance(error, ValidationFailed):
            errors = error.field_errors
        elif isinstance(error, DependentRecordsExist):
            errors = [error.to_field_error()]
        else:
            errors = [FieldError(field="id", code="not_found", message=str(error))]
        return RecordFailure(item.index, item.record, errors)

    def _run_atomic(self, kind: EntityKind, operation: Operation, prepared: list[_Prepared], result: BatchResult) -> None:
        if result.failed:
            return
        staged: list[StagedChange] = []
        try:
            with self.store.transaction():
                for item in prepared:
                    try:
                        staged.append(self._stage(kind, operation, item))
                    except (ValidationFailed, DependentRecordsExist, EntityNotFound) as e:
                        raise _AtomicAbort(self._failure(item, e)) from e
        except _AtomicAbort as abort:
            result.failed.append(abort.failure)
            logger.info(f"Atomic {operation.value} {kind.value} batch rolled back at record {abort.failure.index}")
            return
        result.succeeded.extend(s.entity for s in staged)
        self.service.publish(staged)

    def _run_best_effort(self, kind: EntityKind, operation: Operation, prepared: list[_Prepared], result: BatchResult) -> None:
        for item in prepared:
            if item.errors:
                continue
            try:
                with self.store.transaction():
                    staged = self._stage(kind, operation, item)
            except (ValidationFailed, DependentRecordsExist, EntityNotFound) as e:
                result.failed.append(self._failure(item, e))
                continue
            result.succeeded.append(staged.entity)
            self.service.publish([staged])
        result.failed.sort(key=lambda f: f.index)
