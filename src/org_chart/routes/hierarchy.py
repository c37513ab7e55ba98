"""Department, position and employee API endpoints.

All handlers are thin: they resolve the access decision, hand the request
to the services in ``app.extensions`` and render the result. Hierarchy
errors propagate to the JSON error handlers registered in ``app``.
"""

import logging

from flask import Blueprint, abort, current_app, jsonify, request

from ..services.access import ActionKind, ResourceKind
from ..services.errors import AccessDenied, InvalidValue
from ..services.hierarchy_store import EntityKind
from ..services.serializers import entity_to_dict

logger = logging.getLogger(__name__)

hierarchy_bp = Blueprint("hierarchy", __name__)

_TRUE = ("1", "true", "yes")


def _kind(name: str) -> EntityKind:
    try:
        return EntityKind.parse(name)
    except InvalidValue:
        abort(404, description=f"Unknown entity type: {name}")


def _allowed(kind: EntityKind, action: ActionKind, entity_id: int | None = None) -> bool:
    policy = current_app.extensions["access_policy"]
    return policy.allows(ResourceKind.for_entity(kind), action, entity_id)


def _require_view(kind: EntityKind, entity_id: int | None = None) -> None:
    if not _allowed(kind, ActionKind.VIEW, entity_id):
        raise AccessDenied(f"Not allowed to view {kind.value}")


def _flag(value) -> bool:
    """JSON booleans as-is; strings such as "false" or "1" by name."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE
    return bool(value)


def _force() -> bool:
    return _flag(request.args.get("force", ""))


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data


# --- reads ---

@hierarchy_bp.route("/api/departments/tree", methods=["GET"])
def department_tree():
    """Nested tree of all live departments."""
    _require_view(EntityKind.DEPARTMENT)
    views = current_app.extensions["hierarchy_views"]
    return jsonify(views.department_tree(force=_force())), 200


@hierarchy_bp.route("/api/<kind_name>", methods=["GET"])
def list_entities(kind_name: str):
    """List live records of a kind."""
    kind = _kind(kind_name)
    _require_view(kind)
    store = current_app.extensions["hierarchy_store"]
    views = current_app.extensions["hierarchy_views"]
    items = [entity_to_dict(kind, e) for e in store.find_all(kind)]
    return jsonify({"items": items, "count": views.total_count(kind, force=_force())}), 200


@hierarchy_bp.route("/api/<kind_name>/<int:entity_id>", methods=["GET"])
def show_entity(kind_name: str, entity_id: int):
    kind = _kind(kind_name)
    _require_view(kind, entity_id)
    views = current_app.extensions["hierarchy_views"]
    return jsonify(views.record(kind, entity_id, force=_force())), 200


@hierarchy_bp.route("/api/<kind_name>/<int:entity_id>/<view>", methods=["GET"])
def show_view(kind_name: str, entity_id: int, view: str):
    """Aggregate view: tree, org_chart, hierarchy, subordinates or count."""
    kind = _kind(kind_name)
    _require_view(kind, entity_id)
    views = current_app.extensions["hierarchy_views"]
    try:
        result = views.view(kind, entity_id, view, force=_force())
    except InvalidValue as e:
        abort(404, description=e.message)
    return jsonify(result), 200


# --- single-record mutations ---

@hierarchy_bp.route("/api/<kind_name>", methods=["POST"])
def create_entity(kind_name: str):
    kind = _kind(kind_name)
    data = _json_body()
    service = current_app.extensions["hierarchy_service"]
    entity = service.create(kind, data, authorized=_allowed(kind, ActionKind.CREATE))
    return jsonify(entity_to_dict(kind, entity)), 201


@hierarchy_bp.route("/api/<kind_name>/<int:entity_id>", methods=["PUT", "PATCH"])
def update_entity(kind_name: str, entity_id: int):
    kind = _kind(kind_name)
    data = _json_body()
    service = current_app.extensions["hierarchy_service"]
    entity = service.update(
        kind, entity_id, data, authorized=_allowed(kind, ActionKind.UPDATE, entity_id)
    )
    return jsonify(entity_to_dict(kind, entity)), 200


@hierarchy_bp.route("/api/<kind_name>/<int:entity_id>", methods=["DELETE"])
def delete_entity(kind_name: str, entity_id: int):
    kind = _kind(kind_name)
    service = current_app.extensions["hierarchy_service"]
    entity = service.delete(kind, entity_id, authorized=_allowed(kind, ActionKind.DELETE, entity_id))
    return jsonify(entity_to_dict(kind, entity)), 200


# --- batches ---

def _batch_response(result):
    """200 when every record succeeded or the batch was best-effort, 422 for a failed atomic batch."""
    status = 422 if result.atomic and not result.ok else 200
    return jsonify(result.to_dict()), status


def _batch_options(data: dict) -> dict:
    options = {}
    if "atomic" in data:
        options["atomic"] = _flag(data["atomic"])
    return options


@hierarchy_bp.route("/api/<kind_name>/bulk/<operation>", methods=["POST"])
def bulk_operation(kind_name: str, operation: str):
    """Batch create / update / delete.

    Accepts JSON body with:
        - records (required): list of parameter maps, or ids for delete
        - atomic (optional): override the configured mode
    """
    kind = _kind(kind_name)
    if operation not in ("create", "update", "delete"):
        abort(404, description=f"Unknown bulk operation: {operation}")
    data = _json_body()
    records = data.get("records")
    if not isinstance(records, list):
        abort(400, description="'records' must be a list")

    executor = current_app.extensions["bulk_executor"]
    result = executor.execute(
        kind,
        operation,
        records,
        authorized=_allowed(kind, ActionKind.BULK),
        **_batch_options(data),
    )
    return _batch_response(result)


@hierarchy_bp.route("/api/employees/transfer", methods=["POST"])
def transfer_employees():
    """Move employees to a position: {employee_ids, position_id}."""
    data = _json_body()
    executor = current_app.extensions["bulk_executor"]
    result = executor.transfer_employees(
        data.get("employee_ids") or [],
        data.get("position_id"),
        authorized=_allowed(EntityKind.EMPLOYEE, ActionKind.BULK),
        **_batch_options(data),
    )
    return _batch_response(result)


@hierarchy_bp.route("/api/employees/assign_manager", methods=["POST"])
def assign_manager():
    """Assign one manager to several employees: {employee_ids, manager_id}."""
    data = _json_body()
    executor = current_app.extensions["bulk_executor"]
    result = executor.assign_manager(
        data.get("employee_ids") or [],
        data.get("manager_id"),
        authorized=_allowed(EntityKind.EMPLOYEE, ActionKind.BULK),
        **_batch_options(data),
    )
    return _batch_response(result)


@hierarchy_bp.route("/api/positions/transfer", methods=["POST"])
def transfer_positions():
    """Move positions to a department: {position_ids, department_id}."""
    data = _json_body()
    executor = current_app.extensions["bulk_executor"]
    result = executor.transfer_positions(
        data.get("position_ids") or [],
        data.get("department_id"),
        authorized=_allowed(EntityKind.POSITION, ActionKind.BULK),
        **_batch_options(data),
    )
    return _batch_response(result)
