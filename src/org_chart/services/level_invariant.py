"""Rank ordering checks along parent and manager edges."""

from .errors import LevelError


def validate_position_level(candidate_level: int | None, parent_level: int | None) -> None:
    """A child position's level must be strictly lower than its parent's."""
    if candidate_level is None or parent_level is None:
        return
    if not candidate_level < parent_level:
        raise LevelError(
            f"must be less than parent position level ({parent_level})", field="level"
        )


def validate_manager_level(employee_level: int | None, manager_level: int | None) -> None:
    """An employee's position level must be strictly lower than the manager's."""
    if employee_level is None or manager_level is None:
        return
    if not employee_level < manager_level:
        raise LevelError(
            f"must have a higher position level than the employee ({employee_level})",
            field="manager_id",
        )
