"""Database models package.

Models:
    - Department: Departmental tree node with optional manager
    - Position: Seat in a department with a self-referential reporting chain
    - Employee: Person holding a position, with a self-referential manager chain

All three carry a ``deleted_at`` tombstone instead of being physically deleted.
"""

from .department import Department
from .employee import Employee
from .position import Position

__all__ = [
    "Department",
    "Employee",
    "Position",
]
