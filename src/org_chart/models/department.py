"""Department model."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import db
from .mixins import SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from .employee import Employee
    from .position import Position


class Department(SoftDeleteMixin, TimestampMixin, db.Model):
    """
    Represents a node in the departmental tree.

    A department optionally sits under a parent department and is optionally
    headed by a manager, who must be an employee of the department or of one
    of its sub-departments.
    """

    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_department_id: Mapped[int | None] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # The departments -> employees FK closes a cycle through positions
    manager_id: Mapped[int | None] = mapped_column(
        ForeignKey(
            "employees.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_departments_manager_id",
        ),
        nullable=True,
        index=True,
    )

    # Relationships: self-referential
    parent_department: Mapped["Department | None"] = relationship(
        "Department",
        remote_side="Department.id",
        foreign_keys=[parent_department_id],
        back_populates="sub_departments",
    )
    sub_departments: Mapped[list["Department"]] = relationship(
        "Department",
        foreign_keys=[parent_department_id],
        back_populates="parent_department",
    )

    # Relationships: external FKs
    manager: Mapped["Employee | None"] = relationship(
        "Employee", foreign_keys=[manager_id], back_populates="managed_departments"
    )
    positions: Mapped[list["Position"]] = relationship(
        "Position", back_populates="department"
    )

    def __repr__(self) -> str:
        return f"<Department id={self.id} name={self.name}>"
