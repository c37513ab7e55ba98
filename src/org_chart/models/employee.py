"""Employee model."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import db
from .mixins import SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from .department import Department
    from .position import Position


class Employee(SoftDeleteMixin, TimestampMixin, db.Model):
    """
    Represents a person holding a position.

    The manager chain is self-referential; a manager's position level must be
    strictly above the employee's own.
    """

    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(primary_key=True)
    first_name: Mapped[str] = mapped_column(String(64), nullable=False)
    last_name: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    position_id: Mapped[int] = mapped_column(
        ForeignKey("positions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"), nullable=True, index=True
    )

    position: Mapped["Position"] = relationship(
        "Position", back_populates="employees"
    )

    # Relationships: self-referential
    manager: Mapped["Employee | None"] = relationship(
        "Employee",
        remote_side="Employee.id",
        foreign_keys=[manager_id],
        back_populates="subordinates",
    )
    subordinates: Mapped[list["Employee"]] = relationship(
        "Employee",
        foreign_keys=[manager_id],
        back_populates="manager",
    )

    managed_departments: Mapped[list["Department"]] = relationship(
        "Department",
        foreign_keys="Department.manager_id",
        back_populates="manager",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Employee id={self.id} email={self.email}>"
