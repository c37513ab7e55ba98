"""Position model."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import db
from .mixins import SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from .department import Department
    from .employee import Employee


class Position(SoftDeleteMixin, TimestampMixin, db.Model):
    """
    Represents a seat in a department's reporting structure.

    Each position belongs to one Department and optionally reports to a parent
    position. A child position's level is always numerically lower than its
    parent's.
    """

    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_position_id: Mapped[int | None] = mapped_column(
        ForeignKey("positions.id", ondelete="SET NULL"), nullable=True, index=True
    )

    department: Mapped["Department"] = relationship(
        "Department", back_populates="positions"
    )

    # Relationships: self-referential
    parent_position: Mapped["Position | None"] = relationship(
        "Position",
        remote_side="Position.id",
        foreign_keys=[parent_position_id],
        back_populates="subordinate_positions",
    )
    subordinate_positions: Mapped[list["Position"]] = relationship(
        "Position",
        foreign_keys=[parent_position_id],
        back_populates="parent_position",
    )

    employees: Mapped[list["Employee"]] = relationship(
        "Employee", back_populates="position"
    )

    def __repr__(self) -> str:
        return f"<Position id={self.id} title={self.title} level={self.level}>"
