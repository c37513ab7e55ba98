"""Column mixins shared by the hierarchical models."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class SoftDeleteMixin:
    """
    Tombstone marker used instead of physical deletion.

    A row with ``deleted_at`` set is excluded from hierarchy walks and from
    uniqueness checks scoped to live rows, but stays addressable by id.
    """

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None

    def mark_deleted(self) -> None:
        self.deleted_at = utcnow()
