"""Hospital department model."""

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class Department(Base, TimestampMixin):
    """A department with its own patient queue.

    ``current_load`` is owned by the queue scheduler and is only written
    inside a queue mutation's transaction.
    """

    __tablename__ = "departments"

    code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    average_treatment_minutes: Mapped[int] = mapped_column(
        Integer,
        default=20,
        nullable=False,
    )
    current_load: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    max_capacity: Mapped[int] = mapped_column(
        Integer,
        default=50,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    @property
    def utilization(self) -> float:
        """Current load as a percentage of capacity."""
        if not self.max_capacity:
            return 0.0
        return round(self.current_load / self.max_capacity * 100, 1)

    def __repr__(self) -> str:
        return f"<Department {self.code} load={self.current_load}/{self.max_capacity}>"
