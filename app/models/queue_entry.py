"""Queue entry record."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


class QueueEntryRecord(Base, TimestampMixin):
    """A patient's place in a department queue.

    Rows are written only by the queue repository, from committed queue
    mutations. ``position`` is NULL once the entry leaves WAITING.
    """

    __tablename__ = "queue_entries"
    __table_args__ = (
        Index("ix_queue_entries_department_status", "department_id", "status"),
    )

    department_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("departments.id"),
        nullable=False,
    )
    patient_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("patients.id"),
        nullable=False,
        index=True,
    )
    assessment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("triage_assessments.id"),
        nullable=True,
    )

    urgency: Mapped[str] = mapped_column(String(10), nullable=False)
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expected_wait_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    enqueued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    called_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    assigned_staff_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Manual reposition, cleared by a full reprioritization
    position_overridden_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    position_overridden_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<QueueEntry {self.id} {self.status} pos={self.position}>"
