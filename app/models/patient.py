"""Patient identity model.

The queue core treats patients as opaque ids; these display fields are only
joined into queue snapshots and alerts.
"""

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Date, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from app.models.triage_assessment import TriageAssessmentRecord


class Patient(Base, TimestampMixin, SoftDeleteMixin):
    """Registered patient."""

    __tablename__ = "patients"

    medical_record_number: Mapped[str | None] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    date_of_birth: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )
    sex: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    phone: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    assessments: Mapped[list["TriageAssessmentRecord"]] = relationship(
        "TriageAssessmentRecord",
        back_populates="patient",
        lazy="noload",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Patient {self.id} {self.medical_record_number}>"
