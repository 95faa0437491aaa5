"""Triage assessment record."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.patient import Patient


class TriageAssessmentRecord(Base, TimestampMixin):
    """Immutable result of one triage intake.

    A later intake creates a new row; rows are never updated.
    """

    __tablename__ = "triage_assessments"

    patient_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("patients.id"),
        nullable=False,
        index=True,
    )
    nurse_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Intake
    vitals: Mapped[dict] = mapped_column(JSON, nullable=False)
    pain_scale: Mapped[int] = mapped_column(Integer, nullable=False)
    symptoms: Mapped[dict] = mapped_column(JSON, nullable=False)
    chief_complaint: Mapped[str | None] = mapped_column(Text, nullable=True)
    bmi: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Scoring
    acuity_score: Mapped[int] = mapped_column(Integer, nullable=False)
    urgency: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    low_confidence: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    score_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Routing
    recommended_department: Mapped[str] = mapped_column(String(20), nullable=False)
    department_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("departments.id"),
        nullable=False,
        index=True,
    )
    routing_rule_id: Mapped[str] = mapped_column(String(100), nullable=False)
    routing_ruleset_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    estimated_wait_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    patient: Mapped["Patient"] = relationship(
        "Patient",
        back_populates="assessments",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<TriageAssessment {self.id} {self.urgency} score={self.acuity_score}>"
