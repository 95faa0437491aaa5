"""Triage intake schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.queueing.models import Urgency
from app.schemas.queue import QueueEntryRead


class VitalSignsIn(BaseModel):
    """Vital sign readings. Plausibility is checked by the acuity scorer."""

    model_config = ConfigDict(extra="forbid")

    temperature: float | None = Field(None, description="Degrees Celsius")
    systolic_bp: float | None = Field(None, description="mmHg")
    diastolic_bp: float | None = Field(None, description="mmHg")
    heart_rate: float | None = Field(None, description="Beats per minute")
    respiratory_rate: float | None = Field(None, description="Breaths per minute")
    oxygen_saturation: float | None = Field(None, description="SpO2 percent")
    blood_glucose: float | None = Field(None, description="mmol/L")
    weight: float | None = Field(None, description="Kilograms")
    height: float | None = Field(None, description="Centimetres")


class SymptomFlags(BaseModel):
    """Presenting symptoms. Unknown flags are rejected."""

    model_config = ConfigDict(extra="forbid")

    chest_pain: bool = False
    head_trauma: bool = False
    seizure: bool = False
    stroke_symptoms: bool = False
    abdominal_pain: bool = False
    gastrointestinal_bleeding: bool = False
    fever: bool = False
    cough: bool = False
    shortness_of_breath: bool = False
    burn: bool = False
    trauma: bool = False
    pediatric: bool = False


class TriageIntakeRequest(BaseModel):
    """Schema for submitting a triage intake."""

    model_config = ConfigDict(extra="forbid")

    patient_id: str
    nurse_id: str = Field(min_length=1, max_length=64)
    vitals: VitalSignsIn = Field(default_factory=VitalSignsIn)
    pain_scale: int
    symptoms: SymptomFlags = Field(default_factory=SymptomFlags)
    chief_complaint: str | None = Field(None, max_length=1000)
    age_years: int | None = Field(None, ge=0, le=130)


class TriageAssessmentRead(BaseModel):
    """Schema for reading a triage assessment."""

    id: str
    patient_id: str
    nurse_id: str
    vitals: dict[str, float | None]
    pain_scale: int
    symptoms: dict[str, bool]
    chief_complaint: str | None
    acuity_score: int
    urgency: Urgency
    low_confidence: bool
    score_breakdown: dict[str, int]
    bmi: float | None
    recommended_department: str
    department_id: str
    routing_rule_id: str
    routing_ruleset_hash: str
    estimated_wait_minutes: int
    created_at: datetime

    model_config = {"from_attributes": True}


class TriageResponse(BaseModel):
    """Result of a triage intake: the assessment and the new queue entry."""

    assessment: TriageAssessmentRead
    entry: QueueEntryRead
