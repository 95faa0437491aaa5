"""Queue and department schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.queueing.models import QueueStatus, Urgency


class ErrorResponse(BaseModel):
    """Error body returned for scheduler errors."""

    error: str
    detail: str
    entity_id: str | None = None
    field: str | None = None


class DepartmentRead(BaseModel):
    """Schema for reading department data."""

    id: str
    code: str
    name: str
    average_treatment_minutes: int
    current_load: int
    max_capacity: int

    model_config = {"from_attributes": True}


class QueueEntryRead(BaseModel):
    """Schema for reading a queue entry."""

    id: str
    department_id: str
    patient_id: str
    assessment_id: str | None
    urgency: Urgency
    position: int | None
    expected_wait_minutes: int
    status: QueueStatus
    enqueued_at: datetime
    called_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    assigned_staff_id: str | None
    status_reason: str | None
    position_overridden_by: str | None
    position_overridden_at: datetime | None

    model_config = {"from_attributes": True}


class QueueSnapshotEntryRead(QueueEntryRead):
    """Queue entry joined with patient display fields."""

    patient_name: str | None = None
    medical_record_number: str | None = None


class DepartmentSummaryRead(BaseModel):
    department_id: str
    code: str
    name: str
    current_load: int
    max_capacity: int
    utilization: float
    waiting_count: int
    in_progress_count: int
    average_expected_wait: int

    model_config = {"from_attributes": True}


class QueueSnapshotRead(BaseModel):
    """A department queue at one version."""

    department: DepartmentSummaryRead
    version: int
    waiting: list[QueueSnapshotEntryRead]
    in_progress: list[QueueSnapshotEntryRead]


class CallNextRequest(BaseModel):
    staff_id: str = Field(min_length=1, max_length=64)


class ReprioritizeRequest(BaseModel):
    actor_id: str | None = Field(None, max_length=64)


class ReprioritizeResponse(BaseModel):
    department_id: str
    entries: list[QueueEntryRead]


class StatusReasonRequest(BaseModel):
    """Body for skipping or cancelling a waiting entry."""

    reason: str = Field(min_length=1, max_length=500)
    actor_id: str | None = Field(None, max_length=64)


class RepositionRequest(BaseModel):
    """Body for a manual position override.

    The valid range depends on the live queue and is checked by the store.
    """

    position: int
    actor_id: str = Field(min_length=1, max_length=64)
