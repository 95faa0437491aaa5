"""Pydantic schemas for request/response validation."""

from app.schemas.audit_event import AuditEventFilter, AuditEventRead
from app.schemas.queue import (
    CallNextRequest,
    DepartmentRead,
    DepartmentSummaryRead,
    ErrorResponse,
    QueueEntryRead,
    QueueSnapshotEntryRead,
    QueueSnapshotRead,
    ReprioritizeRequest,
    ReprioritizeResponse,
    RepositionRequest,
    StatusReasonRequest,
)
from app.schemas.triage import (
    SymptomFlags,
    TriageAssessmentRead,
    TriageIntakeRequest,
    TriageResponse,
    VitalSignsIn,
)

__all__ = [
    "AuditEventRead",
    "AuditEventFilter",
    "ErrorResponse",
    "DepartmentRead",
    "DepartmentSummaryRead",
    "QueueEntryRead",
    "QueueSnapshotEntryRead",
    "QueueSnapshotRead",
    "CallNextRequest",
    "ReprioritizeRequest",
    "ReprioritizeResponse",
    "StatusReasonRequest",
    "RepositionRequest",
    "VitalSignsIn",
    "SymptomFlags",
    "TriageIntakeRequest",
    "TriageAssessmentRead",
    "TriageResponse",
]
