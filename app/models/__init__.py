"""Database models for the ward queue service."""

from app.models.audit_event import ActorType, AuditEvent
from app.models.department import Department
from app.models.patient import Patient
from app.models.queue_entry import QueueEntryRecord
from app.models.triage_assessment import TriageAssessmentRecord

__all__ = [
    # Directory
    "Department",
    "Patient",
    # Triage & queue
    "TriageAssessmentRecord",
    "QueueEntryRecord",
    # Audit
    "AuditEvent",
    "ActorType",
]
