"""Domain types for department queues.

Queue entries and assessments are frozen dataclasses: the store never edits a
published entry, it replaces it. That is what lets readers use a published
snapshot without taking the department lock.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class Urgency(str, Enum):
    """Urgency class assigned at triage. RED is the highest priority."""

    RED = "RED"
    YELLOW = "YELLOW"
    GREEN = "GREEN"

    @property
    def rank(self) -> int:
        """Priority rank, lower is more urgent."""
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    Urgency.RED: 1,
    Urgency.YELLOW: 2,
    Urgency.GREEN: 3,
}


class QueueStatus(str, Enum):
    """Queue entry lifecycle status."""

    WAITING = "WAITING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    SKIPPED = "SKIPPED"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({QueueStatus.WAITING, QueueStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset(
    {QueueStatus.COMPLETED, QueueStatus.CANCELLED, QueueStatus.SKIPPED}
)

# Allowed status transitions; anything else is rejected by the store.
ALLOWED_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.WAITING: frozenset(
        {QueueStatus.IN_PROGRESS, QueueStatus.CANCELLED, QueueStatus.SKIPPED}
    ),
    QueueStatus.IN_PROGRESS: frozenset({QueueStatus.COMPLETED}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.CANCELLED: frozenset(),
    QueueStatus.SKIPPED: frozenset(),
}


@dataclass(frozen=True)
class QueueEntry:
    """A patient's place in a department queue."""

    id: str
    department_id: str
    patient_id: str
    urgency: Urgency
    position: int | None
    expected_wait_minutes: int
    status: QueueStatus
    enqueued_at: datetime
    sequence: int
    assessment_id: str | None = None
    called_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    assigned_staff_id: str | None = None
    status_reason: str | None = None
    position_overridden_by: str | None = None
    position_overridden_at: datetime | None = None
    # Department state version of the commit that last wrote this entry;
    # 0 when it was loaded from storage unchanged
    version: int = field(default=0, compare=False)

    @property
    def canonical_key(self) -> tuple[int, datetime, int]:
        """Default ordering: urgency rank, then arrival."""
        return (self.urgency.rank, self.enqueued_at, self.sequence)

    @property
    def is_overridden(self) -> bool:
        return self.position_overridden_at is not None

    def transition(self, status: QueueStatus, **changes: Any) -> "QueueEntry":
        """Return a copy in the new status. Caller checks the transition."""
        return replace(self, status=status, **changes)


@dataclass(frozen=True)
class TriageAssessment:
    """Immutable result of one triage intake."""

    id: str
    patient_id: str
    nurse_id: str
    vitals: dict[str, float | None]
    pain_scale: int
    symptoms: dict[str, bool]
    acuity_score: int
    urgency: Urgency
    low_confidence: bool
    recommended_department: str
    department_id: str
    routing_rule_id: str
    routing_ruleset_hash: str
    estimated_wait_minutes: int
    created_at: datetime
    chief_complaint: str | None = None
    bmi: float | None = None
    score_breakdown: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class DepartmentInfo:
    """Read-only department capacity data used for estimation and display."""

    id: str
    code: str
    name: str
    average_treatment_minutes: int
    current_load: int
    max_capacity: int


@dataclass(frozen=True)
class PatientInfo:
    """Read-only patient display fields joined into queue snapshots."""

    id: str
    medical_record_number: str | None
    first_name: str
    last_name: str

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class DepartmentQueueState:
    """Published, immutable state of one department's active entries."""

    department_id: str
    version: int
    entries: Mapping[str, QueueEntry]

    @classmethod
    def empty(cls, department_id: str) -> "DepartmentQueueState":
        return cls(department_id=department_id, version=0, entries=MappingProxyType({}))

    @property
    def waiting(self) -> list[QueueEntry]:
        """WAITING entries in position order."""
        return sorted(
            (e for e in self.entries.values() if e.status == QueueStatus.WAITING),
            key=lambda e: e.position or 0,
        )

    @property
    def in_progress(self) -> list[QueueEntry]:
        """IN_PROGRESS entries, earliest called first."""
        return sorted(
            (e for e in self.entries.values() if e.status == QueueStatus.IN_PROGRESS),
            key=lambda e: (e.called_at is None, e.called_at or e.enqueued_at),
        )

    @property
    def active_count(self) -> int:
        return len(self.entries)
