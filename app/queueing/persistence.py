"""Persistence interface for queue mutations.

The queue store hands each structural operation to a ``QueuePersistence`` as
one ``QueueMutation``. Implementations must apply it in a single transaction:
the changed entries, the department load counter and any attached assessment
or audit record are written together or not at all.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from app.queueing.models import QueueEntry, TriageAssessment


@dataclass(frozen=True)
class AuditRecord:
    """Audit event written in the same transaction as a queue mutation."""

    action: str
    entity_id: str
    actor_id: str | None = None
    actor_type: str = "staff"
    entity_type: str = "queue_entry"
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QueueMutation:
    """Everything one structural operation changed."""

    department_id: str
    operation: str
    version: int
    changed: tuple[QueueEntry, ...]
    current_load: int
    assessment: TriageAssessment | None = None
    audit: AuditRecord | None = None


class QueuePersistence(ABC):
    """Durable storage for department queues."""

    @abstractmethod
    async def commit(self, mutation: QueueMutation) -> None:
        """Atomically persist a mutation.

        Raises:
            PersistenceError: If the write failed. Nothing was applied.
        """

    @abstractmethod
    async def load_active(self, department_id: str) -> list[QueueEntry]:
        """Load WAITING and IN_PROGRESS entries for a department."""

    @abstractmethod
    async def get_entry(self, entry_id: str) -> QueueEntry | None:
        """Load a single entry in any status."""


class InMemoryQueuePersistence(QueuePersistence):
    """Dictionary-backed persistence for tests and database-less runs."""

    def __init__(self) -> None:
        self.entries: dict[str, QueueEntry] = {}
        self.department_loads: dict[str, int] = {}
        self.assessments: dict[str, TriageAssessment] = {}
        self.audit_records: list[AuditRecord] = []
        self.mutations: list[QueueMutation] = []

    async def commit(self, mutation: QueueMutation) -> None:
        for entry in mutation.changed:
            self.entries[entry.id] = entry
        self.department_loads[mutation.department_id] = mutation.current_load
        if mutation.assessment is not None:
            self.assessments[mutation.assessment.id] = mutation.assessment
        if mutation.audit is not None:
            self.audit_records.append(mutation.audit)
        self.mutations.append(mutation)

    async def load_active(self, department_id: str) -> list[QueueEntry]:
        return [
            e
            for e in self.entries.values()
            if e.department_id == department_id and e.status.is_active
        ]

    async def get_entry(self, entry_id: str) -> QueueEntry | None:
        return self.entries.get(entry_id)
