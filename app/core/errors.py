"""Error taxonomy for the queue scheduler.

Every error carries a machine-readable ``kind`` plus the offending entity id
or field, so the API layer can pick a status code without re-deriving it:

- Validation errors: bad caller input, never retried.
- State conflicts: a race or stale read, surfaced as a definitive outcome.
- Not found: unknown entry, department or patient.
- Persistence errors: the store rejected the write; queue state is unchanged.
"""

from typing import Any


class SchedulerError(Exception):
    """Base class for all scheduler errors."""

    kind = "scheduler_error"

    def __init__(
        self,
        message: str,
        *,
        entity_id: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for API responses and logs."""
        return {
            "error": self.kind,
            "detail": self.message,
            "entity_id": self.entity_id,
            "field": self.field,
        }


class SchedulerValidationError(SchedulerError):
    """Caller supplied invalid input."""

    kind = "validation_error"


class InvalidVitalsError(SchedulerValidationError):
    """A vital sign or the pain scale is outside its plausible range."""

    kind = "invalid_vitals"


class OutOfRangeError(SchedulerValidationError):
    """A requested queue position is outside [1, waiting count]."""

    kind = "out_of_range"


class StateConflictError(SchedulerError):
    """The operation conflicts with the current queue state."""

    kind = "state_conflict"


class DuplicateActiveEntryError(StateConflictError):
    """Patient already has an active entry in this department."""

    kind = "duplicate_active_entry"


class InvalidTransitionError(StateConflictError):
    """Entry status does not allow the requested transition."""

    kind = "invalid_transition"


class EmptyQueueError(StateConflictError):
    """No WAITING entries exist in the department."""

    kind = "empty_queue"


class NotFoundError(SchedulerError):
    """Referenced entity does not exist."""

    kind = "not_found"


class EntryNotFoundError(NotFoundError):
    kind = "entry_not_found"


class DepartmentNotFoundError(NotFoundError):
    kind = "department_not_found"


class PatientNotFoundError(NotFoundError):
    kind = "patient_not_found"


class PersistenceError(SchedulerError):
    """The persistence collaborator failed; the mutation was not applied."""

    kind = "persistence_unavailable"


class QueueInvariantError(SchedulerError):
    """A mutation would publish non-dense positions. Indicates a bug."""

    kind = "queue_invariant_violation"
