"""SQLAlchemy-backed queue persistence.

Each queue mutation is written in one database transaction: the changed
queue entries, the department's ``current_load``, the triage assessment on
intake and the audit event for lifecycle changes. If any statement fails the
whole transaction rolls back and the store keeps its previous state.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import PersistenceError
from app.models.department import Department
from app.models.queue_entry import QueueEntryRecord
from app.models.triage_assessment import TriageAssessmentRecord
from app.queueing.models import ACTIVE_STATUSES, QueueEntry, QueueStatus, TriageAssessment, Urgency
from app.queueing.persistence import QueueMutation, QueuePersistence
from app.services.audit import add_audit_event, log_audit_event
from app.utils.ids import is_uuid
from app.utils.time import ensure_utc

logger = logging.getLogger(__name__)

# Fields copied verbatim between QueueEntry and QueueEntryRecord
_ENTRY_FIELDS = (
    "department_id",
    "patient_id",
    "assessment_id",
    "position",
    "expected_wait_minutes",
    "sequence",
    "enqueued_at",
    "called_at",
    "started_at",
    "completed_at",
    "assigned_staff_id",
    "status_reason",
    "position_overridden_by",
    "position_overridden_at",
)


def entry_from_record(record: QueueEntryRecord) -> QueueEntry:
    """Convert a database row to a queue entry."""
    return QueueEntry(
        id=record.id,
        department_id=record.department_id,
        patient_id=record.patient_id,
        urgency=Urgency(record.urgency),
        position=record.position,
        expected_wait_minutes=record.expected_wait_minutes,
        status=QueueStatus(record.status),
        enqueued_at=ensure_utc(record.enqueued_at),
        sequence=record.sequence,
        assessment_id=record.assessment_id,
        called_at=ensure_utc(record.called_at),
        started_at=ensure_utc(record.started_at),
        completed_at=ensure_utc(record.completed_at),
        assigned_staff_id=record.assigned_staff_id,
        status_reason=record.status_reason,
        position_overridden_by=record.position_overridden_by,
        position_overridden_at=ensure_utc(record.position_overridden_at),
    )


def _apply_entry(record: QueueEntryRecord, entry: QueueEntry) -> None:
    for name in _ENTRY_FIELDS:
        setattr(record, name, getattr(entry, name))
    record.urgency = entry.urgency.value
    record.status = entry.status.value


def _assessment_record(assessment: TriageAssessment) -> TriageAssessmentRecord:
    return TriageAssessmentRecord(
        id=assessment.id,
        patient_id=assessment.patient_id,
        nurse_id=assessment.nurse_id,
        vitals=dict(assessment.vitals),
        pain_scale=assessment.pain_scale,
        symptoms=dict(assessment.symptoms),
        chief_complaint=assessment.chief_complaint,
        bmi=assessment.bmi,
        acuity_score=assessment.acuity_score,
        urgency=assessment.urgency.value,
        low_confidence=assessment.low_confidence,
        score_breakdown=dict(assessment.score_breakdown),
        recommended_department=assessment.recommended_department,
        department_id=assessment.department_id,
        routing_rule_id=assessment.routing_rule_id,
        routing_ruleset_hash=assessment.routing_ruleset_hash,
        estimated_wait_minutes=assessment.estimated_wait_minutes,
        created_at=assessment.created_at,
    )


class SqlQueueRepository(QueuePersistence):
    """Queue persistence on the application database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def commit(self, mutation: QueueMutation) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._write(session, mutation)
        except SQLAlchemyError as exc:
            logger.error(
                f"Queue {mutation.operation} rolled back: {exc}",
                extra={"department_id": mutation.department_id, "action": mutation.operation},
            )
            raise PersistenceError(
                f"Could not persist {mutation.operation}",
                entity_id=mutation.department_id,
            ) from exc

        if mutation.audit is not None:
            log_audit_event(mutation.audit)

    async def _write(self, session: AsyncSession, mutation: QueueMutation) -> None:
        if mutation.assessment is not None:
            session.add(_assessment_record(mutation.assessment))
            await session.flush()

        ids = [entry.id for entry in mutation.changed]
        existing: dict[str, QueueEntryRecord] = {}
        if ids:
            result = await session.execute(
                select(QueueEntryRecord).where(QueueEntryRecord.id.in_(ids))
            )
            existing = {record.id: record for record in result.scalars()}

        for entry in mutation.changed:
            record = existing.get(entry.id)
            if record is None:
                record = QueueEntryRecord(id=entry.id)
                session.add(record)
            _apply_entry(record, entry)

        result = await session.execute(
            update(Department)
            .where(Department.id == mutation.department_id)
            .values(current_load=mutation.current_load)
        )
        if result.rowcount == 0:
            logger.warning(
                f"Department {mutation.department_id} missing while updating load",
                extra={"department_id": mutation.department_id},
            )

        if mutation.audit is not None:
            add_audit_event(session, mutation.audit)

    async def load_active(self, department_id: str) -> list[QueueEntry]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(QueueEntryRecord)
                    .where(QueueEntryRecord.department_id == department_id)
                    .where(QueueEntryRecord.status.in_([s.value for s in ACTIVE_STATUSES]))
                    .order_by(QueueEntryRecord.sequence)
                )
                return [entry_from_record(record) for record in result.scalars()]
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Could not load queue for department {department_id}",
                entity_id=department_id,
            ) from exc

    async def get_entry(self, entry_id: str) -> QueueEntry | None:
        if not is_uuid(entry_id):
            return None
        try:
            async with self.session_factory() as session:
                record = await session.get(QueueEntryRecord, entry_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Could not load queue entry {entry_id}",
                entity_id=entry_id,
            ) from exc
        return entry_from_record(record) if record else None
