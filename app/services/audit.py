"""Audit event service for append-only audit logging."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import audit_logger
from app.models.audit_event import ActorType, AuditEvent
from app.queueing.persistence import AuditRecord
from app.schemas.audit_event import AuditEventFilter
from app.utils.ids import is_uuid


def add_audit_event(
    session: AsyncSession,
    record: AuditRecord,
    action_category: str = "queue",
    request_id: str | None = None,
) -> AuditEvent:
    """Stage an audit event in the caller's transaction.

    The event is added to the session but not committed: it becomes durable
    together with the change it describes, or not at all.

    Args:
        session: Database session holding the open transaction
        record: Audit data produced by the queue store
        action_category: Category of action (queue, triage)
        request_id: Request correlation ID

    Returns:
        Pending AuditEvent instance
    """
    event = AuditEvent(
        actor_type=ActorType(record.actor_type),
        actor_id=record.actor_id,
        action=record.action,
        action_category=action_category,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        event_metadata=record.metadata or None,
        description=record.description,
        request_id=request_id,
    )
    session.add(event)
    return event


def log_audit_event(record: AuditRecord) -> None:
    """Mirror a committed audit record into the structured audit log."""
    audit_logger.log(
        action=record.action,
        actor_type=record.actor_type,
        actor_id=record.actor_id or "system",
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        metadata=record.metadata,
    )


class AuditService:
    """Service for querying audit events.

    Note: This service only provides read operations.
    Audit events are created with the queue mutation they describe.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_events(
        self,
        filters: AuditEventFilter,
    ) -> list[AuditEvent]:
        """Query audit events with optional filters.

        Args:
            filters: Filter parameters

        Returns:
            List of matching audit events, newest first
        """
        query = select(AuditEvent).order_by(AuditEvent.created_at.desc())

        if filters.entity_id:
            query = query.where(AuditEvent.entity_id == filters.entity_id)
        if filters.entity_type:
            query = query.where(AuditEvent.entity_type == filters.entity_type)
        if filters.actor_id:
            query = query.where(AuditEvent.actor_id == filters.actor_id)
        if filters.action:
            query = query.where(AuditEvent.action == filters.action)

        query = query.offset(filters.offset).limit(filters.limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get audit history for a specific entity.

        Args:
            entity_type: Type of entity (queue_entry, department)
            entity_id: ID of entity
            limit: Maximum events to return

        Returns:
            List of audit events for the entity, newest first
        """
        if not is_uuid(entity_id):
            return []
        result = await self.session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type)
            .where(AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
