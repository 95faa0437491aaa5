"""Audit event endpoints.

IMPORTANT: This module intentionally provides READ-ONLY access to audit events.
No endpoints exist for creating, updating, or deleting audit events through the API.
Audit events are written by the queue repository with the change they describe.
"""

from fastapi import APIRouter, Query, status

from app.api.deps import DbSession
from app.schemas.audit_event import AuditEventFilter, AuditEventRead
from app.services.audit import AuditService

router = APIRouter()


@router.get(
    "/events",
    response_model=list[AuditEventRead],
    status_code=status.HTTP_200_OK,
    summary="List audit events",
    description="Query audit events with optional filters (append-only, no modification endpoints)",
)
async def list_audit_events(
    session: DbSession,
    entity_id: str | None = None,
    entity_type: str | None = None,
    actor_id: str | None = None,
    action: str | None = None,
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
) -> list[AuditEventRead]:
    """Query audit events with optional filters.

    Args:
        session: Database session
        entity_id: Filter by entity ID
        entity_type: Filter by entity type
        actor_id: Filter by actor ID
        action: Filter by action
        limit: Maximum results (default 100, max 500)
        offset: Results to skip

    Returns:
        List of audit events matching filters
    """
    filters = AuditEventFilter(
        entity_id=entity_id,
        entity_type=entity_type,
        actor_id=actor_id,
        action=action,
        limit=min(limit, 500),  # Cap at 500
        offset=offset,
    )

    audit_service = AuditService(session)
    events = await audit_service.get_events(filters)

    return [AuditEventRead.model_validate(e) for e in events]


@router.get(
    "/events/{entity_type}/{entity_id}",
    response_model=list[AuditEventRead],
    status_code=status.HTTP_200_OK,
    summary="Get entity audit history",
    description="Get complete audit history for a queue entry or department",
)
async def get_entity_history(
    entity_type: str,
    entity_id: str,
    session: DbSession,
    limit: int = Query(100, ge=1),
) -> list[AuditEventRead]:
    """Get audit history for a specific entity.

    Args:
        entity_type: Type of entity ("queue_entry" or "department")
        entity_id: UUID of the entity
        session: Database session
        limit: Maximum events to return

    Returns:
        List of audit events for the entity, newest first
    """
    audit_service = AuditService(session)
    events = await audit_service.get_entity_history(
        entity_type=entity_type,
        entity_id=entity_id,
        limit=min(limit, 500),
    )

    return [AuditEventRead.model_validate(e) for e in events]


# NOTE: No POST, PUT, PATCH, or DELETE endpoints are provided.
# Audit events are append-only.
