"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.services.scheduler import QueueScheduler


def get_scheduler(request: Request) -> QueueScheduler:
    """Get the application-wide queue scheduler.

    The scheduler owns in-memory queue state, so there is exactly one per
    process; it is built in the application lifespan.
    """
    return request.app.state.scheduler


def get_request_id(request: Request) -> str | None:
    """Extract request ID from headers.

    Args:
        request: FastAPI request

    Returns:
        Request ID or None
    """
    return request.headers.get("X-Request-ID")


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
SchedulerDep = Annotated[QueueScheduler, Depends(get_scheduler)]
RequestId = Annotated[str | None, Depends(get_request_id)]
