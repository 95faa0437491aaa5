"""Queue entry lifecycle endpoints."""

from fastapi import APIRouter, status

from app.api.deps import SchedulerDep
from app.schemas.queue import (
    ErrorResponse,
    QueueEntryRead,
    RepositionRequest,
    StatusReasonRequest,
)

router = APIRouter()

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.get(
    "/{entry_id}",
    response_model=QueueEntryRead,
    status_code=status.HTTP_200_OK,
    summary="Get queue entry",
    responses={404: {"model": ErrorResponse}},
)
async def get_entry(entry_id: str, scheduler: SchedulerDep) -> QueueEntryRead:
    entry = await scheduler.get_entry(entry_id)
    return QueueEntryRead.model_validate(entry)


@router.post(
    "/{entry_id}/start",
    response_model=QueueEntryRead,
    status_code=status.HTTP_200_OK,
    summary="Start treatment",
    description="Stamps the treatment start time on a called patient",
    responses=ERROR_RESPONSES,
)
async def start_treatment(entry_id: str, scheduler: SchedulerDep) -> QueueEntryRead:
    entry = await scheduler.start_treatment(entry_id)
    return QueueEntryRead.model_validate(entry)


@router.post(
    "/{entry_id}/complete",
    response_model=QueueEntryRead,
    status_code=status.HTTP_200_OK,
    summary="Complete patient",
    description="Marks an IN_PROGRESS entry as COMPLETED",
    responses=ERROR_RESPONSES,
)
async def complete_patient(entry_id: str, scheduler: SchedulerDep) -> QueueEntryRead:
    entry = await scheduler.complete_patient(entry_id)
    return QueueEntryRead.model_validate(entry)


@router.post(
    "/{entry_id}/skip",
    response_model=QueueEntryRead,
    status_code=status.HTTP_200_OK,
    summary="Skip waiting patient",
    description="Marks a WAITING entry as SKIPPED; later entries move up",
    responses=ERROR_RESPONSES,
)
async def skip_patient(
    entry_id: str,
    request: StatusReasonRequest,
    scheduler: SchedulerDep,
) -> QueueEntryRead:
    entry = await scheduler.skip_patient(entry_id, request.reason, request.actor_id)
    return QueueEntryRead.model_validate(entry)


@router.post(
    "/{entry_id}/cancel",
    response_model=QueueEntryRead,
    status_code=status.HTTP_200_OK,
    summary="Cancel waiting entry",
    description="Marks a WAITING entry as CANCELLED; later entries move up",
    responses=ERROR_RESPONSES,
)
async def cancel_entry(
    entry_id: str,
    request: StatusReasonRequest,
    scheduler: SchedulerDep,
) -> QueueEntryRead:
    entry = await scheduler.cancel_entry(entry_id, request.reason, request.actor_id)
    return QueueEntryRead.model_validate(entry)


@router.patch(
    "/{entry_id}/position",
    response_model=QueueEntryRead,
    status_code=status.HTTP_200_OK,
    summary="Manually reposition entry",
    description=(
        "Moves a WAITING entry to an explicit position. The override is "
        "recorded on the entry and in the audit trail until the department "
        "is reprioritized."
    ),
    responses=ERROR_RESPONSES,
)
async def reposition(
    entry_id: str,
    request: RepositionRequest,
    scheduler: SchedulerDep,
) -> QueueEntryRead:
    entry = await scheduler.manual_reposition(entry_id, request.position, request.actor_id)
    return QueueEntryRead.model_validate(entry)
