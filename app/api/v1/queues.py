"""Department queue endpoints."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.api.deps import SchedulerDep
from app.core.errors import DepartmentNotFoundError
from app.queueing.events import BroadcastChangeNotifier, QueueEvent
from app.schemas.queue import (
    CallNextRequest,
    DepartmentSummaryRead,
    ErrorResponse,
    QueueEntryRead,
    QueueSnapshotEntryRead,
    QueueSnapshotRead,
    ReprioritizeRequest,
    ReprioritizeResponse,
)
from app.services.scheduler import QueueScheduler, QueueSnapshot, SnapshotEntry

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _snapshot_entry(item: SnapshotEntry) -> QueueSnapshotEntryRead:
    data = QueueEntryRead.model_validate(item.entry).model_dump()
    if item.patient is not None:
        data["patient_name"] = item.patient.display_name
        data["medical_record_number"] = item.patient.medical_record_number
    return QueueSnapshotEntryRead(**data)


def snapshot_response(snapshot: QueueSnapshot) -> QueueSnapshotRead:
    return QueueSnapshotRead(
        department=DepartmentSummaryRead.model_validate(snapshot.department),
        version=snapshot.version,
        waiting=[_snapshot_entry(e) for e in snapshot.waiting],
        in_progress=[_snapshot_entry(e) for e in snapshot.in_progress],
    )


@router.get(
    "/{department_id}",
    response_model=QueueSnapshotRead,
    status_code=status.HTTP_200_OK,
    summary="Get department queue",
    description="WAITING entries by position, then IN_PROGRESS entries by call time",
    responses={404: {"model": ErrorResponse}},
)
async def get_queue(department_id: str, scheduler: SchedulerDep) -> QueueSnapshotRead:
    snapshot = await scheduler.get_queue_snapshot(department_id)
    return snapshot_response(snapshot)


@router.post(
    "/{department_id}/call-next",
    response_model=QueueEntryRead,
    status_code=status.HTTP_200_OK,
    summary="Call next patient",
    description="Moves the most urgent waiting patient to IN_PROGRESS",
    responses=ERROR_RESPONSES,
)
async def call_next(
    department_id: str,
    request: CallNextRequest,
    scheduler: SchedulerDep,
) -> QueueEntryRead:
    """Call the next patient.

    Returns 409 with error "empty_queue" when nobody is waiting.
    """
    entry = await scheduler.call_next(department_id, request.staff_id)
    return QueueEntryRead.model_validate(entry)


@router.post(
    "/{department_id}/reprioritize",
    response_model=ReprioritizeResponse,
    status_code=status.HTTP_200_OK,
    summary="Reprioritize department queue",
    description="Restores urgency-then-arrival order and clears manual overrides",
    responses=ERROR_RESPONSES,
)
async def reprioritize(
    department_id: str,
    scheduler: SchedulerDep,
    request: ReprioritizeRequest | None = None,
) -> ReprioritizeResponse:
    actor_id = request.actor_id if request else None
    entries = await scheduler.reprioritize_department(department_id, actor_id)
    return ReprioritizeResponse(
        department_id=department_id,
        entries=[QueueEntryRead.model_validate(e) for e in entries],
    )


async def open_event_stream(
    scheduler: QueueScheduler,
    notifier: BroadcastChangeNotifier,
    department_id: str,
) -> tuple[asyncio.Queue, QueueSnapshot]:
    """Subscribe to a department, then snapshot it.

    Subscribing first means every commit after the snapshot reaches the
    queue. Events the snapshot already covers are dropped by the reader
    with ``already_in_snapshot``.
    """
    queue = notifier.subscribe(department_id)
    try:
        snapshot = await scheduler.get_queue_snapshot(department_id)
    except Exception:
        notifier.unsubscribe(department_id, queue)
        raise
    return queue, snapshot


def already_in_snapshot(event: QueueEvent, snapshot: QueueSnapshot) -> bool:
    return event.version is not None and event.version <= snapshot.version


@router.websocket("/{department_id}/events")
async def queue_events(websocket: WebSocket, department_id: str) -> None:
    """Stream committed queue changes for one department."""
    scheduler: QueueScheduler = websocket.app.state.scheduler
    notifier: BroadcastChangeNotifier = websocket.app.state.notifier

    try:
        queue, snapshot = await open_event_stream(scheduler, notifier, department_id)
    except DepartmentNotFoundError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    logger.info(
        f"Queue event subscriber connected for department {department_id}",
        extra={"department_id": department_id},
    )

    try:
        await websocket.send_json(
            {"type": "snapshot", "data": snapshot_response(snapshot).model_dump(mode="json")}
        )
        while True:
            event = await queue.get()
            if already_in_snapshot(event, snapshot):
                continue
            await websocket.send_json(event.to_dict())
    except WebSocketDisconnect:
        logger.info(
            f"Queue event subscriber disconnected for department {department_id}",
            extra={"department_id": department_id},
        )
    finally:
        notifier.unsubscribe(department_id, queue)
