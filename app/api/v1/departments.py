"""Department directory endpoints."""

from fastapi import APIRouter, status

from app.api.deps import SchedulerDep
from app.schemas.queue import DepartmentRead

router = APIRouter()


@router.get(
    "",
    response_model=list[DepartmentRead],
    status_code=status.HTTP_200_OK,
    summary="List departments",
    description="Active departments patients can be routed to",
)
async def list_departments(scheduler: SchedulerDep) -> list[DepartmentRead]:
    departments = await scheduler.list_departments()
    return [DepartmentRead.model_validate(d) for d in departments]
