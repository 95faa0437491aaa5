"""Triage intake endpoint."""

from fastapi import APIRouter, status

from app.api.deps import SchedulerDep
from app.schemas.queue import ErrorResponse, QueueEntryRead
from app.schemas.triage import TriageAssessmentRead, TriageIntakeRequest, TriageResponse
from app.scoring.mews import VitalSigns
from app.services.scheduler import TriageIntake

router = APIRouter()


@router.post(
    "",
    response_model=TriageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit triage intake",
    description=(
        "Scores the vitals, routes the patient to a department and places "
        "them in that department's queue"
    ),
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def submit_triage(
    request: TriageIntakeRequest,
    scheduler: SchedulerDep,
) -> TriageResponse:
    """Score, route and enqueue a patient.

    Args:
        request: Intake vitals, pain scale and symptom flags
        scheduler: Queue scheduler

    Returns:
        The stored assessment and the new queue entry
    """
    intake = TriageIntake(
        patient_id=request.patient_id,
        nurse_id=request.nurse_id,
        vitals=VitalSigns(**request.vitals.model_dump()),
        pain_scale=request.pain_scale,
        symptoms=request.symptoms.model_dump(),
        chief_complaint=request.chief_complaint,
        age_years=request.age_years,
    )
    assessment, entry = await scheduler.perform_triage(intake)

    return TriageResponse(
        assessment=TriageAssessmentRead.model_validate(assessment),
        entry=QueueEntryRead.model_validate(entry),
    )
