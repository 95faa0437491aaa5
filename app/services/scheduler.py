"""Queue scheduler: the patient lifecycle from triage to completion.

Orchestrates the acuity scorer, department router, wait-time estimator and
queue store. Only the store changes queue state; the scheduler validates
input, resolves departments and patients, and tells the outside world
(change events, critical alerts) about committed changes.

Change events and alerts are best-effort. Their failures are logged and
never turn a committed queue change into an error for the caller. Events
are published after the department lock is released, so they may arrive
out of order; each carries the state version of its commit.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from functools import partial
from typing import Any, Callable
from uuid import uuid4

from app.core.errors import SchedulerValidationError
from app.queueing.events import ChangeNotifier, NullChangeNotifier, QueueEvent, QueueEventType
from app.queueing.models import (
    DepartmentInfo,
    PatientInfo,
    QueueEntry,
    TriageAssessment,
    Urgency,
)
from app.queueing.store import QueueStore
from app.queueing.wait_time import WaitTimeEstimator
from app.rules.engine import DepartmentRouter, build_routing_facts
from app.scoring.mews import AcuityScorer, VitalSigns
from app.services.directory import DepartmentDirectory
from app.services.notifications import CriticalAlert, CriticalAlertService
from app.utils.time import utc_now

logger = logging.getLogger(__name__)

SYMPTOM_FLAGS = (
    "chest_pain",
    "head_trauma",
    "seizure",
    "stroke_symptoms",
    "abdominal_pain",
    "gastrointestinal_bleeding",
    "fever",
    "cough",
    "shortness_of_breath",
    "burn",
    "trauma",
    "pediatric",
)


@dataclass(frozen=True)
class TriageIntake:
    """One triage submission from a nurse."""

    patient_id: str
    nurse_id: str
    vitals: VitalSigns
    pain_scale: int
    symptoms: dict[str, bool] = field(default_factory=dict)
    chief_complaint: str | None = None
    age_years: int | None = None


@dataclass(frozen=True)
class SnapshotEntry:
    """Queue entry joined with patient display fields."""

    entry: QueueEntry
    patient: PatientInfo | None


@dataclass(frozen=True)
class DepartmentSummary:
    department_id: str
    code: str
    name: str
    current_load: int
    max_capacity: int
    utilization: float
    waiting_count: int
    in_progress_count: int
    average_expected_wait: int


@dataclass(frozen=True)
class QueueSnapshot:
    """Read-only view of a department queue at one version."""

    department: DepartmentSummary
    version: int
    waiting: list[SnapshotEntry]
    in_progress: list[SnapshotEntry]

    @property
    def entries(self) -> list[SnapshotEntry]:
        """WAITING by position, then IN_PROGRESS by call time."""
        return self.waiting + self.in_progress


def _symptom_flags(symptoms: dict[str, bool]) -> dict[str, bool]:
    unknown = sorted(set(symptoms) - set(SYMPTOM_FLAGS))
    if unknown:
        raise SchedulerValidationError(
            f"Unknown symptom flags: {', '.join(unknown)}",
            field="symptoms",
        )
    return {name: bool(symptoms.get(name, False)) for name in SYMPTOM_FLAGS}


def _require_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise SchedulerValidationError("A reason is required", field="reason")
    return reason.strip()


class QueueScheduler:
    """Implements triage intake and the queue lifecycle."""

    def __init__(
        self,
        store: QueueStore,
        directory: DepartmentDirectory,
        notifier: ChangeNotifier | None = None,
        alerts: CriticalAlertService | None = None,
        scorer: AcuityScorer | None = None,
        estimator: WaitTimeEstimator | None = None,
        router: DepartmentRouter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.directory = directory
        self.notifier = notifier or NullChangeNotifier()
        self.alerts = alerts
        self.scorer = scorer or AcuityScorer()
        self.estimator = estimator or WaitTimeEstimator()
        self.router = router or DepartmentRouter()
        self.clock = clock
        self._alert_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Triage
    # ------------------------------------------------------------------

    async def perform_triage(
        self,
        intake: TriageIntake,
    ) -> tuple[TriageAssessment, QueueEntry]:
        """Score, route and enqueue a triaged patient.

        The assessment is persisted in the same transaction as the new
        queue entry. A RED result also schedules a critical alert.

        Raises:
            InvalidVitalsError: Implausible vital sign or pain scale.
            SchedulerValidationError: Unknown symptom flag.
            PatientNotFoundError: Unknown patient.
            DepartmentNotFoundError: Routed department is not configured.
            DuplicateActiveEntryError: Patient already queued there.
            PersistenceError: Storage failed; nothing was recorded.
        """
        result = self.scorer.score(intake.vitals, intake.pain_scale)
        symptoms = _symptom_flags(intake.symptoms)
        patient = await self.directory.get_patient(intake.patient_id)

        facts = build_routing_facts(intake.vitals.to_dict(), symptoms, intake.age_years)
        decision = self.router.route(facts)
        department = await self.directory.get_department_by_code(decision.department_code)

        assessment = TriageAssessment(
            id=str(uuid4()),
            patient_id=patient.id,
            nurse_id=intake.nurse_id,
            vitals=intake.vitals.to_dict(),
            pain_scale=intake.pain_scale,
            symptoms=symptoms,
            acuity_score=result.acuity_score,
            urgency=result.urgency,
            low_confidence=result.low_confidence,
            recommended_department=decision.department_code,
            department_id=department.id,
            routing_rule_id=decision.rule_id,
            routing_ruleset_hash=decision.ruleset_hash,
            # Set by the store from the queue it sees under the department lock
            estimated_wait_minutes=0,
            created_at=self.clock(),
            chief_complaint=intake.chief_complaint,
            bmi=intake.vitals.bmi,
            score_breakdown=dict(result.breakdown),
        )

        entry = await self.store.enqueue(
            department.id,
            patient.id,
            result.urgency,
            partial(
                self.estimator.estimate,
                result.urgency,
                avg_treatment_minutes=department.average_treatment_minutes,
            ),
            assessment=assessment,
        )
        wait = entry.expected_wait_minutes
        assessment = replace(assessment, estimated_wait_minutes=wait)

        logger.info(
            f"Triaged patient {patient.id}: score={result.acuity_score} "
            f"urgency={result.urgency.value} dept={department.code} "
            f"rule={decision.rule_id} position={entry.position} wait={wait}m",
            extra={"department_id": department.id, "entry_id": entry.id, "action": "triage"},
        )

        await self._publish(
            QueueEventType.ENTRY_ENQUEUED,
            entry,
            urgency=entry.urgency.value,
            position=entry.position,
            expected_wait_minutes=wait,
            low_confidence=result.low_confidence,
        )

        if result.urgency == Urgency.RED:
            self._schedule_alert(
                CriticalAlert(
                    patient_id=patient.id,
                    patient_name=patient.display_name,
                    medical_record_number=patient.medical_record_number,
                    department_code=department.code,
                    department_name=department.name,
                    acuity_score=result.acuity_score,
                    entry_id=entry.id,
                    position=entry.position,
                    vitals={k: v for k, v in assessment.vitals.items() if v is not None},
                )
            )

        return assessment, entry

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def call_next(self, department_id: str, staff_id: str) -> QueueEntry:
        """Call the next patient for a staff member.

        Raises:
            DepartmentNotFoundError: Unknown department.
            EmptyQueueError: Nobody is waiting.
        """
        await self.directory.get_department(department_id)
        entry = await self.store.dequeue_next(department_id, staff_id)
        await self._publish(
            QueueEventType.PATIENT_CALLED,
            entry,
            staff_id=staff_id,
            urgency=entry.urgency.value,
        )
        return entry

    async def start_treatment(self, entry_id: str) -> QueueEntry:
        entry = await self.store.start(entry_id)
        await self._publish(QueueEventType.TREATMENT_STARTED, entry)
        return entry

    async def complete_patient(self, entry_id: str) -> QueueEntry:
        entry = await self.store.complete(entry_id)
        await self._publish(QueueEventType.PATIENT_COMPLETED, entry)
        return entry

    async def skip_patient(
        self,
        entry_id: str,
        reason: str,
        actor_id: str | None = None,
    ) -> QueueEntry:
        entry = await self.store.skip(entry_id, _require_reason(reason), actor_id)
        await self._publish(QueueEventType.PATIENT_SKIPPED, entry, reason=entry.status_reason)
        return entry

    async def cancel_entry(
        self,
        entry_id: str,
        reason: str,
        actor_id: str | None = None,
    ) -> QueueEntry:
        entry = await self.store.cancel(entry_id, _require_reason(reason), actor_id)
        await self._publish(QueueEventType.ENTRY_CANCELLED, entry, reason=entry.status_reason)
        return entry

    async def manual_reposition(
        self,
        entry_id: str,
        new_position: int,
        actor_id: str,
    ) -> QueueEntry:
        """Override an entry's position. Recorded on the entry and audited."""
        if not actor_id:
            raise SchedulerValidationError(
                "Manual repositioning needs an actor",
                entity_id=entry_id,
                field="actor_id",
            )
        entry = await self.store.reposition(entry_id, new_position, actor_id)
        await self._publish(
            QueueEventType.POSITION_UPDATED,
            entry,
            position=entry.position,
            actor_id=actor_id,
        )
        return entry

    async def reprioritize_department(
        self,
        department_id: str,
        actor_id: str | None = None,
    ) -> list[QueueEntry]:
        """Restore canonical urgency-then-arrival order, clearing overrides."""
        await self.directory.get_department(department_id)
        state = await self.store.reprioritize_all(department_id, actor_id)
        entries = state.waiting
        await self._emit(
            QueueEvent(
                event_type=QueueEventType.QUEUE_REPRIORITIZED,
                department_id=department_id,
                payload={
                    "actor_id": actor_id,
                    "order": [e.id for e in entries],
                },
                version=state.version,
            )
        )
        return entries

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_queue_snapshot(self, department_id: str) -> QueueSnapshot:
        """Active entries and department summary at a single version.

        Raises:
            DepartmentNotFoundError: Unknown department.
        """
        department = await self.directory.get_department(department_id)
        state = await self.store.snapshot(department_id)
        waiting = state.waiting
        in_progress = state.in_progress

        patients = await self.directory.get_patients(e.patient_id for e in state.entries.values())

        return QueueSnapshot(
            department=self._summarize(department, len(state.entries), waiting, in_progress),
            version=state.version,
            waiting=[SnapshotEntry(e, patients.get(e.patient_id)) for e in waiting],
            in_progress=[SnapshotEntry(e, patients.get(e.patient_id)) for e in in_progress],
        )

    async def get_entry(self, entry_id: str) -> QueueEntry:
        return await self.store.get_entry(entry_id)

    async def list_departments(self) -> list[DepartmentInfo]:
        return await self.directory.list_departments()

    @staticmethod
    def _summarize(
        department: DepartmentInfo,
        load: int,
        waiting: list[QueueEntry],
        in_progress: list[QueueEntry],
    ) -> DepartmentSummary:
        utilization = 0.0
        if department.max_capacity:
            utilization = round(load / department.max_capacity * 100, 1)
        average_wait = 0
        if waiting:
            average_wait = round(sum(e.expected_wait_minutes for e in waiting) / len(waiting))
        return DepartmentSummary(
            department_id=department.id,
            code=department.code,
            name=department.name,
            current_load=load,
            max_capacity=department.max_capacity,
            utilization=utilization,
            waiting_count=len(waiting),
            in_progress_count=len(in_progress),
            average_expected_wait=average_wait,
        )

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _publish(
        self,
        event_type: QueueEventType,
        entry: QueueEntry,
        **payload: Any,
    ) -> None:
        payload.setdefault("status", entry.status.value)
        payload.setdefault("patient_id", entry.patient_id)
        await self._emit(
            QueueEvent(
                event_type=event_type,
                department_id=entry.department_id,
                entry_id=entry.id,
                payload=payload,
                version=entry.version,
            )
        )

    async def _emit(self, event: QueueEvent) -> None:
        try:
            await self.notifier.publish(event.department_id, event)
        except Exception:
            logger.exception(
                f"Failed to publish {event.event_type.value}",
                extra={"department_id": event.department_id, "entry_id": event.entry_id},
            )

    def _schedule_alert(self, alert: CriticalAlert) -> None:
        if self.alerts is None:
            return
        task = asyncio.create_task(self._send_alert(alert))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    async def _send_alert(self, alert: CriticalAlert) -> None:
        try:
            await self.alerts.send_critical_alert(alert)
        except Exception:
            logger.exception(
                f"Critical alert failed for entry {alert.entry_id}",
                extra={"entry_id": alert.entry_id, "action": "critical_alert"},
            )

    @property
    def pending_alerts(self) -> int:
        return len(self._alert_tasks)

    async def shutdown(self) -> None:
        """Wait for in-flight critical alerts."""
        if self._alert_tasks:
            logger.info(f"Waiting for {len(self._alert_tasks)} critical alert(s)")
            await asyncio.gather(*list(self._alert_tasks), return_exceptions=True)
