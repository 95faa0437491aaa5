"""Tests for the queue scheduler: triage intake through completion."""

import asyncio

import pytest

from app.core.errors import (
    DepartmentNotFoundError,
    DuplicateActiveEntryError,
    EmptyQueueError,
    InvalidVitalsError,
    PatientNotFoundError,
    SchedulerValidationError,
)
from app.queueing.events import ChangeNotifier, QueueEventType
from app.queueing.models import QueueStatus, Urgency
from app.queueing.persistence import InMemoryQueuePersistence, QueueMutation
from app.queueing.store import QueueStore
from app.scoring.mews import VitalSigns
from app.services.directory import InMemoryDirectory
from app.services.notifications import CriticalAlert, CriticalAlertService
from app.services.scheduler import QueueScheduler, TriageIntake

HYPOXIC = VitalSigns(oxygen_saturation=90)
CRITICAL = VitalSigns(oxygen_saturation=85, respiratory_rate=35, heart_rate=135)
NORMAL = VitalSigns(
    temperature=37.0,
    systolic_bp=120,
    heart_rate=75,
    respiratory_rate=16,
    oxygen_saturation=98,
)


def intake(patient, vitals=NORMAL, pain_scale=3, **kwargs) -> TriageIntake:
    return TriageIntake(
        patient_id=patient.id,
        nurse_id="nurse-1",
        vitals=vitals,
        pain_scale=pain_scale,
        **kwargs,
    )


class RecordingAlerts(CriticalAlertService):
    def __init__(self) -> None:
        super().__init__()
        self.alerts = []

    async def send_critical_alert(self, alert):
        self.alerts.append(alert)
        return []


class BrokenAlerts(CriticalAlertService):
    async def send_critical_alert(self, alert):
        raise RuntimeError("SMS gateway down")


class BrokenNotifier(ChangeNotifier):
    async def publish(self, department_id, event) -> None:
        raise RuntimeError("subscriber exploded")


class SlowPersistence(InMemoryQueuePersistence):
    """Commits take long enough for other intakes to queue up."""

    async def commit(self, mutation: QueueMutation) -> None:
        await asyncio.sleep(0.01)
        await super().commit(mutation)


class TestPerformTriage:
    """Tests for scoring, routing and enqueueing a triaged patient."""

    async def test_hypoxic_patient_routed_to_cardiology(
        self, scheduler, patients, departments, persistence
    ) -> None:
        """Test a lone SpO2 90 reading: score 3, GREEN, first in cardiology."""
        assessment, entry = await scheduler.perform_triage(intake(patients[0], HYPOXIC))

        assert assessment.acuity_score == 3
        assert assessment.urgency == Urgency.GREEN
        assert assessment.low_confidence is True
        assert assessment.recommended_department == "CARD"
        assert assessment.routing_rule_id == "hypoxia-or-chest-pain"
        assert len(assessment.routing_ruleset_hash) == 64
        assert entry.department_id == departments["CARD"].id
        assert entry.position == 1
        assert entry.expected_wait_minutes == 15
        assert entry.assessment_id == assessment.id
        assert persistence.assessments[assessment.id] == assessment

    async def test_red_goes_ahead_of_waiting_green(self, scheduler, patients) -> None:
        """Test a RED intake takes position 1 and the GREEN keeps its estimate."""
        _, green = await scheduler.perform_triage(intake(patients[0], HYPOXIC))
        assessment, red = await scheduler.perform_triage(intake(patients[1], CRITICAL, 8))

        assert assessment.urgency == Urgency.RED
        assert red.department_id == green.department_id
        assert red.position == 1
        assert red.expected_wait_minutes == 0

        shifted = await scheduler.get_entry(green.id)
        assert shifted.position == 2
        assert shifted.expected_wait_minutes == 15

        await scheduler.shutdown()

    async def test_wait_counts_equal_or_more_urgent(self, scheduler, patients) -> None:
        """Test the estimate uses entries at least as urgent as the newcomer."""
        await scheduler.perform_triage(intake(patients[0], HYPOXIC))
        await scheduler.perform_triage(intake(patients[1], HYPOXIC))
        _, third = await scheduler.perform_triage(intake(patients[2], HYPOXIC))

        # Two GREEN ahead in cardiology at 30 minutes each
        assert third.expected_wait_minutes == 60
        assert third.position == 3

    async def test_concurrent_intakes_count_each_other(
        self, directory, patients, notifier, clock
    ) -> None:
        """Test parallel GREEN intakes into cardiology each wait for those ahead."""
        persistence = SlowPersistence()
        scheduler = QueueScheduler(
            store=QueueStore(persistence, clock=clock),
            directory=directory,
            notifier=notifier,
            clock=clock,
        )

        results = await asyncio.gather(
            *(scheduler.perform_triage(intake(p, HYPOXIC)) for p in patients[:4])
        )

        joined = sorted(results, key=lambda result: result[1].position)
        assert [entry.position for _, entry in joined] == [1, 2, 3, 4]
        assert [entry.expected_wait_minutes for _, entry in joined] == [15, 30, 60, 90]
        assert [a.estimated_wait_minutes for a, _ in joined] == [15, 30, 60, 90]
        stored = [persistence.assessments[a.id].estimated_wait_minutes for a, _ in joined]
        assert stored == [15, 30, 60, 90]
        assert sorted(e.version for e in notifier.events) == [1, 2, 3, 4]

    async def test_symptoms_drive_routing(self, scheduler, patients, departments) -> None:
        """Test symptom flags and age pick the department."""
        _, neuro = await scheduler.perform_triage(intake(patients[0], symptoms={"seizure": True}))
        _, peds = await scheduler.perform_triage(
            intake(patients[1], symptoms={"pediatric": True}, age_years=6)
        )
        _, general = await scheduler.perform_triage(intake(patients[2]))

        assert neuro.department_id == departments["NEURO"].id
        assert peds.department_id == departments["PEDS"].id
        assert general.department_id == departments["GEN"].id

    async def test_symptoms_recorded_in_full(self, scheduler, patients) -> None:
        """Test every known flag is stored, unset ones as False."""
        assessment, _ = await scheduler.perform_triage(
            intake(patients[0], symptoms={"burn": True}, chief_complaint="Scald to forearm")
        )

        assert assessment.symptoms["burn"] is True
        assert assessment.symptoms["chest_pain"] is False
        assert len(assessment.symptoms) == 12
        assert assessment.chief_complaint == "Scald to forearm"

    async def test_unknown_symptom_rejected(self, scheduler, patients, store, departments) -> None:
        with pytest.raises(SchedulerValidationError) as exc_info:
            await scheduler.perform_triage(intake(patients[0], symptoms={"hiccups": True}))

        assert exc_info.value.field == "symptoms"
        assert (await store.snapshot(departments["GEN"].id)).active_count == 0

    async def test_invalid_vitals_rejected(self, scheduler, patients, persistence) -> None:
        with pytest.raises(InvalidVitalsError) as exc_info:
            await scheduler.perform_triage(intake(patients[0], VitalSigns(heart_rate=400)))

        assert exc_info.value.field == "heart_rate"
        assert persistence.mutations == []

    async def test_unknown_patient(self, scheduler, patients) -> None:
        unknown = TriageIntake(
            patient_id="no-such-patient",
            nurse_id="nurse-1",
            vitals=NORMAL,
            pain_scale=3,
        )

        with pytest.raises(PatientNotFoundError):
            await scheduler.perform_triage(unknown)

    async def test_routed_department_not_configured(self, store, departments, patients) -> None:
        directory = InMemoryDirectory(
            [d for code, d in departments.items() if code != "GEN"],
            patients,
        )
        scheduler = QueueScheduler(store=store, directory=directory)

        with pytest.raises(DepartmentNotFoundError) as exc_info:
            await scheduler.perform_triage(intake(patients[0]))

        assert exc_info.value.field == "department_code"

    async def test_duplicate_triage_rejected(self, scheduler, patients, persistence) -> None:
        await scheduler.perform_triage(intake(patients[0]))

        with pytest.raises(DuplicateActiveEntryError):
            await scheduler.perform_triage(intake(patients[0]))

        assert len(persistence.assessments) == 1


class TestCriticalAlerts:
    """RED intakes alert staff without holding up the caller."""

    async def test_red_intake_alerts(self, store, directory, patients) -> None:
        alerts = RecordingAlerts()
        scheduler = QueueScheduler(store=store, directory=directory, alerts=alerts)

        _, entry = await scheduler.perform_triage(intake(patients[0], CRITICAL))
        await scheduler.shutdown()

        assert len(alerts.alerts) == 1
        alert = alerts.alerts[0]
        assert alert.entry_id == entry.id
        assert alert.department_code == "CARD"
        assert alert.medical_record_number == "MRN-0001"
        assert alert.vitals == {"heart_rate": 135, "respiratory_rate": 35, "oxygen_saturation": 85}
        assert "MRN-0001" in alert.render()

    async def test_non_red_does_not_alert(self, store, directory, patients) -> None:
        alerts = RecordingAlerts()
        scheduler = QueueScheduler(store=store, directory=directory, alerts=alerts)

        await scheduler.perform_triage(intake(patients[0], HYPOXIC))
        await scheduler.shutdown()

        assert alerts.alerts == []

    async def test_alert_failure_does_not_fail_triage(self, store, directory, patients) -> None:
        scheduler = QueueScheduler(store=store, directory=directory, alerts=BrokenAlerts())

        assessment, entry = await scheduler.perform_triage(intake(patients[0], CRITICAL))
        await scheduler.shutdown()

        assert assessment.urgency == Urgency.RED
        assert entry.position == 1
        assert scheduler.pending_alerts == 0

    async def test_alert_service_delivers_to_each_recipient(self) -> None:
        service = CriticalAlertService(
            sms_recipients=["+254700000001", ""],
            email_recipients=["lead@example.org", "not-an-address"],
        )
        alert_args = dict(
            patient_id="p1",
            patient_name="Patient One",
            medical_record_number=None,
            department_code="CARD",
            department_name="Emergency/Cardiology",
            acuity_score=9,
            entry_id="e1",
            position=1,
        )
        deliveries = await service.send_critical_alert(CriticalAlert(**alert_args))

        assert [d.ok for d in deliveries] == [True, False, True, False]
        assert {d.channel for d in deliveries} == {"sms", "email"}

    async def test_disabled_alerts_send_nothing(self) -> None:
        service = CriticalAlertService(sms_recipients=["+254700000001"], enabled=False)
        alert = CriticalAlert("p1", "P One", None, "GEN", "General", 8, "e1", 1)

        assert await service.send_critical_alert(alert) == []


class TestLifecycle:
    """Tests for the lifecycle operations and their change events."""

    async def test_full_lifecycle_events(self, scheduler, patients, notifier, departments) -> None:
        _, entry = await scheduler.perform_triage(intake(patients[0]))
        department_id = departments["GEN"].id

        called = await scheduler.call_next(department_id, "nurse-2")
        started = await scheduler.start_treatment(called.id)
        done = await scheduler.complete_patient(called.id)

        assert called.id == entry.id
        assert started.started_at is not None
        assert done.status == QueueStatus.COMPLETED
        assert notifier.types() == [
            "entry_enqueued",
            "patient_called",
            "treatment_started",
            "patient_completed",
        ]
        assert all(e.department_id == department_id for e in notifier.events)
        assert notifier.events[1].payload["staff_id"] == "nurse-2"
        assert [e.version for e in notifier.events] == [1, 2, 3, 4]

    async def test_call_next_unknown_department(self, scheduler) -> None:
        with pytest.raises(DepartmentNotFoundError):
            await scheduler.call_next("no-such-department", "nurse-1")

    async def test_call_next_empty(self, scheduler, departments, persistence) -> None:
        department_id = departments["GEN"].id

        with pytest.raises(EmptyQueueError):
            await scheduler.call_next(department_id, "nurse-1")

        assert department_id not in persistence.department_loads

    async def test_skip_and_cancel_need_a_reason(self, scheduler, patients) -> None:
        _, entry = await scheduler.perform_triage(intake(patients[0]))

        for operation in (scheduler.skip_patient, scheduler.cancel_entry):
            with pytest.raises(SchedulerValidationError) as exc_info:
                await operation(entry.id, "   ")
            assert exc_info.value.field == "reason"

        assert (await scheduler.get_entry(entry.id)).status == QueueStatus.WAITING

    async def test_skip_and_cancel(self, scheduler, patients, notifier) -> None:
        _, first = await scheduler.perform_triage(intake(patients[0]))
        _, second = await scheduler.perform_triage(intake(patients[1]))

        skipped = await scheduler.skip_patient(first.id, " did not answer ", "nurse-1")
        cancelled = await scheduler.cancel_entry(second.id, "left")

        assert skipped.status_reason == "did not answer"
        assert cancelled.status == QueueStatus.CANCELLED
        assert notifier.types()[-2:] == ["patient_skipped", "entry_cancelled"]
        assert notifier.events[-2].payload["reason"] == "did not answer"

    async def test_manual_reposition(self, scheduler, patients, notifier) -> None:
        entries = [(await scheduler.perform_triage(intake(p)))[1] for p in patients[:3]]

        moved = await scheduler.manual_reposition(entries[2].id, 1, "charge-nurse")

        assert moved.position == 1
        assert moved.position_overridden_by == "charge-nurse"
        assert notifier.events[-1].event_type == QueueEventType.POSITION_UPDATED
        assert notifier.events[-1].payload["actor_id"] == "charge-nurse"

    async def test_manual_reposition_needs_actor(self, scheduler, patients) -> None:
        _, entry = await scheduler.perform_triage(intake(patients[0]))

        with pytest.raises(SchedulerValidationError) as exc_info:
            await scheduler.manual_reposition(entry.id, 1, "")

        assert exc_info.value.field == "actor_id"

    async def test_reprioritize_department(self, scheduler, patients, departments, notifier) -> None:
        _, green = await scheduler.perform_triage(intake(patients[0], HYPOXIC))
        _, red = await scheduler.perform_triage(intake(patients[1], CRITICAL))
        await scheduler.manual_reposition(green.id, 1, "charge-nurse")

        ordered = await scheduler.reprioritize_department(departments["CARD"].id, "charge-nurse")
        await scheduler.shutdown()

        assert [e.id for e in ordered] == [red.id, green.id]
        event = notifier.events[-1]
        assert event.event_type == QueueEventType.QUEUE_REPRIORITIZED
        assert event.entry_id is None
        assert event.payload["order"] == [red.id, green.id]
        assert event.version == 4

    async def test_notifier_failure_does_not_fail_operation(self, store, directory, patients) -> None:
        scheduler = QueueScheduler(store=store, directory=directory, notifier=BrokenNotifier())

        _, entry = await scheduler.perform_triage(intake(patients[0]))
        called = await scheduler.call_next(entry.department_id, "nurse-1")

        assert called.id == entry.id


class TestQueueSnapshot:
    """Tests for the read side."""

    async def test_snapshot(self, scheduler, patients, departments) -> None:
        department = departments["GEN"]
        for patient in patients[:3]:
            await scheduler.perform_triage(intake(patient))
        await scheduler.call_next(department.id, "nurse-1")

        snapshot = await scheduler.get_queue_snapshot(department.id)

        assert [s.entry.position for s in snapshot.waiting] == [1, 2]
        assert [s.patient.medical_record_number for s in snapshot.waiting] == ["MRN-0002", "MRN-0003"]
        assert snapshot.in_progress[0].patient.display_name == "Patient1 Test"
        assert len(snapshot.entries) == 3
        assert snapshot.version == 4

        summary = snapshot.department
        assert summary.code == "GEN"
        assert summary.current_load == 3
        assert summary.waiting_count == 2
        assert summary.in_progress_count == 1
        assert summary.utilization == round(3 / department.max_capacity * 100, 1)

    async def test_empty_snapshot(self, scheduler, departments) -> None:
        snapshot = await scheduler.get_queue_snapshot(departments["TRAUMA"].id)

        assert snapshot.entries == []
        assert snapshot.version == 0
        assert snapshot.department.average_expected_wait == 0

    async def test_snapshot_unknown_department(self, scheduler) -> None:
        with pytest.raises(DepartmentNotFoundError):
            await scheduler.get_queue_snapshot("nowhere")

    async def test_list_departments(self, scheduler) -> None:
        names = [d.name for d in await scheduler.list_departments()]

        assert names == sorted(names)
        assert len(names) == 7
