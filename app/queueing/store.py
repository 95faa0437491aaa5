"""Per-department queue store.

The store is the only component allowed to change queue positions or entry
status. Each department has:

- a published ``DepartmentQueueState``: an immutable mapping of its active
  (WAITING and IN_PROGRESS) entries plus a version number;
- an ``asyncio.Lock`` serializing structural operations for that department.

A structural operation takes the department lock, copies the published
entries into a private working set, applies its change, checks the
dense-position invariant, persists the mutation and only then publishes the
working set as the new state. If anything raises before the publish step
the published state is untouched, so every operation is all-or-nothing.
Each commit bumps the version and stamps it on the entries it wrote.

Readers use the published state without the lock. Since states are never
edited in place, a reader sees either the state before an operation or the
state after it.

``asyncio.Lock`` wakes waiters in arrival order and does not let a new caller
take a free lock ahead of queued waiters, so no caller can starve. Locks of
different departments are independent.
"""

import asyncio
import itertools
import logging
from dataclasses import replace
from datetime import datetime
from types import MappingProxyType
from typing import Callable
from uuid import uuid4

from app.core.errors import (
    DuplicateActiveEntryError,
    EmptyQueueError,
    EntryNotFoundError,
    InvalidTransitionError,
    OutOfRangeError,
    PersistenceError,
    QueueInvariantError,
    SchedulerError,
)
from app.queueing.models import (
    ALLOWED_TRANSITIONS,
    DepartmentQueueState,
    QueueEntry,
    QueueStatus,
    TriageAssessment,
    Urgency,
)
from app.queueing.persistence import AuditRecord, QueueMutation, QueuePersistence
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


class _WorkingSet:
    """Private, mutable copy of a department's entries for one operation."""

    def __init__(self, state: DepartmentQueueState) -> None:
        self.base = state
        self.entries: dict[str, QueueEntry] = dict(state.entries)
        self.retired: list[QueueEntry] = []
        self.audit: AuditRecord | None = None
        self.assessment: TriageAssessment | None = None
        # Changed entries as committed, stamped with the new version
        self.committed: dict[str, QueueEntry] = {}

    def waiting(self) -> list[QueueEntry]:
        return sorted(
            (e for e in self.entries.values() if e.status == QueueStatus.WAITING),
            key=lambda e: e.position or 0,
        )

    def put(self, entry: QueueEntry) -> None:
        self.entries[entry.id] = entry

    def retire(self, entry: QueueEntry) -> None:
        """Remove an entry that reached a terminal status."""
        self.entries.pop(entry.id, None)
        self.retired.append(entry)

    def compact(self) -> None:
        """Renumber WAITING entries 1..N keeping their relative order."""
        for index, entry in enumerate(self.waiting(), start=1):
            if entry.position != index:
                self.put(replace(entry, position=index))

    def changed(self) -> tuple[QueueEntry, ...]:
        """Entries that differ from the published state."""
        updated = [
            entry
            for entry_id, entry in self.entries.items()
            if self.base.entries.get(entry_id) is not entry
        ]
        return tuple(updated + self.retired)

    def check_invariants(self) -> None:
        """Raise if the working set would publish an inconsistent queue."""
        positions = sorted(e.position for e in self.waiting())
        if positions != list(range(1, len(positions) + 1)):
            raise QueueInvariantError(
                f"WAITING positions are not dense: {positions}",
                entity_id=self.base.department_id,
            )

        patients: set[str] = set()
        for entry in self.entries.values():
            if entry.status != QueueStatus.WAITING and entry.position is not None:
                raise QueueInvariantError(
                    f"{entry.status.value} entry still holds a position",
                    entity_id=entry.id,
                )
            if entry.patient_id in patients:
                raise QueueInvariantError(
                    "Patient has more than one active entry",
                    entity_id=entry.patient_id,
                )
            patients.add(entry.patient_id)


class QueueStore:
    """Owner of per-department ordered queue state."""

    def __init__(
        self,
        persistence: QueuePersistence,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.persistence = persistence
        self.clock = clock
        self._states: dict[str, DepartmentQueueState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._entry_departments: dict[str, str] = {}
        self._sequence = itertools.count(1)
        self._last_sequence = 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, department_id: str) -> asyncio.Lock:
        lock = self._locks.get(department_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[department_id] = lock
        return lock

    def _next_sequence(self) -> int:
        self._last_sequence = next(self._sequence)
        return self._last_sequence

    async def _ensure_loaded(self, department_id: str) -> DepartmentQueueState:
        """Hydrate a department from persistence. Caller holds its lock.

        Non-dense WAITING positions left in storage are renumbered and the
        repair is committed before the state is published.
        """
        state = self._states.get(department_id)
        if state is not None:
            return state

        try:
            loaded = await self.persistence.load_active(department_id)
        except SchedulerError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Could not load queue for department {department_id}",
                entity_id=department_id,
            ) from exc

        highest = max((e.sequence for e in loaded), default=0)
        if highest > self._last_sequence:
            self._sequence = itertools.count(highest + 1)
            self._last_sequence = highest

        state = DepartmentQueueState(
            department_id=department_id,
            version=0,
            entries=MappingProxyType({e.id: e for e in loaded}),
        )
        working = _WorkingSet(state)
        working.compact()
        if working.changed():
            logger.warning(
                f"Renumbering {len(working.changed())} non-dense positions "
                f"while loading department {department_id}",
                extra={"department_id": department_id, "action": "hydrate_repair"},
            )
            state = await self._commit(working, "hydrate_repair")
        else:
            self._states[department_id] = state
            for entry_id in state.entries:
                self._entry_departments[entry_id] = department_id

        logger.info(
            f"Loaded {len(loaded)} active entries for department {department_id}",
            extra={"department_id": department_id},
        )
        return state

    async def _commit(self, working: _WorkingSet, operation: str) -> DepartmentQueueState:
        """Persist the working set and publish it. Caller holds the lock."""
        working.check_invariants()

        department_id = working.base.department_id
        version = working.base.version + 1
        changed = tuple(replace(entry, version=version) for entry in working.changed())
        for entry in changed:
            if entry.id in working.entries:
                working.entries[entry.id] = entry
            working.committed[entry.id] = entry

        mutation = QueueMutation(
            department_id=department_id,
            operation=operation,
            version=version,
            changed=changed,
            current_load=len(working.entries),
            assessment=working.assessment,
            audit=working.audit,
        )

        try:
            await self.persistence.commit(mutation)
        except SchedulerError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Failed to persist {operation} for department {department_id}",
                entity_id=department_id,
            ) from exc

        state = DepartmentQueueState(
            department_id=department_id,
            version=version,
            entries=MappingProxyType(working.entries),
        )
        self._states[department_id] = state

        for entry_id in working.entries:
            self._entry_departments[entry_id] = department_id
        for entry in working.retired:
            self._entry_departments.pop(entry.id, None)

        logger.debug(
            f"Committed {operation} v{version} for department {department_id}",
            extra={"department_id": department_id, "action": operation},
        )
        return state

    async def _department_of(self, entry_id: str) -> str:
        department_id = self._entry_departments.get(entry_id)
        if department_id is not None:
            return department_id

        entry = await self._load_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Queue entry {entry_id} not found", entity_id=entry_id)
        return entry.department_id

    async def _load_entry(self, entry_id: str) -> QueueEntry | None:
        try:
            return await self.persistence.get_entry(entry_id)
        except SchedulerError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Could not load queue entry {entry_id}",
                entity_id=entry_id,
            ) from exc

    async def _require(
        self,
        working: _WorkingSet,
        entry_id: str,
        target: QueueStatus,
        action: str,
    ) -> QueueEntry:
        """Fetch an active entry and check it may move to ``target``."""
        entry = working.entries.get(entry_id)
        if entry is None:
            # Not active: either terminal already or unknown
            stored = await self._load_entry(entry_id)
            if stored is None:
                raise EntryNotFoundError(f"Queue entry {entry_id} not found", entity_id=entry_id)
            entry = stored

        if target not in ALLOWED_TRANSITIONS[entry.status]:
            raise InvalidTransitionError(
                f"Cannot {action} entry in status {entry.status.value}",
                entity_id=entry_id,
                field="status",
            )
        return entry

    # ------------------------------------------------------------------
    # Structural operations
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        department_id: str,
        patient_id: str,
        urgency: Urgency,
        estimated_wait: int | Callable[[int], int],
        *,
        assessment: TriageAssessment | None = None,
    ) -> QueueEntry:
        """Add a patient at the tail of their urgency band.

        Position is one past the last WAITING entry at least as urgent;
        every entry from that position on moves down one slot.

        ``estimated_wait`` is either fixed minutes or a function of the
        number of WAITING entries at least as urgent. A function is called
        under the department lock, and its result is also written to the
        attached assessment.

        Raises:
            DuplicateActiveEntryError: Patient already active in this department.
        """
        async with self._lock_for(department_id):
            working = _WorkingSet(await self._ensure_loaded(department_id))

            for existing in working.entries.values():
                if existing.patient_id == patient_id:
                    raise DuplicateActiveEntryError(
                        f"Patient {patient_id} already has an active entry "
                        f"in department {department_id}",
                        entity_id=existing.id,
                        field="patient_id",
                    )

            waiting = working.waiting()
            ahead = sum(1 for e in waiting if e.urgency.rank <= urgency.rank)
            position = ahead + 1
            wait = estimated_wait(ahead) if callable(estimated_wait) else estimated_wait
            if assessment is not None:
                assessment = replace(assessment, estimated_wait_minutes=wait)

            for entry in waiting:
                if entry.position >= position:
                    working.put(replace(entry, position=entry.position + 1))

            entry = QueueEntry(
                id=str(uuid4()),
                department_id=department_id,
                patient_id=patient_id,
                urgency=urgency,
                position=position,
                expected_wait_minutes=wait,
                status=QueueStatus.WAITING,
                enqueued_at=self.clock(),
                sequence=self._next_sequence(),
                assessment_id=assessment.id if assessment else None,
            )
            working.put(entry)
            working.assessment = assessment

            await self._commit(working, "enqueue")
            return working.committed[entry.id]

    async def dequeue_next(self, department_id: str, staff_id: str) -> QueueEntry:
        """Call the most urgent WAITING entry, lowest position first.

        Raises:
            EmptyQueueError: No WAITING entries in the department.
        """
        async with self._lock_for(department_id):
            working = _WorkingSet(await self._ensure_loaded(department_id))

            waiting = working.waiting()
            if not waiting:
                raise EmptyQueueError(
                    f"No patients waiting in department {department_id}",
                    entity_id=department_id,
                )

            selected = min(waiting, key=lambda e: (e.urgency.rank, e.position))
            called = selected.transition(
                QueueStatus.IN_PROGRESS,
                position=None,
                called_at=self.clock(),
                assigned_staff_id=staff_id,
            )
            working.put(called)
            working.compact()
            working.audit = AuditRecord(
                action="patient_called",
                entity_id=called.id,
                actor_id=staff_id,
                metadata={
                    "department_id": department_id,
                    "urgency": called.urgency.value,
                    "from_position": selected.position,
                },
            )

            await self._commit(working, "dequeue_next")
            return working.committed[called.id]

    async def start(self, entry_id: str) -> QueueEntry:
        """Stamp the treatment start time on a called entry.

        Raises:
            InvalidTransitionError: Entry is not IN_PROGRESS or already started.
        """
        department_id = await self._department_of(entry_id)
        async with self._lock_for(department_id):
            working = _WorkingSet(await self._ensure_loaded(department_id))

            entry = await self._require(working, entry_id, QueueStatus.COMPLETED, "start")
            if entry.started_at is not None:
                raise InvalidTransitionError(
                    "Treatment already started",
                    entity_id=entry_id,
                    field="started_at",
                )

            started = replace(entry, started_at=self.clock())
            working.put(started)

            await self._commit(working, "start")
            return working.committed[started.id]

    async def complete(self, entry_id: str) -> QueueEntry:
        """Mark an IN_PROGRESS entry as COMPLETED.

        Raises:
            InvalidTransitionError: Entry is not IN_PROGRESS.
        """
        department_id = await self._department_of(entry_id)
        async with self._lock_for(department_id):
            working = _WorkingSet(await self._ensure_loaded(department_id))

            entry = await self._require(working, entry_id, QueueStatus.COMPLETED, "complete")
            done = entry.transition(QueueStatus.COMPLETED, completed_at=self.clock())
            working.retire(done)
            working.audit = AuditRecord(
                action="patient_completed",
                entity_id=entry_id,
                actor_id=entry.assigned_staff_id,
                metadata={"department_id": department_id},
            )

            await self._commit(working, "complete")
            return working.committed[done.id]

    async def skip(
        self,
        entry_id: str,
        reason: str,
        actor_id: str | None = None,
    ) -> QueueEntry:
        """Move a WAITING entry to SKIPPED and close the gap it leaves.

        Raises:
            InvalidTransitionError: Entry is not WAITING.
        """
        return await self._remove_waiting(entry_id, QueueStatus.SKIPPED, reason, actor_id)

    async def cancel(
        self,
        entry_id: str,
        reason: str,
        actor_id: str | None = None,
    ) -> QueueEntry:
        """Move a WAITING entry to CANCELLED and close the gap it leaves.

        Raises:
            InvalidTransitionError: Entry is not WAITING.
        """
        return await self._remove_waiting(entry_id, QueueStatus.CANCELLED, reason, actor_id)

    async def _remove_waiting(
        self,
        entry_id: str,
        target: QueueStatus,
        reason: str,
        actor_id: str | None,
    ) -> QueueEntry:
        department_id = await self._department_of(entry_id)
        async with self._lock_for(department_id):
            working = _WorkingSet(await self._ensure_loaded(department_id))

            action = "skip" if target == QueueStatus.SKIPPED else "cancel"
            entry = await self._require(working, entry_id, target, action)
            removed = entry.transition(target, position=None, status_reason=reason)
            working.retire(removed)
            working.compact()
            working.audit = AuditRecord(
                action=f"patient_{target.value.lower()}",
                entity_id=entry_id,
                actor_id=actor_id,
                actor_type="staff" if actor_id else "system",
                metadata={
                    "department_id": department_id,
                    "reason": reason,
                    "from_position": entry.position,
                },
            )

            await self._commit(working, action)
            return working.committed[removed.id]

    async def reposition(
        self,
        entry_id: str,
        new_position: int,
        actor_id: str,
    ) -> QueueEntry:
        """Move a WAITING entry to an explicit position.

        Entries between the old and new slot shift one place toward the
        vacated slot. The move is stamped on the entry as a manual override
        and audited; it stays until reprioritize_all() clears it.

        Raises:
            InvalidTransitionError: Entry is not WAITING.
            OutOfRangeError: new_position not in [1, waiting count].
        """
        department_id = await self._department_of(entry_id)
        async with self._lock_for(department_id):
            working = _WorkingSet(await self._ensure_loaded(department_id))

            entry = await self._require(working, entry_id, QueueStatus.SKIPPED, "reposition")

            waiting = working.waiting()
            if (
                isinstance(new_position, bool)
                or not isinstance(new_position, int)
                or not 1 <= new_position <= len(waiting)
            ):
                raise OutOfRangeError(
                    f"Position must be between 1 and {len(waiting)}, got {new_position}",
                    entity_id=entry_id,
                    field="new_position",
                )

            old_position = entry.position
            for other in waiting:
                if other.id == entry_id:
                    continue
                if new_position < old_position and new_position <= other.position < old_position:
                    working.put(replace(other, position=other.position + 1))
                elif new_position > old_position and old_position < other.position <= new_position:
                    working.put(replace(other, position=other.position - 1))

            now = self.clock()
            moved = replace(
                entry,
                position=new_position,
                position_overridden_by=actor_id,
                position_overridden_at=now,
            )
            working.put(moved)
            working.audit = AuditRecord(
                action="position_override",
                entity_id=entry_id,
                actor_id=actor_id,
                description="Manual queue reposition",
                metadata={
                    "department_id": department_id,
                    "from_position": old_position,
                    "to_position": new_position,
                    "urgency": entry.urgency.value,
                },
            )

            await self._commit(working, "reposition")
            return working.committed[moved.id]

    async def reprioritize_all(
        self,
        department_id: str,
        actor_id: str | None = None,
    ) -> DepartmentQueueState:
        """Rebuild WAITING positions from the canonical ordering.

        Canonical order is urgency rank, then enqueue time (then enqueue
        sequence for identical timestamps). Manual overrides are discarded.
        Running it twice in a row yields the same positions.

        Returns:
            The committed state; its ``waiting`` list is the new order
        """
        async with self._lock_for(department_id):
            working = _WorkingSet(await self._ensure_loaded(department_id))

            ordered = sorted(working.waiting(), key=lambda e: e.canonical_key)
            cleared = sum(1 for e in ordered if e.is_overridden)
            for index, entry in enumerate(ordered, start=1):
                if entry.position != index or entry.is_overridden:
                    working.put(
                        replace(
                            entry,
                            position=index,
                            position_overridden_by=None,
                            position_overridden_at=None,
                        )
                    )

            working.audit = AuditRecord(
                action="queue_reprioritized",
                entity_id=department_id,
                entity_type="department",
                actor_id=actor_id,
                actor_type="staff" if actor_id else "system",
                metadata={
                    "waiting": len(ordered),
                    "moved": len(working.changed()),
                    "overrides_cleared": cleared,
                },
            )

            return await self._commit(working, "reprioritize_all")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def snapshot(self, department_id: str) -> DepartmentQueueState:
        """Current published state of a department's queue."""
        state = self._states.get(department_id)
        if state is None:
            async with self._lock_for(department_id):
                state = await self._ensure_loaded(department_id)
        return state

    async def count_ahead(self, department_id: str, urgency: Urgency) -> int:
        """WAITING entries at least as urgent as ``urgency``."""
        state = await self.snapshot(department_id)
        return sum(1 for e in state.waiting if e.urgency.rank <= urgency.rank)

    async def get_entry(self, entry_id: str) -> QueueEntry:
        """Look up an entry in any status.

        Raises:
            EntryNotFoundError: Unknown entry id.
        """
        department_id = self._entry_departments.get(entry_id)
        if department_id is not None:
            entry = self._states[department_id].entries.get(entry_id)
            if entry is not None:
                return entry

        entry = await self._load_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Queue entry {entry_id} not found", entity_id=entry_id)
        return entry
