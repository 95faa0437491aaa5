"""Queue change events and the sinks they are published to."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from app.utils.time import utc_now

logger = logging.getLogger(__name__)


class QueueEventType(str, Enum):
    """Kinds of queue change events."""

    ENTRY_ENQUEUED = "entry_enqueued"
    PATIENT_CALLED = "patient_called"
    TREATMENT_STARTED = "treatment_started"
    PATIENT_COMPLETED = "patient_completed"
    PATIENT_SKIPPED = "patient_skipped"
    ENTRY_CANCELLED = "entry_cancelled"
    POSITION_UPDATED = "position_updated"
    QUEUE_REPRIORITIZED = "queue_reprioritized"


@dataclass(frozen=True)
class QueueEvent:
    """A committed change to one department's queue."""

    event_type: QueueEventType
    department_id: str
    entry_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    # State version the change was committed at; orders events per department
    version: int | None = None
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "type": self.event_type.value,
            "department_id": self.department_id,
            "entry_id": self.entry_id,
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
            "data": self.payload,
        }


class ChangeNotifier(ABC):
    """Sink for committed queue changes."""

    @abstractmethod
    async def publish(self, department_id: str, event: QueueEvent) -> None:
        """Deliver an event. Implementations should not block for long."""


class NullChangeNotifier(ChangeNotifier):
    """Discards every event."""

    async def publish(self, department_id: str, event: QueueEvent) -> None:
        return None


class BroadcastChangeNotifier(ChangeNotifier):
    """Fans events out to per-department subscriber queues.

    Each subscriber (typically one WebSocket connection) gets a bounded
    ``asyncio.Queue``. A subscriber that falls behind loses events rather
    than slowing the publisher down.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self.max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        self.published_count = 0
        self.dropped_count = 0

    def subscribe(self, department_id: str) -> asyncio.Queue:
        """Register a new subscriber queue for a department."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.setdefault(department_id, set()).add(queue)
        logger.debug(
            f"Subscriber added for department {department_id} "
            f"({len(self._subscribers[department_id])} total)",
            extra={"department_id": department_id},
        )
        return queue

    def unsubscribe(self, department_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(department_id)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[department_id]

    def subscriber_count(self, department_id: str) -> int:
        return len(self._subscribers.get(department_id, ()))

    async def publish(self, department_id: str, event: QueueEvent) -> None:
        self.published_count += 1
        for queue in list(self._subscribers.get(department_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped_count += 1
                logger.warning(
                    f"Subscriber queue full, dropped {event.event_type.value}",
                    extra={"department_id": department_id},
                )
