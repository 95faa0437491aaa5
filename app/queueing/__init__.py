"""Department queue state, persistence interface and change events."""

from app.queueing.events import BroadcastChangeNotifier, ChangeNotifier, QueueEvent, QueueEventType
from app.queueing.models import (
    DepartmentQueueState,
    QueueEntry,
    QueueStatus,
    TriageAssessment,
    Urgency,
)
from app.queueing.persistence import InMemoryQueuePersistence, QueuePersistence
from app.queueing.store import QueueStore
from app.queueing.wait_time import WaitTimeEstimator

__all__ = [
    "Urgency",
    "QueueStatus",
    "QueueEntry",
    "TriageAssessment",
    "DepartmentQueueState",
    "QueueStore",
    "QueuePersistence",
    "InMemoryQueuePersistence",
    "WaitTimeEstimator",
    "ChangeNotifier",
    "BroadcastChangeNotifier",
    "QueueEvent",
    "QueueEventType",
]
