"""Business logic services."""

from app.services.audit import AuditService
from app.services.directory import DepartmentDirectory, InMemoryDirectory, SqlDirectory
from app.services.notifications import CriticalAlert, CriticalAlertService
from app.services.queue_repository import SqlQueueRepository
from app.services.scheduler import QueueScheduler, TriageIntake

__all__ = [
    "AuditService",
    "DepartmentDirectory",
    "SqlDirectory",
    "InMemoryDirectory",
    "CriticalAlert",
    "CriticalAlertService",
    "SqlQueueRepository",
    "QueueScheduler",
    "TriageIntake",
]
