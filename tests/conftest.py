"""Pytest configuration and fixtures."""

import os

# Must be set before app modules read settings
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.db.base import Base
from app.db.init_db import seed_departments
from app.db.session import get_db
from app.main import app
from app.models.department import Department
from app.models.patient import Patient
from app.queueing.events import BroadcastChangeNotifier
from app.queueing.models import DepartmentInfo, PatientInfo
from app.queueing.persistence import InMemoryQueuePersistence
from app.queueing.store import QueueStore
from app.rules.engine import DepartmentRouter
from app.services.directory import InMemoryDirectory, SqlDirectory
from app.services.notifications import CriticalAlertService
from app.services.queue_repository import SqlQueueRepository
from app.services.scheduler import QueueScheduler

# Use SQLite for testing (simpler than spinning up postgres)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Deterministic clock; every reading is one second after the last."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class RecordingNotifier(BroadcastChangeNotifier):
    """Broadcast notifier that also keeps every published event."""

    def __init__(self) -> None:
        super().__init__(max_queue_size=100)
        self.events = []

    async def publish(self, department_id, event) -> None:
        self.events.append(event)
        await super().publish(department_id, event)

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def db_departments(async_session: AsyncSession) -> dict[str, Department]:
    """Departments from the routing ruleset, keyed by code."""
    created = await seed_departments(async_session, DepartmentRouter().departments)
    return {d.code: d for d in created}


@pytest.fixture
async def db_patients(async_session: AsyncSession) -> list[Patient]:
    """A handful of registered patients."""
    patients = [
        Patient(
            medical_record_number=f"MRN-{i:04d}",
            first_name=f"Patient{i}",
            last_name="Test",
        )
        for i in range(1, 6)
    ]
    async_session.add_all(patients)
    await async_session.commit()
    return patients


# =============================================================================
# In-memory scheduler
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def persistence() -> InMemoryQueuePersistence:
    return InMemoryQueuePersistence()


@pytest.fixture
def store(persistence: InMemoryQueuePersistence, clock: FakeClock) -> QueueStore:
    return QueueStore(persistence, clock=clock)


@pytest.fixture
def departments() -> dict[str, DepartmentInfo]:
    """In-memory departments from the routing ruleset, keyed by code."""
    return {
        definition.code: DepartmentInfo(
            id=str(uuid4()),
            code=definition.code,
            name=definition.name,
            average_treatment_minutes=definition.average_treatment_minutes,
            current_load=0,
            max_capacity=definition.max_capacity,
        )
        for definition in DepartmentRouter().departments
    }


@pytest.fixture
def patients() -> list[PatientInfo]:
    return [
        PatientInfo(
            id=str(uuid4()),
            medical_record_number=f"MRN-{i:04d}",
            first_name=f"Patient{i}",
            last_name="Test",
        )
        for i in range(1, 6)
    ]


@pytest.fixture
def directory(departments, patients) -> InMemoryDirectory:
    return InMemoryDirectory(departments.values(), patients)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def scheduler(store, directory, notifier, clock) -> QueueScheduler:
    return QueueScheduler(
        store=store,
        directory=directory,
        notifier=notifier,
        alerts=CriticalAlertService(sms_recipients=["+254700000001"]),
        clock=clock,
    )


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
async def sql_scheduler(session_factory, notifier, clock) -> QueueScheduler:
    """Scheduler wired to the SQLite test database."""
    return QueueScheduler(
        store=QueueStore(SqlQueueRepository(session_factory), clock=clock),
        directory=SqlDirectory(session_factory),
        notifier=notifier,
        alerts=CriticalAlertService(),
        clock=clock,
    )


@pytest.fixture
async def async_client(
    sql_scheduler: QueueScheduler,
    notifier: RecordingNotifier,
    async_session: AsyncSession,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client running the app on the test's event loop."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.scheduler = sql_scheduler
    app.state.notifier = notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await sql_scheduler.shutdown()
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client() -> Generator[TestClient, None, None]:
    """FastAPI test client for endpoints that need no database."""
    with TestClient(app) as test_client:
        yield test_client
