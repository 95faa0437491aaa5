"""Department and patient lookup.

The scheduler reads departments and patients through a ``DepartmentDirectory``
and never writes them; ``current_load`` is maintained by the queue repository.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import DepartmentNotFoundError, PatientNotFoundError, PersistenceError
from app.models.department import Department
from app.models.patient import Patient
from app.queueing.models import DepartmentInfo, PatientInfo
from app.utils.ids import is_uuid


class DepartmentDirectory(ABC):
    """Read-only department and patient lookup."""

    @abstractmethod
    async def get_department(self, department_id: str) -> DepartmentInfo:
        """Raises DepartmentNotFoundError for unknown or inactive departments."""

    @abstractmethod
    async def get_department_by_code(self, code: str) -> DepartmentInfo:
        """Raises DepartmentNotFoundError for unknown or inactive codes."""

    @abstractmethod
    async def list_departments(self) -> list[DepartmentInfo]:
        """Active departments ordered by name."""

    @abstractmethod
    async def get_patient(self, patient_id: str) -> PatientInfo:
        """Raises PatientNotFoundError for unknown patients."""

    async def get_patients(self, patient_ids: Iterable[str]) -> dict[str, PatientInfo]:
        """Batch lookup; unknown ids are left out of the result."""
        found: dict[str, PatientInfo] = {}
        for patient_id in set(patient_ids):
            try:
                found[patient_id] = await self.get_patient(patient_id)
            except PatientNotFoundError:
                continue
        return found


def _department_info(department: Department) -> DepartmentInfo:
    return DepartmentInfo(
        id=department.id,
        code=department.code,
        name=department.name,
        average_treatment_minutes=department.average_treatment_minutes,
        current_load=department.current_load,
        max_capacity=department.max_capacity,
    )


def _patient_info(patient: Patient) -> PatientInfo:
    return PatientInfo(
        id=patient.id,
        medical_record_number=patient.medical_record_number,
        first_name=patient.first_name,
        last_name=patient.last_name,
    )


class SqlDirectory(DepartmentDirectory):
    """Directory backed by the departments and patients tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _scalar(self, query, what: str):
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load {what}") from exc

    async def get_department(self, department_id: str) -> DepartmentInfo:
        department = None
        if is_uuid(department_id):
            department = await self._scalar(
                select(Department)
                .where(Department.id == department_id)
                .where(Department.is_active == True),
                f"department {department_id}",
            )
        if department is None:
            raise DepartmentNotFoundError(
                f"Department {department_id} not found",
                entity_id=department_id,
            )
        return _department_info(department)

    async def get_department_by_code(self, code: str) -> DepartmentInfo:
        department = await self._scalar(
            select(Department)
            .where(Department.code == code)
            .where(Department.is_active == True),
            f"department {code}",
        )
        if department is None:
            raise DepartmentNotFoundError(
                f"No active department with code {code}",
                field="department_code",
            )
        return _department_info(department)

    async def list_departments(self) -> list[DepartmentInfo]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Department)
                    .where(Department.is_active == True)
                    .order_by(Department.name)
                )
                return [_department_info(d) for d in result.scalars()]
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not list departments") from exc

    async def get_patient(self, patient_id: str) -> PatientInfo:
        patient = None
        if is_uuid(patient_id):
            patient = await self._scalar(
                select(Patient)
                .where(Patient.id == patient_id)
                .where(Patient.is_deleted == False),
                f"patient {patient_id}",
            )
        if patient is None:
            raise PatientNotFoundError(
                f"Patient {patient_id} not found",
                entity_id=patient_id,
                field="patient_id",
            )
        return _patient_info(patient)

    async def get_patients(self, patient_ids: Iterable[str]) -> dict[str, PatientInfo]:
        ids = [p for p in set(patient_ids) if is_uuid(p)]
        if not ids:
            return {}
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(Patient).where(Patient.id.in_(ids)))
                return {p.id: _patient_info(p) for p in result.scalars()}
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not load patients") from exc


class InMemoryDirectory(DepartmentDirectory):
    """Dictionary-backed directory for tests and database-less runs."""

    def __init__(
        self,
        departments: Iterable[DepartmentInfo] = (),
        patients: Iterable[PatientInfo] = (),
    ) -> None:
        self.departments = {d.id: d for d in departments}
        self.patients = {p.id: p for p in patients}

    async def get_department(self, department_id: str) -> DepartmentInfo:
        try:
            return self.departments[department_id]
        except KeyError:
            raise DepartmentNotFoundError(
                f"Department {department_id} not found",
                entity_id=department_id,
            ) from None

    async def get_department_by_code(self, code: str) -> DepartmentInfo:
        for department in self.departments.values():
            if department.code == code:
                return department
        raise DepartmentNotFoundError(
            f"No active department with code {code}",
            field="department_code",
        )

    async def list_departments(self) -> list[DepartmentInfo]:
        return sorted(self.departments.values(), key=lambda d: d.name)

    async def get_patient(self, patient_id: str) -> PatientInfo:
        try:
            return self.patients[patient_id]
        except KeyError:
            raise PatientNotFoundError(
                f"Patient {patient_id} not found",
                entity_id=patient_id,
                field="patient_id",
            ) from None
