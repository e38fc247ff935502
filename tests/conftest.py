"""
Shared fixtures: in-memory gateways and a patient session.
"""

import asyncio
from datetime import date, datetime
from typing import Dict, List, Optional

import pytest

from medicitas.config import Settings
from medicitas.errors import TransportError
from medicitas.models.appointment import Appointment, AppointmentStatus
from medicitas.models.directory import DoctorDirectoryEntry, Specialty
from medicitas.models.session import SessionContext, UserProfile
from medicitas.services.notifications import Notifier


class FakeDirectory:
    """Directory gateway backed by lists; can be told to fail."""

    def __init__(self):
        self.specialties: List[Specialty] = [Specialty(id=1, name="Cardiology")]
        self.doctors: Dict[int, List[DoctorDirectoryEntry]] = {
            1: [
                DoctorDirectoryEntry(
                    id=7, name="Dra. Lucía Fernández", specialty_id=1, specialty_name="Cardiology"
                )
            ]
        }
        self.specialty_calls = 0
        self.doctor_calls: List[int] = []
        self.doctor_gates: Dict[int, asyncio.Event] = {}
        self.fail_with: Optional[TransportError] = None

    def hold_doctors(self, specialty_id: int) -> asyncio.Event:
        """Make doctor lookups for a specialty wait until the event is set."""
        return self.doctor_gates.setdefault(specialty_id, asyncio.Event())

    async def list_specialties(self, per_page: int = 100) -> List[Specialty]:
        self.specialty_calls += 1
        if self.fail_with:
            raise self.fail_with
        return list(self.specialties)

    async def list_doctors(self, specialty_id: int, per_page: int = 100) -> List[DoctorDirectoryEntry]:
        self.doctor_calls.append(specialty_id)
        gate = self.doctor_gates.get(specialty_id)
        if gate is not None:
            await gate.wait()
        if self.fail_with:
            raise self.fail_with
        return list(self.doctors.get(specialty_id, []))


class FakeAppointments:
    """
    Appointment gateway whose slot lookups can be held back per
    (doctor, day) to control response order.
    """

    def __init__(self):
        self.slots: Dict[tuple, object] = {}
        self.gates: Dict[tuple, asyncio.Event] = {}
        self.slot_calls: List[tuple] = []
        self.created: List[dict] = []
        self.rescheduled: List[tuple] = []
        self.cancelled: List[int] = []
        self.list_calls = 0
        self.records: List[Appointment] = []
        self.list_gates: List[asyncio.Event] = []
        self.fail_with: Optional[TransportError] = None

    def hold(self, doctor_id: int, day: date) -> asyncio.Event:
        """Make slot lookups for (doctor, day) wait until the event is set."""
        return self.gates.setdefault((doctor_id, day), asyncio.Event())

    async def get_available_slots(self, doctor_id: int, day: date) -> List[str]:
        key = (doctor_id, day)
        self.slot_calls.append(key)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        result = self.slots.get(key, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def create_appointment(self, doctor_id, patient_id, start, end, reason) -> Appointment:
        if self.fail_with:
            raise self.fail_with
        self.created.append(
            {"doctor_id": doctor_id, "patient_id": patient_id, "start": start, "end": end, "reason": reason}
        )
        return Appointment(id=100 + len(self.created), start=start, end=end, reason=reason)

    async def reschedule_appointment(self, appointment_id: int, start: datetime, end: datetime) -> Appointment:
        if self.fail_with:
            raise self.fail_with
        self.rescheduled.append((appointment_id, start, end))
        for i, record in enumerate(self.records):
            if record.id == appointment_id:
                self.records[i] = record.model_copy(update={"start": start, "end": end})
                return self.records[i]
        return Appointment(id=appointment_id, start=start, end=end)

    async def cancel_appointment(self, appointment_id: int) -> Optional[Appointment]:
        if self.fail_with:
            raise self.fail_with
        self.cancelled.append(appointment_id)
        for i, record in enumerate(self.records):
            if record.id == appointment_id:
                self.records[i] = record.model_copy(update={"status": AppointmentStatus.CANCELLED})
                return self.records[i]
        return None

    def hold_list(self) -> asyncio.Event:
        """Make the next list call answer only once the returned event is set."""
        gate = asyncio.Event()
        self.list_gates.append(gate)
        return gate

    async def list_patient_appointments(self, patient_id: int) -> List[Appointment]:
        self.list_calls += 1
        if self.fail_with:
            raise self.fail_with
        snapshot = list(self.records)
        if self.list_gates:
            await self.list_gates.pop(0).wait()
        return snapshot


@pytest.fixture
def settings():
    return Settings(api_base_url="https://api.test/api")


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def patient_session():
    user = UserProfile.model_validate(
        {"id": 1, "nombre": "Ana", "rol": "paciente", "paciente": {"id": 42}}
    )
    return SessionContext(token="token-abc", user=user)


@pytest.fixture
def fake_directory():
    return FakeDirectory()


@pytest.fixture
def fake_appointments():
    return FakeAppointments()
