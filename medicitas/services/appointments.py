"""
Appointment Service - gateway to the appointment endpoints.

Handles slot lookups and the create / reschedule / cancel / list calls.
Every method raises TransportError on failure; deciding what the user
sees is left to the workflow and the appointment list.
"""

import re
from datetime import date, datetime
from typing import Any, List, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from medicitas.config import (
    APPOINTMENTS_PATH,
    AVAILABLE_SLOTS_PATH,
    MY_APPOINTMENTS_PATH,
    appointment_path,
)
from medicitas.errors import TransportError
from medicitas.models.appointment import Appointment, AppointmentStatus, format_wire_datetime
from medicitas.services.directory import parse_records
from medicitas.services.http import ApiClient, unwrap_collection, unwrap_record

_SLOT_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def normalize_slot(raw: Any) -> Optional[str]:
    """Return a slot as 'HH:MM', or None when it is not a time of day."""
    match = _SLOT_PATTERN.match(str(raw).strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def _extract_slots(payload: Any) -> List[Any]:
    if isinstance(payload, dict):
        if isinstance(payload.get("slots"), list):
            return payload["slots"]
        inner = payload.get("data")
        if isinstance(inner, dict) and isinstance(inner.get("slots"), list):
            return inner["slots"]
    return unwrap_collection(payload)


def _to_appointment(payload: Any) -> Appointment:
    try:
        return Appointment.model_validate(unwrap_record(payload))
    except PydanticValidationError as e:
        logger.error(f"Backend returned an invalid appointment: {e}")
        raise TransportError("The API returned an invalid appointment.") from e


class AppointmentService:
    """Async gateway for appointments and slot availability."""

    def __init__(self, api: ApiClient):
        self._api = api

    async def get_available_slots(self, doctor_id: int, day: date) -> List[str]:
        """
        Fetch bookable slots for one doctor on one day.

        Args:
            doctor_id: The doctor to look up
            day: Calendar date, without time

        Returns:
            Ordered 'HH:MM' strings; empty means no availability that day
        """
        payload = await self._api.get(
            AVAILABLE_SLOTS_PATH,
            params={"medico_id": doctor_id, "fecha": day.isoformat()},
        )
        slots = []
        for raw in _extract_slots(payload):
            slot = normalize_slot(raw)
            if slot is None:
                logger.warning(f"Ignoring malformed slot {raw!r} for doctor {doctor_id}")
                continue
            if slot not in slots:
                slots.append(slot)
        slots.sort()
        logger.info(f"Found {len(slots)} slots for doctor {doctor_id} on {day.isoformat()}")
        return slots

    async def create_appointment(
        self,
        doctor_id: int,
        patient_id: int,
        start: datetime,
        end: datetime,
        reason: str,
    ) -> Appointment:
        """Create a new appointment in the 'scheduled' status."""
        appointment = _to_appointment(
            await self._api.post(
                APPOINTMENTS_PATH,
                json={
                    "medico_id": doctor_id,
                    "paciente_id": patient_id,
                    "fecha_hora_inicio": format_wire_datetime(start),
                    "fecha_hora_fin": format_wire_datetime(end),
                    "motivo_consulta": reason,
                    "estado": AppointmentStatus.SCHEDULED.value,
                },
            )
        )
        logger.info(f"Created appointment {appointment.id} with doctor {doctor_id} at {start}")
        return appointment

    async def reschedule_appointment(
        self, appointment_id: int, start: datetime, end: datetime
    ) -> Appointment:
        """Move an appointment; its status is left unchanged."""
        appointment = _to_appointment(
            await self._api.put(
                appointment_path(appointment_id),
                json={
                    "fecha_hora_inicio": format_wire_datetime(start),
                    "fecha_hora_fin": format_wire_datetime(end),
                },
            )
        )
        logger.info(f"Rescheduled appointment {appointment_id} to {start}")
        return appointment

    async def cancel_appointment(self, appointment_id: int) -> Optional[Appointment]:
        """
        Cancel an appointment.

        Returns the updated record, or None when the backend answers
        without a body.
        """
        payload = await self._api.put(
            appointment_path(appointment_id),
            json={"estado": AppointmentStatus.CANCELLED.value},
        )
        logger.info(f"Cancelled appointment {appointment_id}")
        if payload is None:
            return None
        return _to_appointment(payload)

    async def list_patient_appointments(self, patient_id: int) -> List[Appointment]:
        """Fetch every appointment of one patient, unsorted."""
        raw = await self._api.get_collection(
            MY_APPOINTMENTS_PATH, params={"paciente_id": patient_id}
        )
        appointments = parse_records(Appointment, raw)
        logger.info(f"Loaded {len(appointments)} appointments for patient {patient_id}")
        return appointments
