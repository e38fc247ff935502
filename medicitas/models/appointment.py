"""
Appointment data models.

The backend sends several shapes for the same record (Spanish and
English field names, nested or flat doctor data, placeholder names).
Everything is normalized here, at ingestion, so the rest of the client
only ever sees one canonical record.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, Field, model_validator

from medicitas.config import MISSING_NAME_PLACEHOLDER, STATUS_WIRE_NAMES, get_settings

WIRE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class AppointmentStatus(str, Enum):
    """Appointment status, valued with the backend's wire strings."""

    SCHEDULED = "programada"
    CONFIRMED = "confirmada"
    COMPLETED = "completada"
    CANCELLED = "cancelada"
    PENDING = "pendiente"
    ACTIVE = "activa"

    @property
    def label(self) -> str:
        """Canonical English name (e.g. 'scheduled')."""
        return STATUS_WIRE_NAMES[self.value]

    @property
    def is_editable(self) -> bool:
        """Whether a patient may still reschedule or cancel."""
        return self in EDITABLE_STATUSES

    @classmethod
    def parse(cls, raw: Any) -> "AppointmentStatus":
        """Accept wire values or English names, case-insensitively."""
        if isinstance(raw, cls):
            return raw
        text = str(raw or "").strip().lower()
        for status in cls:
            if text in (status.value, status.label):
                return status
        logger.warning(f"Unknown appointment status {raw!r}, treating as pending")
        return cls.PENDING


EDITABLE_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.PENDING,
        AppointmentStatus.ACTIVE,
    }
)


def parse_wire_datetime(raw: Any) -> Optional[datetime]:
    """Parse 'YYYY-MM-DD HH:MM:SS' or ISO-8601; None when missing or invalid."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=None)
    try:
        return datetime.fromisoformat(str(raw).replace(" ", "T").replace("Z", "+00:00")).replace(
            tzinfo=None
        )
    except ValueError:
        return None


def format_wire_datetime(value: datetime) -> str:
    """Format a timestamp the way the backend expects it."""
    return value.strftime(WIRE_DATETIME_FORMAT)


class SpecialtySummary(BaseModel):
    """Specialty as embedded in appointment and doctor records."""

    id: Optional[int] = None
    name: str = ""


class DoctorSummary(BaseModel):
    """Doctor reference embedded in an appointment."""

    id: Optional[int] = None
    name: str = Field(default="Dr. Especialista", description="Display name")
    phone: Optional[str] = None
    specialty: SpecialtySummary = Field(default_factory=SpecialtySummary)


class PatientSummary(BaseModel):
    """Patient reference embedded in an appointment."""

    id: Optional[int] = None
    name: str = "Paciente"


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    """First non-empty value among keys."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def _specialty_from(raw: Any) -> dict:
    if isinstance(raw, dict):
        return {"id": _pick(raw, "id"), "name": _pick(raw, "nombre", "name", default="")}
    if isinstance(raw, str):
        return {"id": None, "name": raw}
    return {}


def _person_name(data: dict) -> Optional[str]:
    user = data.get("user") or data.get("usuario") or {}
    full = _pick(data, "nombre_completo", "full_name")
    if isinstance(full, str) and full != MISSING_NAME_PLACEHOLDER:
        return full
    first = _pick(user, "name", "nombre") or _pick(data, "nombre", "name", "first_name")
    last = _pick(user, "last_name", "apellidos") or _pick(data, "apellidos", "last_name")
    if not first or first == MISSING_NAME_PLACEHOLDER:
        return None
    return f"{first} {last}".strip() if last else first


class Appointment(BaseModel):
    """
    A scheduled encounter between one patient and one doctor.

    Built from any backend variant through the before-validator below.
    """

    id: int
    patient: PatientSummary = Field(default_factory=PatientSummary)
    doctor: DoctorSummary = Field(default_factory=DoctorSummary)
    start: datetime
    end: Optional[datetime] = None
    status: AppointmentStatus = AppointmentStatus.PENDING
    reason: str = ""
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_backend_fields(cls, data: Any) -> Any:
        """Map every backend naming variant onto the canonical fields."""
        if not isinstance(data, dict) or "start" in data:
            return data

        medico = data.get("medico") or data.get("doctor") or {}
        if not isinstance(medico, dict):
            medico = {"nombre_completo": medico}
        specialty = _specialty_from(
            data.get("especialidad") or medico.get("especialidad") or medico.get("specialty")
        )
        doctor_name = _person_name(medico)
        if doctor_name is None:
            doctor_name = (
                f"Dr. Especialista en {specialty['name']}"
                if specialty.get("name")
                else "Dr. Especialista"
            )

        paciente = data.get("paciente") or data.get("patient") or {}
        if not isinstance(paciente, dict):
            paciente = {"nombre_completo": paciente}

        return {
            "id": data.get("id"),
            "patient": {
                "id": _pick(paciente, "id") or _pick(data, "paciente_id", "patient_id"),
                "name": _person_name(paciente) or "Paciente",
            },
            "doctor": {
                "id": _pick(medico, "id", "id_medico")
                or _pick(data, "medico_id", "doctor_id"),
                "name": doctor_name,
                "phone": _pick(medico, "telefono_consultorio", "phone"),
                "specialty": specialty,
            },
            "start": parse_wire_datetime(
                _pick(data, "fecha_hora_inicio", "appointment_date", "start")
            ),
            "end": parse_wire_datetime(_pick(data, "fecha_hora_fin", "end")),
            "status": AppointmentStatus.parse(_pick(data, "estado", "status")),
            "reason": _pick(data, "motivo_consulta", "motivo", "reason", default=""),
            "notes": _pick(data, "notas_paciente", "notes"),
        }

    @model_validator(mode="after")
    def check_time_order(self) -> "Appointment":
        """End must come after start; a missing end is start plus the default duration."""
        if self.end is None:
            self.end = self.start + timedelta(minutes=get_settings().appointment_duration_minutes)
        elif self.end <= self.start:
            raise ValueError("appointment end must be after its start")
        return self

    @property
    def is_editable(self) -> bool:
        """Check if the patient may still reschedule or cancel."""
        return self.status.is_editable

    @property
    def specialty_name(self) -> str:
        return self.doctor.specialty.name

    def matches(self, term: str) -> bool:
        """Case-insensitive match on doctor name, specialty or status."""
        needle = term.strip().lower()
        if not needle:
            return True
        haystack = (
            self.doctor.name,
            self.specialty_name,
            self.status.value,
            self.status.label,
        )
        return any(needle in field.lower() for field in haystack)
