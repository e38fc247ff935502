"""
Reference data used by the booking wizard: specialties and doctors.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from medicitas.config import MISSING_NAME_PLACEHOLDER


class Specialty(BaseModel):
    """A medical specialty offered by the clinic."""

    id: int
    name: str = Field(description="Display name")
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def from_backend(cls, data: Any) -> Any:
        if isinstance(data, dict) and "name" not in data:
            return {
                "id": data.get("id"),
                "name": data.get("nombre") or "",
                "description": data.get("descripcion") or data.get("description"),
            }
        return data


class DoctorDirectoryEntry(BaseModel):
    """
    A bookable doctor, scoped to one specialty.

    The display name is resolved once here; downstream code never
    falls back between name fields again.
    """

    id: int = Field(description="Doctor id used for slots and bookings")
    name: str
    specialty_id: Optional[int] = None
    specialty_name: str = ""
    phone: Optional[str] = None
    license_number: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def from_backend(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "name" in data:
            return data

        specialty = data.get("especialidad") or {}
        if isinstance(specialty, dict):
            specialty_id = specialty.get("id", data.get("especialidad_id"))
            specialty_name = specialty.get("nombre") or ""
        else:
            specialty_id = data.get("especialidad_id")
            specialty_name = str(specialty)

        name = data.get("nombre_completo")
        if not name or name == MISSING_NAME_PLACEHOLDER:
            parts = [data.get("nombre"), data.get("apellidos")]
            name = " ".join(p for p in parts if p) or None
        if not name:
            name = f"Dr. Especialista en {specialty_name}" if specialty_name else "Dr. Especialista"

        return {
            "id": data.get("id_medico") or data.get("id"),
            "name": name,
            "specialty_id": specialty_id,
            "specialty_name": specialty_name,
            "phone": data.get("telefono_consultorio"),
            "license_number": data.get("licencia_medica"),
        }
