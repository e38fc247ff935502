"""
Session context models.

A SessionContext is created on login and invalidated on logout (or when
the backend rejects its token). It is passed explicitly to the transport
and the workflow instead of living in process-wide storage.
"""

from datetime import datetime
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, Field, model_validator


class UserProfile(BaseModel):
    """Authenticated user as returned by the login endpoint."""

    id: int
    name: str = ""
    email: Optional[str] = None
    role: str = "paciente"
    patient_id: Optional[int] = Field(
        default=None, description="Linked patient record id, if any"
    )

    @model_validator(mode="before")
    @classmethod
    def from_backend(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "patient_id" in data:
            return data
        paciente = data.get("paciente") or {}
        first = data.get("nombre") or data.get("name") or ""
        last = data.get("apellidos") or ""
        return {
            "id": data.get("id"),
            "name": f"{first} {last}".strip(),
            "email": data.get("email"),
            "role": data.get("rol") or data.get("role") or "paciente",
            "patient_id": paciente.get("id") if isinstance(paciente, dict) else None,
        }


class SessionContext:
    """
    Holds the bearer token and user for one login.

    Attributes:
        token: Bearer token attached to every request
        user: The authenticated user profile
    """

    def __init__(self, token: str, user: UserProfile):
        self.token = token
        self.user = user
        self.created_at = datetime.now()
        self._active = True
        self.invalidation_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def patient_id(self) -> Optional[int]:
        """
        Resolve the patient id for booking.

        Uses the linked patient record, falling back to the user id for
        patient-role users (the backend creates both with the same id).
        """
        if not self._active:
            return None
        if self.user.patient_id is not None:
            return self.user.patient_id
        if self.user.role == "paciente":
            return self.user.id
        return None

    def invalidate(self, reason: str) -> None:
        """End the session; idempotent."""
        if not self._active:
            return
        self._active = False
        self.invalidation_reason = reason
        logger.info(f"Session for user {self.user.id} invalidated: {reason}")

    def __repr__(self) -> str:
        state = "active" if self._active else "invalidated"
        return f"SessionContext(user_id={self.user.id}, {state})"
