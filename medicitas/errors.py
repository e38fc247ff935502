"""
Error taxonomy for the booking workflow and its gateways.
"""

from typing import Optional


class MedicitasError(Exception):
    """Base class for all client errors."""


class IdentityError(MedicitasError):
    """The current session cannot be resolved to a patient id."""


class ValidationError(MedicitasError):
    """A required selection is missing or not allowed; raised before any request."""


class TransportError(MedicitasError):
    """Network failure, timeout, non-2xx response or malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SessionExpiredError(TransportError):
    """The backend rejected the session's current token (401)."""


class StaleResponseError(MedicitasError):
    """A slot response arrived for a (doctor, date) that is no longer selected."""

    def __init__(self, doctor_id: int, day: str):
        super().__init__(f"Stale slots for doctor {doctor_id} on {day}")
        self.doctor_id = doctor_id
        self.day = day
