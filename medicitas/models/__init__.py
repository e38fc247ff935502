"""
Data models for the medicitas client.
"""

from .appointment import (
    Appointment,
    AppointmentStatus,
    DoctorSummary,
    PatientSummary,
    SpecialtySummary,
)
from .booking import BookingSessionState, WizardStep
from .directory import DoctorDirectoryEntry, Specialty
from .session import SessionContext, UserProfile

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "BookingSessionState",
    "DoctorDirectoryEntry",
    "DoctorSummary",
    "PatientSummary",
    "SessionContext",
    "Specialty",
    "SpecialtySummary",
    "UserProfile",
    "WizardStep",
]
