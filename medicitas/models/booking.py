"""
Booking wizard state models.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from medicitas.models.directory import DoctorDirectoryEntry, Specialty


class WizardStep(int, Enum):
    """The three steps of the booking wizard, in order."""

    SPECIALTY_SELECTION = 1
    DOCTOR_SELECTION = 2
    SLOT_AND_SUMMARY = 3


class BookingSessionState(BaseModel):
    """
    In-progress selection held across the booking wizard.

    Transient: never persisted, destroyed when the wizard completes or
    the user leaves it.
    """

    step: WizardStep = Field(default=WizardStep.SPECIALTY_SELECTION)
    specialty: Optional[Specialty] = Field(default=None, description="Selected specialty")
    doctor: Optional[DoctorDirectoryEntry] = Field(default=None, description="Selected doctor")
    selected_date: Optional[date] = Field(default=None, description="Selected day")
    selected_time: Optional[str] = Field(default=None, description="Selected slot, HH:MM")
    reason: str = Field(default="", description="Consultation reason typed by the patient")

    @property
    def is_complete(self) -> bool:
        """Check if doctor, date and time are all set."""
        return (
            self.doctor is not None
            and self.selected_date is not None
            and bool(self.selected_time)
        )

    def clear_doctor_selection(self) -> None:
        """Reset everything chosen from the doctor step onwards."""
        self.doctor = None
        self.clear_slot_selection()

    def clear_slot_selection(self) -> None:
        """Reset date, time and reason."""
        self.selected_date = None
        self.selected_time = None
        self.reason = ""

    model_config = {"validate_assignment": True}
