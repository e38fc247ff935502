"""
Booking Workflow Controller - drives the three-step booking wizard.

SpecialtySelection -> DoctorSelection -> SlotAndSummary. Forward steps
fetch what the next step needs; backward steps clear everything chosen
after the step being returned to, so no stale selection leaks forward.
The create call is fire-and-confirm: nothing is inserted into any
appointment list locally.
"""

from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional

from loguru import logger

from medicitas.booking.slots import SlotLoader
from medicitas.config import Settings, get_settings
from medicitas.errors import IdentityError, TransportError, ValidationError
from medicitas.models.appointment import Appointment
from medicitas.models.booking import BookingSessionState, WizardStep
from medicitas.models.directory import DoctorDirectoryEntry, Specialty
from medicitas.models.session import SessionContext
from medicitas.services.appointments import AppointmentService, normalize_slot
from medicitas.services.directory import DirectoryService
from medicitas.services.notifications import Notifier


class BookingWorkflow:
    """
    State machine behind the patient's "new appointment" wizard.

    One instance per wizard session; it is closed (and its state
    destroyed) on successful confirmation or when the user leaves.
    """

    def __init__(
        self,
        session: SessionContext,
        directory: DirectoryService,
        appointments: AppointmentService,
        notifier: Notifier,
        on_navigate: Optional[Callable[[str], None]] = None,
        settings: Optional[Settings] = None,
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings or get_settings()
        self._session = session
        self._directory = directory
        self._appointments = appointments
        self._notifier = notifier
        self._on_navigate = on_navigate
        self._today = today

        self.state = BookingSessionState()
        self.specialties: List[Specialty] = []
        self.doctors: List[DoctorDirectoryEntry] = []
        self._slot_loader = SlotLoader(appointments, notifier)
        self._specialties_loaded = False
        self.loading = False
        self.submitting = False
        self.closed = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def step(self) -> WizardStep:
        return self.state.step

    @property
    def slots(self) -> List[str]:
        """Bookable slots for the selected doctor and date."""
        return self._slot_loader.slots

    @property
    def slots_loading(self) -> bool:
        return self._slot_loader.loading

    @property
    def can_confirm(self) -> bool:
        """Confirmation is enabled only with doctor, date and time set."""
        return (
            not self.closed
            and not self.submitting
            and self.state.step == WizardStep.SLOT_AND_SUMMARY
            and self.state.is_complete
        )

    def filtered_specialties(self, term: str = "") -> List[Specialty]:
        needle = term.strip().lower()
        return [s for s in self.specialties if needle in s.name.lower()]

    def filtered_doctors(self, term: str = "") -> List[DoctorDirectoryEntry]:
        needle = term.strip().lower()
        return [d for d in self.doctors if needle in d.name.lower()]

    def log_action(self, action: str, details: Optional[dict] = None) -> None:
        """Log wizard actions for monitoring and debugging."""
        extra = {"step": self.state.step.name, "action": action}
        if details:
            extra.update(details)
        logger.bind(**extra).info(f"BookingWorkflow: {action}")

    def _require_step(self, step: WizardStep) -> None:
        if self.closed:
            raise ValidationError("The booking wizard is closed.")
        if self.state.step != step:
            raise ValidationError(
                f"Action only allowed in {step.name}, wizard is in {self.state.step.name}"
            )

    # ------------------------------------------------------------------
    # Step 1: specialty
    # ------------------------------------------------------------------

    async def start(self) -> List[Specialty]:
        """Enter the wizard; specialties are fetched once per session."""
        self._require_step(WizardStep.SPECIALTY_SELECTION)
        self.log_action("starting_wizard")
        if self._specialties_loaded:
            return self.specialties

        self.loading = True
        try:
            specialties = await self._directory.list_specialties(
                per_page=self.settings.directory_page_size
            )
        except TransportError as e:
            self.log_action("specialties_error", {"error": e.message})
            self._notifier.error("Could not load specialties", e.message)
            return self.specialties
        finally:
            self.loading = False

        self.specialties = specialties
        self._specialties_loaded = True
        return self.specialties

    async def select_specialty(self, specialty: Specialty) -> List[DoctorDirectoryEntry]:
        """Record the specialty and move to doctor selection."""
        self._require_step(WizardStep.SPECIALTY_SELECTION)
        self.state.specialty = specialty
        self.state.clear_doctor_selection()
        self.doctors = []
        self.state.step = WizardStep.DOCTOR_SELECTION
        self.log_action("specialty_selected", {"specialty_id": specialty.id})

        await self._load_doctors(specialty)
        return self.doctors

    async def _load_doctors(self, specialty: Specialty) -> None:
        self.loading = True
        try:
            doctors = await self._directory.list_doctors(
                specialty.id, per_page=self.settings.directory_page_size
            )
        except TransportError as e:
            if self._is_current_specialty(specialty):
                self.loading = False
                self.log_action("doctors_error", {"error": e.message})
                self._notifier.error("Could not load doctors", e.message)
            return

        if not self._is_current_specialty(specialty):
            logger.debug(f"Discarding doctors for specialty {specialty.id}: no longer selected")
            return
        self.loading = False
        self.doctors = doctors

    def _is_current_specialty(self, specialty: Specialty) -> bool:
        return (
            not self.closed
            and self.state.step == WizardStep.DOCTOR_SELECTION
            and self.state.specialty is not None
            and self.state.specialty.id == specialty.id
        )

    # ------------------------------------------------------------------
    # Step 2: doctor
    # ------------------------------------------------------------------

    async def select_doctor(self, doctor: DoctorDirectoryEntry) -> List[str]:
        """Record the doctor, default the date to today and load its slots."""
        self._require_step(WizardStep.DOCTOR_SELECTION)
        self.state.doctor = doctor
        self.state.selected_date = self._today()
        self.state.selected_time = None
        self.state.step = WizardStep.SLOT_AND_SUMMARY
        self.log_action("doctor_selected", {"doctor_id": doctor.id})

        return await self._slot_loader.load(doctor.id, self.state.selected_date)

    # ------------------------------------------------------------------
    # Step 3: date, time, reason, confirmation
    # ------------------------------------------------------------------

    async def select_date(self, day: date) -> List[str]:
        """
        Change the selected date.

        The selected time is cleared before the new fetch starts, so a
        time from the previous date can never be confirmed.
        """
        self._require_step(WizardStep.SLOT_AND_SUMMARY)
        if self.state.doctor is None:
            raise ValidationError("Select a doctor before choosing a date.")

        self.state.selected_date = day
        self.state.selected_time = None
        self.log_action("date_selected", {"date": day.isoformat()})

        return await self._slot_loader.load(self.state.doctor.id, day)

    def select_time(self, slot: str) -> None:
        """Pick one of the currently offered slots."""
        self._require_step(WizardStep.SLOT_AND_SUMMARY)
        normalized = normalize_slot(slot)
        if normalized is None or normalized not in self.slots:
            raise ValidationError(f"{slot!r} is not an available time for the selected date.")
        self.state.selected_time = normalized
        self.log_action("time_selected", {"time": normalized})

    def set_reason(self, reason: str) -> None:
        self._require_step(WizardStep.SLOT_AND_SUMMARY)
        self.state.reason = reason

    async def confirm(self) -> Optional[Appointment]:
        """
        Book the selected slot.

        Returns:
            The created appointment, or None when the backend call failed
            (a notification has been emitted and the selection is kept)

        Raises:
            ValidationError: doctor, date or time missing
            IdentityError: the session has no patient id
        """
        self._require_step(WizardStep.SLOT_AND_SUMMARY)
        if self.submitting:
            raise ValidationError("A booking request is already in progress.")
        if not self.state.is_complete:
            raise ValidationError("Choose a doctor, a date and a time before confirming.")

        patient_id = self._session.patient_id
        if patient_id is None:
            self.log_action("identity_missing")
            raise IdentityError("Could not identify the patient for this session.")

        doctor = self.state.doctor
        start = datetime.combine(
            self.state.selected_date, time.fromisoformat(self.state.selected_time)
        )
        end = start + timedelta(minutes=self.settings.appointment_duration_minutes)
        reason = self.state.reason.strip() or self.settings.default_reason

        self.log_action("confirming_booking", {
            "doctor_id": doctor.id,
            "patient_id": patient_id,
            "start": start.isoformat(),
        })

        self.submitting = True
        try:
            appointment = await self._appointments.create_appointment(
                doctor_id=doctor.id,
                patient_id=patient_id,
                start=start,
                end=end,
                reason=reason,
            )
        except TransportError as e:
            self.log_action("booking_failed", {"error": e.message})
            self._notifier.error("Could not book the appointment", "Please try again.")
            return None
        finally:
            self.submitting = False

        self.log_action("booking_confirmed", {"appointment_id": appointment.id})
        self._notifier.success("Appointment booked")
        self.close(navigate_to=self.settings.home_page)
        return appointment

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def back(self) -> Optional[WizardStep]:
        """
        Go one step back, clearing all forward state.

        Returns:
            The new step, or None when the wizard was left
        """
        if self.closed:
            return None

        step = self.state.step
        if step == WizardStep.SPECIALTY_SELECTION:
            self.log_action("leaving_wizard")
            self.close(navigate_to=self.settings.home_page)
            return None

        if step == WizardStep.DOCTOR_SELECTION:
            self.state.specialty = None
            self.state.clear_doctor_selection()
            self.doctors = []
            self.loading = False
            self.state.step = WizardStep.SPECIALTY_SELECTION
        else:
            self.state.doctor = None
            self.state.clear_slot_selection()
            self._slot_loader.invalidate()
            self.state.step = WizardStep.DOCTOR_SELECTION

        self.log_action("stepped_back")
        return self.state.step

    def close(self, navigate_to: Optional[str] = None) -> None:
        """Destroy the wizard state; optionally navigate away."""
        if self.closed:
            return
        self.closed = True
        self._slot_loader.invalidate()
        self.state = BookingSessionState()
        self.doctors = []
        self.loading = False
        if navigate_to and self._on_navigate is not None:
            self._on_navigate(navigate_to)
