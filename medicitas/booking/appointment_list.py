"""
Appointment List View-Model - the patient's "my appointments" screen.

Holds the server-sourced list and derives filtered, paginated views from
it without touching the network. Reschedule and cancel never patch the
list locally: each successful mutation is followed by a full reload.
"""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Union

from loguru import logger

from medicitas.booking.pagination import Page, paginate
from medicitas.booking.slots import SlotLoader
from medicitas.config import PAGE_SIZE_CHOICES, Settings, get_settings
from medicitas.errors import IdentityError, TransportError, ValidationError
from medicitas.models.appointment import EDITABLE_STATUSES, Appointment, AppointmentStatus
from medicitas.models.session import SessionContext
from medicitas.services.appointments import AppointmentService, normalize_slot
from medicitas.services.notifications import Notifier


class StatusFilter(str, Enum):
    """Status tabs of the appointment list."""

    ALL = "all"
    ACTIVE = "active"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


FILTER_STATUSES: Dict[StatusFilter, Optional[FrozenSet[AppointmentStatus]]] = {
    StatusFilter.ALL: None,
    StatusFilter.ACTIVE: EDITABLE_STATUSES,
    StatusFilter.PENDING: frozenset(
        {AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING}
    ),
    StatusFilter.COMPLETED: frozenset({AppointmentStatus.COMPLETED}),
    StatusFilter.CANCELLED: frozenset({AppointmentStatus.CANCELLED}),
}


def filter_appointments(
    appointments: Iterable[Appointment],
    status_filter: StatusFilter = StatusFilter.ALL,
    term: str = "",
) -> List[Appointment]:
    """
    Pure projection: status tab intersected with a free-text search.

    The search matches doctor name, specialty or status, case-insensitively.
    """
    allowed = FILTER_STATUSES[StatusFilter(status_filter)]
    return [
        appointment
        for appointment in appointments
        if (allowed is None or appointment.status in allowed) and appointment.matches(term)
    ]


def sort_most_recent_first(appointments: Iterable[Appointment]) -> List[Appointment]:
    return sorted(appointments, key=lambda a: a.start, reverse=True)


def _parse_day(value: Union[date, str]) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(f"{value!r} is not a valid date (YYYY-MM-DD).") from e


class AppointmentListViewModel:
    """
    Client-held view of the current patient's appointments.

    Attributes:
        appointments: Full list, most recent first, as last loaded
        status_filter: Active status tab
        search_term: Active free-text search
        page: Current page (1-based) of the filtered list
        per_page: Page size, one of PAGE_SIZE_CHOICES
    """

    def __init__(
        self,
        session: SessionContext,
        appointments: AppointmentService,
        notifier: Notifier,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._session = session
        self._service = appointments
        self._notifier = notifier
        self._reschedule_slots = SlotLoader(appointments, notifier)
        self._busy: Set[int] = set()
        self._load_generation = 0

        self.appointments: List[Appointment] = []
        self.status_filter = StatusFilter.ALL
        self.search_term = ""
        self.page = 1
        self.per_page = self.settings.list_page_size
        self.loading = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> List[Appointment]:
        """
        Reload the full list from the server.

        On failure the previously loaded list is kept and a notification
        is emitted. When reloads overlap only the latest one is applied.
        """
        patient_id = self._session.patient_id
        if patient_id is None:
            raise IdentityError("Could not identify the patient for this session.")

        self._load_generation += 1
        generation = self._load_generation
        self.loading = True
        try:
            fetched = await self._service.list_patient_appointments(patient_id)
        except TransportError as e:
            if generation != self._load_generation:
                logger.debug(f"Discarding failed stale appointment reload #{generation}")
                return self.appointments
            self.loading = False
            logger.error(f"Loading appointments failed: {e.message}")
            self._notifier.error("Could not load your appointments", e.message)
            return self.appointments

        if generation != self._load_generation:
            logger.debug(f"Discarding stale appointment reload #{generation}")
            return self.appointments

        self.loading = False
        self.appointments = sort_most_recent_first(fetched)
        self.page = min(self.page, self.current_page.last_page)
        return self.appointments

    def get(self, appointment_id: int) -> Optional[Appointment]:
        for appointment in self.appointments:
            if appointment.id == appointment_id:
                return appointment
        return None

    # ------------------------------------------------------------------
    # Filtering and pagination (never hit the network)
    # ------------------------------------------------------------------

    @property
    def visible(self) -> List[Appointment]:
        """Loaded appointments matching the current tab and search."""
        return filter_appointments(self.appointments, self.status_filter, self.search_term)

    @property
    def current_page(self) -> Page[Appointment]:
        return paginate(self.visible, self.page, self.per_page)

    def set_status_filter(self, status_filter: Union[StatusFilter, str]) -> None:
        self.status_filter = StatusFilter(status_filter)
        self.page = 1

    def set_search_term(self, term: str) -> None:
        self.search_term = term
        self.page = 1

    def set_page_size(self, per_page: int) -> None:
        if per_page not in PAGE_SIZE_CHOICES:
            raise ValidationError(f"Page size must be one of {PAGE_SIZE_CHOICES}.")
        self.per_page = per_page
        self.page = 1

    def go_to_page(self, page: int) -> Page[Appointment]:
        result = paginate(self.visible, page, self.per_page)
        self.page = result.page
        return result

    def next_page(self) -> Page[Appointment]:
        return self.go_to_page(self.page + 1)

    def previous_page(self) -> Page[Appointment]:
        return self.go_to_page(self.page - 1)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def is_busy(self, appointment_id: int) -> bool:
        return appointment_id in self._busy

    def _editable(self, appointment_id: int) -> Appointment:
        appointment = self.get(appointment_id)
        if appointment is None:
            raise ValidationError(f"Appointment {appointment_id} is not in the loaded list.")
        if not appointment.is_editable:
            raise ValidationError(
                f"Appointment {appointment_id} is {appointment.status.label} and can no longer be changed."
            )
        if appointment_id in self._busy:
            raise ValidationError(f"Appointment {appointment_id} is already being updated.")
        return appointment

    @property
    def reschedule_slots(self) -> List[str]:
        return self._reschedule_slots.slots

    async def load_reschedule_slots(self, appointment_id: int, day: Union[date, str]) -> List[str]:
        """Slots offered by the appointment's own doctor on a new day."""
        appointment = self._editable(appointment_id)
        if appointment.doctor.id is None:
            raise ValidationError(f"Appointment {appointment_id} has no doctor to reschedule with.")
        return await self._reschedule_slots.load(appointment.doctor.id, _parse_day(day))

    async def reschedule(
        self,
        appointment_id: int,
        new_date: Union[date, str, None],
        new_time: Optional[str],
    ) -> Optional[Appointment]:
        """
        Move an appointment to a new date and time.

        Returns:
            The updated appointment, or None when the backend call failed

        Raises:
            ValidationError: empty date/time, unknown or non-editable appointment
        """
        if not new_date or not new_time or not str(new_time).strip():
            logger.warning(f"Reschedule of {appointment_id} rejected: date and time are required")
            raise ValidationError("Both a new date and a new time are required.")
        day = _parse_day(new_date)
        slot = normalize_slot(new_time)
        if slot is None:
            raise ValidationError(f"{new_time!r} is not a valid time (HH:MM).")
        self._editable(appointment_id)

        start = datetime.combine(day, time.fromisoformat(slot))
        end = start + timedelta(minutes=self.settings.appointment_duration_minutes)

        self._busy.add(appointment_id)
        try:
            updated = await self._service.reschedule_appointment(appointment_id, start, end)
        except TransportError as e:
            logger.error(f"Reschedule of {appointment_id} failed: {e.message}")
            self._notifier.error("Could not reschedule", "The time may already be taken.")
            return None
        finally:
            self._busy.discard(appointment_id)

        self._notifier.success("Appointment rescheduled")
        self._reschedule_slots.invalidate()
        await self.load()
        return updated

    async def cancel(self, appointment_id: int) -> bool:
        """
        Cancel an appointment; cancelled is terminal.

        Returns:
            True when the backend accepted the cancellation
        """
        self._editable(appointment_id)

        self._busy.add(appointment_id)
        try:
            await self._service.cancel_appointment(appointment_id)
        except TransportError as e:
            logger.error(f"Cancel of {appointment_id} failed: {e.message}")
            self._notifier.error("Could not cancel the appointment", e.message)
            return False
        finally:
            self._busy.discard(appointment_id)

        self._notifier.success("Appointment cancelled")
        await self.load()
        return True
