"""
Unit tests for the appointment list: filtering, pagination and mutations.
"""

import asyncio
from datetime import date, datetime

import pytest

from medicitas.booking.appointment_list import (
    AppointmentListViewModel,
    StatusFilter,
    filter_appointments,
)
from medicitas.errors import IdentityError, TransportError, ValidationError
from medicitas.models.appointment import Appointment, AppointmentStatus
from medicitas.models.session import SessionContext, UserProfile


def make_appointment(appointment_id, status, day, doctor="Dra. Lucía Fernández", specialty="Cardiología"):
    start = datetime.combine(day, datetime.min.time()).replace(hour=9)
    return Appointment.model_validate(
        {
            "id": appointment_id,
            "fecha_hora_inicio": start.strftime("%Y-%m-%d %H:%M:%S"),
            "estado": status,
            "medico": {"id": 7, "nombre_completo": doctor, "especialidad": {"id": 1, "nombre": specialty}},
        }
    )


@pytest.fixture
def three_appointments():
    return [
        make_appointment(1, "programada", date(2026, 3, 10)),
        make_appointment(2, "completada", date(2026, 2, 10), doctor="Dr. Mateo Ruiz", specialty="Pediatría"),
        make_appointment(3, "cancelada", date(2026, 1, 10)),
    ]


@pytest.fixture
def view(patient_session, fake_appointments, notifier, settings, three_appointments):
    fake_appointments.records = list(three_appointments)
    return AppointmentListViewModel(patient_session, fake_appointments, notifier, settings=settings)


class TestFiltering:
    """Test the pure status/search projection."""

    def test_completed_filter(self, three_appointments):
        result = filter_appointments(three_appointments, StatusFilter.COMPLETED)
        assert [a.id for a in result] == [2]

    def test_all_filter_keeps_everything(self, three_appointments):
        assert len(filter_appointments(three_appointments, StatusFilter.ALL)) == 3

    def test_active_filter_excludes_terminal_states(self, three_appointments):
        result = filter_appointments(three_appointments, StatusFilter.ACTIVE)
        assert [a.id for a in result] == [1]

    def test_pending_tab_includes_confirmed(self):
        appointments = [
            make_appointment(1, "confirmada", date(2026, 3, 10)),
            make_appointment(2, "pendiente", date(2026, 3, 11)),
            make_appointment(3, "programada", date(2026, 3, 12)),
            make_appointment(4, "completada", date(2026, 3, 13)),
        ]
        result = filter_appointments(appointments, StatusFilter.PENDING)
        assert [a.id for a in result] == [1, 2, 3]

    def test_search_intersects_with_status(self, three_appointments):
        assert [a.id for a in filter_appointments(three_appointments, "all", "pediatr")] == [2]
        assert filter_appointments(three_appointments, "cancelled", "pediatr") == []

    def test_filtering_is_idempotent(self, three_appointments):
        once = filter_appointments(three_appointments, StatusFilter.ACTIVE, "lucía")
        twice = filter_appointments(once, StatusFilter.ACTIVE, "lucía")
        assert once == twice


class TestLoading:
    @pytest.mark.asyncio
    async def test_load_sorts_most_recent_first(self, view):
        await view.load()
        assert [a.id for a in view.appointments] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_list(self, view, fake_appointments, notifier):
        await view.load()
        fake_appointments.fail_with = TransportError("down", status_code=500)
        result = await view.load()
        assert [a.id for a in result] == [1, 2, 3]
        assert len(notifier.errors) == 1

    @pytest.mark.asyncio
    async def test_no_patient_raises(self, fake_appointments, notifier, settings):
        admin = SessionContext(token="t", user=UserProfile(id=2, role="administrador"))
        view = AppointmentListViewModel(admin, fake_appointments, notifier, settings=settings)
        with pytest.raises(IdentityError):
            await view.load()
        assert fake_appointments.list_calls == 0


class TestPagination:
    """Test paging over the filtered list."""

    @pytest.fixture
    async def big_view(self, patient_session, fake_appointments, notifier, settings):
        fake_appointments.records = [
            make_appointment(i, "programada", date(2026, 1, i)) for i in range(1, 13)
        ]
        view = AppointmentListViewModel(patient_session, fake_appointments, notifier, settings=settings)
        await view.load()
        return view

    @pytest.mark.asyncio
    async def test_default_page_size(self, big_view):
        page = big_view.current_page
        assert big_view.per_page == 10
        assert len(page.items) == 10
        assert page.total == 12
        assert page.last_page == 2
        assert page.has_next and not page.has_previous

    @pytest.mark.asyncio
    async def test_next_page_and_clamping(self, big_view):
        page = big_view.next_page()
        assert page.page == 2
        assert (page.first_index, page.last_index) == (11, 12)
        assert big_view.next_page().page == 2
        assert big_view.go_to_page(-3).page == 1

    @pytest.mark.asyncio
    async def test_filter_and_size_changes_reset_page(self, big_view):
        big_view.next_page()
        big_view.set_status_filter("active")
        assert big_view.page == 1
        big_view.next_page()
        big_view.set_search_term("lucía")
        assert big_view.page == 1
        big_view.next_page()
        big_view.set_page_size(5)
        assert big_view.page == 1
        assert big_view.current_page.last_page == 3

    @pytest.mark.asyncio
    async def test_page_size_must_be_allowed(self, big_view):
        with pytest.raises(ValidationError):
            big_view.set_page_size(7)

    def test_empty_list(self, view):
        page = view.current_page
        assert page.items == []
        assert page.last_page == 1
        assert (page.first_index, page.last_index) == (0, 0)


class TestReschedule:
    """Test moving an appointment to a new slot."""

    @pytest.mark.asyncio
    async def test_empty_date_or_time_makes_no_call(self, view, fake_appointments):
        await view.load()
        with pytest.raises(ValidationError):
            await view.reschedule(1, "", "10:00")
        with pytest.raises(ValidationError):
            await view.reschedule(1, date(2026, 3, 11), "")
        with pytest.raises(ValidationError):
            await view.reschedule(1, None, None)
        assert fake_appointments.rescheduled == []

    @pytest.mark.asyncio
    async def test_reschedule_sends_new_window_and_reloads(self, view, fake_appointments, notifier):
        await view.load()
        calls_before = fake_appointments.list_calls

        updated = await view.reschedule(1, "2026-03-11", "10:30")

        assert fake_appointments.rescheduled == [
            (1, datetime(2026, 3, 11, 10, 30), datetime(2026, 3, 11, 11, 0))
        ]
        assert updated.start == datetime(2026, 3, 11, 10, 30)
        assert fake_appointments.list_calls == calls_before + 1
        assert view.get(1).start == datetime(2026, 3, 11, 10, 30)
        assert notifier.notifications[-1].level.value == "success"

    @pytest.mark.asyncio
    async def test_non_editable_is_rejected(self, view, fake_appointments):
        await view.load()
        with pytest.raises(ValidationError):
            await view.reschedule(2, "2026-03-11", "10:30")
        with pytest.raises(ValidationError):
            await view.reschedule(99, "2026-03-11", "10:30")
        assert fake_appointments.rescheduled == []

    @pytest.mark.asyncio
    async def test_failure_notifies_and_keeps_list(self, view, fake_appointments, notifier):
        await view.load()
        fake_appointments.fail_with = TransportError("taken", status_code=409)
        assert await view.reschedule(1, "2026-03-11", "10:30") is None
        assert notifier.errors[-1].description == "The time may already be taken."
        assert view.get(1).start == datetime(2026, 3, 10, 9, 0)
        assert not view.is_busy(1)

    @pytest.mark.asyncio
    async def test_reschedule_slots_use_appointment_doctor(self, view, fake_appointments):
        await view.load()
        fake_appointments.slots[(7, date(2026, 3, 11))] = ["10:30", "11:00"]
        slots = await view.load_reschedule_slots(1, "2026-03-11")
        assert slots == ["10:30", "11:00"]
        assert view.reschedule_slots == ["10:30", "11:00"]


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_reloads_and_leaves_active_tab(self, view, fake_appointments):
        await view.load()
        view.set_status_filter(StatusFilter.ACTIVE)
        assert [a.id for a in view.visible] == [1]

        assert await view.cancel(1) is True

        assert fake_appointments.cancelled == [1]
        assert view.get(1).status is AppointmentStatus.CANCELLED
        assert view.visible == []

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, view, fake_appointments):
        await view.load()
        with pytest.raises(ValidationError):
            await view.cancel(3)
        assert fake_appointments.cancelled == []

    @pytest.mark.asyncio
    async def test_failure_returns_false(self, view, fake_appointments, notifier):
        await view.load()
        fake_appointments.fail_with = TransportError("down", status_code=500)
        assert await view.cancel(1) is False
        assert view.get(1).status is AppointmentStatus.SCHEDULED
        assert len(notifier.errors) == 1

    @pytest.mark.asyncio
    async def test_overlapping_reloads_keep_the_latest(self, patient_session, fake_appointments, notifier, settings):
        """Two cancels in flight: the earlier reload answering last must not win."""
        fake_appointments.records = [
            make_appointment(1, "programada", date(2026, 3, 10)),
            make_appointment(2, "confirmada", date(2026, 3, 11)),
        ]
        view = AppointmentListViewModel(patient_session, fake_appointments, notifier, settings=settings)
        await view.load()

        first_reload = fake_appointments.hold_list()
        second_reload = fake_appointments.hold_list()
        first = asyncio.create_task(view.cancel(1))
        for _ in range(5):
            await asyncio.sleep(0)
        second = asyncio.create_task(view.cancel(2))
        for _ in range(5):
            await asyncio.sleep(0)

        second_reload.set()
        await second
        assert not view.loading
        first_reload.set()
        await first

        assert view.get(1).status is AppointmentStatus.CANCELLED
        assert view.get(2).status is AppointmentStatus.CANCELLED
        assert not view.loading

    @pytest.mark.asyncio
    async def test_loading_stays_set_until_latest_reload(self, view, fake_appointments):
        first_reload = fake_appointments.hold_list()
        second_reload = fake_appointments.hold_list()
        first = asyncio.create_task(view.load())
        await asyncio.sleep(0)
        second = asyncio.create_task(view.load())
        await asyncio.sleep(0)

        first_reload.set()
        await first
        assert view.loading
        assert view.appointments == []

        second_reload.set()
        await second
        assert not view.loading
        assert [a.id for a in view.appointments] == [1, 2, 3]
