"""
Booking workflow: the wizard, the appointment list and slot loading.
"""

from .appointment_list import AppointmentListViewModel, StatusFilter, filter_appointments
from .pagination import Page, paginate
from .slots import SlotLoader
from .wizard import BookingWorkflow

__all__ = [
    "AppointmentListViewModel",
    "BookingWorkflow",
    "Page",
    "SlotLoader",
    "StatusFilter",
    "filter_appointments",
    "paginate",
]
