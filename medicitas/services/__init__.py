"""
Services layer for the medicitas client.
"""

from .appointments import AppointmentService
from .auth import AuthService
from .directory import DirectoryService
from .http import ApiClient
from .notifications import Notification, Notifier

__all__ = [
    "ApiClient",
    "AppointmentService",
    "AuthService",
    "DirectoryService",
    "Notification",
    "Notifier",
]
