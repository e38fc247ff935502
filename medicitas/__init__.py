"""
medicitas - async client for the medical appointment backend.

Provides the patient booking wizard, the appointment list view-model
and the gateways they use to talk to the REST API.
"""

__version__ = "0.1.0"
