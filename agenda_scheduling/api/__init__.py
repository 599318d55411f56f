"""
Agenda Scheduling API

Structure:
    api/
    ├── __init__.py              # This file
    ├── availability_api.py      # Availability and recurrence preview (public)
    ├── appointment_api.py       # Booking, series, reschedule, cancel, status
    ├── security.py              # Rate limiting, client IP, sanitization
    └── shared/                  # Shared utilities
        ├── __init__.py          # Re-exports
        └── validators.py        # Docname / date validators

Usage:
    frappe.call("agenda_scheduling.api.availability_api.get_availability", ...)
"""

from . import shared

__all__ = [
    "shared",
]
