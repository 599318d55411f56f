"""
Scheduling Engine Module

Pure business logic for appointment availability, working on in-memory
snapshots (no database access):
- Calendar primitives (calendar.py)
- Block registry (blocks.py)
- Working-hours resolution (working_hours.py)
- Conflict detection and appointment lifecycle (overlap.py)
- Slot generation (slots.py)
- Round-robin professional assignment (round_robin.py)
- Recurrence expansion (recurrence.py)
- Booking flows with commit-time validation (booking.py)
- Request validation (requests.py)
"""
