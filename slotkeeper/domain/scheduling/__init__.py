"""
Scheduling Domain

Slot computation and booking for a single provider.

Structure:
```
domain/scheduling/
├── intervals.py            # Half-open interval math (buffer, merge, overlap)
├── templates.py            # Weekly availability template and booking rules
├── busy_providers.py       # Busy time from local bookings
├── availability_service.py # Slot calculator
├── repository.py           # Booking queries and the atomic conditional insert
├── locks.py                # Named per-date locks (Redis, database, in-process)
├── events.py               # Booking notifications and slot-list filters
├── booking_service.py      # Booking transaction manager (create / cancel)
├── dependencies.py         # FastAPI wiring
├── router.py               # Public endpoints
└── admin_router.py         # Provider endpoints
```

Busy time from the provider's Google Calendar comes from
``services/google_calendar_service.py``, which implements the same
``get_busy(day, tz)`` capability as the local provider.
"""
