"""
Scheduling Module

Availability calculation, the appointment status graph and the reservation
transactor shared by the booking page and the chat channel.

Usage:
    from app.core.scheduling import AvailabilityCalculator, ReservationTransactor

    slots = await calculator.calculate(service_id, day, organization_id)
    result = await transactor.create(organization_id, service_id, start, customer)
    if result.is_conflict:
        ...
"""

# Availability
from app.core.scheduling.availability import (
    AvailabilityCalculator,
    TimeSlot,
    generate_slots,
)

# Status graph
from app.core.scheduling.status import (
    CANCELLABLE_STATUSES,
    VALID_TRANSITIONS,
    can_transition,
    is_terminal_status,
)

# Reservations
from app.core.scheduling.reservations import (
    CustomerInfo,
    ReservationError,
    ReservationResult,
    ReservationTransactor,
)
from app.core.scheduling.store import (
    AppointmentStore,
    AppointmentTransaction,
    SqlAppointmentStore,
)

__all__ = [
    # Availability
    "AvailabilityCalculator",
    "TimeSlot",
    "generate_slots",
    # Status graph
    "CANCELLABLE_STATUSES",
    "VALID_TRANSITIONS",
    "can_transition",
    "is_terminal_status",
    # Reservations
    "CustomerInfo",
    "ReservationError",
    "ReservationResult",
    "ReservationTransactor",
    "AppointmentStore",
    "AppointmentTransaction",
    "SqlAppointmentStore",
]
