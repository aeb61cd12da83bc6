"""Appointment status graph."""

from typing import Set

from app.models.database import AppointmentStatus


# Valid status transitions; anything absent is terminal
VALID_TRANSITIONS: dict[AppointmentStatus, Set[AppointmentStatus]] = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.NO_SHOW: set(),
}

# Statuses a customer may still cancel or reschedule
CANCELLABLE_STATUSES: Set[AppointmentStatus] = {
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
}


def can_transition(from_status: AppointmentStatus, to_status: AppointmentStatus) -> bool:
    """Check if a status transition is allowed."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


def is_terminal_status(status: AppointmentStatus) -> bool:
    """Check if no further transitions are possible."""
    return not VALID_TRANSITIONS.get(status)
