"""Chat reply texts."""

from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from app.core.scheduling.timeutils import format_local_time, parse_instant

WELCOME_MENU = "Welcome to Schedulizer! What would you like to do?\n\n1. Schedule an appointment"
NO_SERVICES = "No services available at the moment."
ASK_DATE = "Enter the desired date (DD/MM/YYYY):"
INVALID_DATE = "Invalid format. Enter the date as DD/MM/YYYY:"
NO_SLOTS = "No available slots for this date. Try another date (DD/MM/YYYY):"
CONFIRM_OR_CANCEL = "Type 1 to confirm or 2 to cancel."
BOOKING_CANCELLED = "Appointment cancelled."
SLOT_UNAVAILABLE = "Slot no longer available. Please try again."


def _numbered(items: Iterable[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def format_slot(start_time: str, tz: ZoneInfo) -> str:
    """Local HH:MM of a slot start; the raw value if it cannot be parsed."""
    try:
        return format_local_time(parse_instant(start_time), tz)
    except ValueError:
        return start_time


def service_menu(names: Iterable[str], invalid: bool = False) -> str:
    prefix = "Invalid option. " if invalid else ""
    return f"{prefix}Select a service:\n{_numbered(names)}"


def slot_menu(slots: Iterable[str], tz: ZoneInfo) -> str:
    return f"Available times:\n{_numbered(format_slot(s, tz) for s in slots)}"


def invalid_slot_menu(slots: Iterable[str], tz: ZoneInfo) -> str:
    return f"Invalid option. Select a time:\n{_numbered(format_slot(s, tz) for s in slots)}"


def confirm_summary(
    service_name: str,
    selected_date: Optional[str],
    start_time: str,
    tz: ZoneInfo,
) -> str:
    return (
        "Confirm your appointment:\n"
        f"Service: {service_name}\n"
        f"Date: {selected_date or ''}\n"
        f"Time: {format_slot(start_time, tz)}\n\n"
        "1. Confirm\n2. Cancel"
    )


def booking_confirmed(appointment_id: str) -> str:
    return f"Appointment confirmed! ID: {appointment_id}"
