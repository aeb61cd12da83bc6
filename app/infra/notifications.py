"""
Notification Outbox

Best-effort side channel for appointment lifecycle events. Publishing never
blocks or fails the caller: delivery runs as a background task and any
delivery error is logged and dropped.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from app.models.database import Appointment

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Appointment lifecycle events."""
    CREATED = "appointment.created"
    RESCHEDULED = "appointment.rescheduled"
    CANCELLED = "appointment.cancelled"
    STATUS_CHANGED = "appointment.status_changed"


@dataclass
class NotificationEvent:
    """Snapshot of an appointment at the moment the event happened."""

    event_type: NotificationType
    appointment_id: str
    organization_id: str
    service_id: str
    status: str
    start_time: datetime
    customer_name: str
    customer_email: str = ""
    customer_phone: Optional[str] = None
    language: str = "en"
    previous_start_time: Optional[datetime] = None

    @classmethod
    def from_appointment(
        cls,
        event_type: NotificationType,
        appointment: Appointment,
        previous_start_time: Optional[datetime] = None,
    ) -> "NotificationEvent":
        """Build an event from an appointment row."""
        return cls(
            event_type=event_type,
            appointment_id=str(appointment.id),
            organization_id=str(appointment.organization_id),
            service_id=str(appointment.service_id),
            status=appointment.status.value,
            start_time=appointment.start_datetime,
            customer_name=appointment.customer_name,
            customer_email=appointment.customer_email or "",
            customer_phone=appointment.customer_phone,
            language=appointment.language or "en",
            previous_start_time=previous_start_time,
        )


NotificationSender = Callable[[NotificationEvent], Awaitable[None]]


async def log_notification(event: NotificationEvent) -> None:
    """Default sender: record the event without delivering it anywhere."""
    logger.info(
        f"Notification {event.event_type.value} | "
        f"Appointment: {event.appointment_id} | Org: {event.organization_id}"
    )


class NotificationOutbox:
    """
    Fire-and-forget publisher.

    Keeps references to in-flight deliveries so they are not garbage
    collected, and exposes drain() for shutdown and tests.
    """

    def __init__(self, sender: Optional[NotificationSender] = None):
        """Initialize outbox.

        Args:
            sender: Coroutine function that delivers one event
        """
        self._sender = sender or log_notification
        self._pending: set[asyncio.Task] = set()

    def publish(self, event: NotificationEvent) -> None:
        """Schedule delivery of an event. Never raises."""
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(event))
        except RuntimeError:
            logger.warning(
                f"No running event loop - notification {event.event_type.value} "
                f"dropped | Appointment: {event.appointment_id}"
            )
            return

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            await self._sender(event)
        except Exception as e:
            logger.error(
                f"Notification {event.event_type.value} failed | "
                f"Appointment: {event.appointment_id} | Error: {e}"
            )

    @property
    def pending_count(self) -> int:
        """Number of deliveries still running."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Singleton instance
_outbox: Optional[NotificationOutbox] = None


def get_notification_outbox() -> NotificationOutbox:
    """Get or create the process-wide outbox."""
    global _outbox
    if _outbox is None:
        _outbox = NotificationOutbox()
    return _outbox
