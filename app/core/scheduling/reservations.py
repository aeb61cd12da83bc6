"""
Reservation Transactor.

The only writer of appointments. Creation and rescheduling run the conflict
check and the write inside one transaction that holds the service lock, so
two concurrent requests for overlapping intervals of the same service can
never both succeed. Status changes follow the guarded graph in status.py.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from app.core.scheduling.status import CANCELLABLE_STATUSES, can_transition
from app.core.scheduling.store import AppointmentStore
from app.core.scheduling.timeutils import _utcnow
from app.infra.notifications import (
    NotificationEvent,
    NotificationOutbox,
    NotificationType,
)
from app.models.database import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)


class ReservationError(str, Enum):
    """Expected reservation failures. Values double as REST error codes."""
    NOT_FOUND = "NOT_FOUND"
    PAST_APPOINTMENT = "PAST_APPOINTMENT"
    SLOT_CONFLICT = "SLOT_CONFLICT"
    NOT_CANCELLABLE = "NOT_CANCELLABLE"
    NOT_RESCHEDULABLE = "NOT_RESCHEDULABLE"
    INVALID_TRANSITION = "INVALID_TRANSITION"


@dataclass
class CustomerInfo:
    """Who the appointment is for."""

    name: str
    email: str = ""
    phone: Optional[str] = None
    notes: Optional[str] = None
    language: str = "en"


@dataclass
class ReservationResult:
    """Result of a reservation operation."""

    success: bool
    appointment: Optional[Appointment] = None
    error_code: Optional[ReservationError] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, appointment: Appointment) -> "ReservationResult":
        return cls(success=True, appointment=appointment)

    @classmethod
    def fail(cls, error_code: ReservationError, message: str) -> "ReservationResult":
        return cls(success=False, error_code=error_code, message=message)

    @property
    def is_conflict(self) -> bool:
        return self.error_code == ReservationError.SLOT_CONFLICT


class ReservationTransactor:
    """
    Creates, reschedules and transitions appointments atomically.

    Notifications are published only after the transaction committed.
    """

    def __init__(
        self,
        store: AppointmentStore,
        outbox: Optional[NotificationOutbox] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize transactor.

        Args:
            store: Appointment storage providing locked transactions
            outbox: Notification outbox (events are skipped when None)
            clock: Returns the current UTC instant
        """
        self._store = store
        self._outbox = outbox
        self._clock = clock or _utcnow

    # === Creation ===

    async def create(
        self,
        organization_id: uuid.UUID,
        service_id: uuid.UUID,
        start_time: datetime,
        customer: CustomerInfo,
    ) -> ReservationResult:
        """Reserve [start, start + duration) for a customer.

        Args:
            organization_id: Owning organization
            service_id: Service to book (must be active and belong to the org)
            start_time: Requested UTC start instant
            customer: Customer details

        Returns:
            ReservationResult with the new pending appointment, or
            NOT_FOUND / PAST_APPOINTMENT / SLOT_CONFLICT
        """
        if start_time < self._clock():
            return ReservationResult.fail(
                ReservationError.PAST_APPOINTMENT,
                "Cannot book appointment in the past",
            )

        async with self._store.transaction() as tx:
            service = await tx.lock_service(service_id, organization_id)
            if service is None or not service.active:
                return ReservationResult.fail(
                    ReservationError.NOT_FOUND, "Service not found"
                )

            end_time = start_time + timedelta(minutes=service.duration_minutes)

            conflict = await tx.find_conflict(service_id, start_time, end_time)
            if conflict is not None:
                logger.info(
                    f"Slot conflict | Service: {service_id} | "
                    f"Requested: {start_time.isoformat()}"
                )
                return ReservationResult.fail(
                    ReservationError.SLOT_CONFLICT, "Slot no longer available"
                )

            appointment = Appointment(
                id=uuid.uuid4(),
                organization_id=organization_id,
                service_id=service_id,
                start_datetime=start_time,
                end_datetime=end_time,
                status=AppointmentStatus.PENDING,
                customer_name=customer.name,
                customer_email=customer.email,
                customer_phone=customer.phone,
                notes=customer.notes,
                language=customer.language,
                management_token=uuid.uuid4(),
            )
            await tx.add(appointment)

        logger.info(
            f"Appointment created | ID: {appointment.id} | Org: {organization_id} | "
            f"Service: {service_id} | Start: {start_time.isoformat()}"
        )
        self._notify(NotificationType.CREATED, appointment)
        return ReservationResult.ok(appointment)

    # === Rescheduling ===

    async def reschedule(
        self,
        appointment_id: uuid.UUID,
        new_start_time: datetime,
        organization_id: Optional[uuid.UUID] = None,
    ) -> ReservationResult:
        """Move a pending/confirmed future appointment to a new start.

        The conflict check ignores the appointment itself, so shifting
        within its own interval is allowed.

        Args:
            appointment_id: Appointment to move
            new_start_time: New UTC start instant
            organization_id: Restrict lookup to this organization

        Returns:
            ReservationResult with the updated appointment, or NOT_FOUND /
            NOT_RESCHEDULABLE / PAST_APPOINTMENT / SLOT_CONFLICT
        """
        now = self._clock()

        async with self._store.transaction() as tx:
            appointment = await tx.get_appointment(appointment_id, organization_id)
            if appointment is None:
                return ReservationResult.fail(
                    ReservationError.NOT_FOUND, "Appointment not found"
                )
            return await self._reschedule_locked(tx, appointment, new_start_time, now)

    async def reschedule_by_token(
        self,
        organization_id: uuid.UUID,
        token: uuid.UUID,
        new_start_time: datetime,
    ) -> ReservationResult:
        """reschedule() addressed by management token."""
        now = self._clock()

        async with self._store.transaction() as tx:
            appointment = await tx.get_appointment_by_token(organization_id, token)
            if appointment is None:
                return ReservationResult.fail(
                    ReservationError.NOT_FOUND, "Appointment not found"
                )
            return await self._reschedule_locked(tx, appointment, new_start_time, now)

    async def _reschedule_locked(
        self,
        tx,
        appointment: Appointment,
        new_start_time: datetime,
        now: datetime,
    ) -> ReservationResult:
        if appointment.status not in CANCELLABLE_STATUSES:
            return ReservationResult.fail(
                ReservationError.NOT_RESCHEDULABLE,
                "Appointment cannot be rescheduled",
            )
        if appointment.start_datetime < now:
            return ReservationResult.fail(
                ReservationError.PAST_APPOINTMENT,
                "Cannot reschedule past appointment",
            )
        if new_start_time < now:
            return ReservationResult.fail(
                ReservationError.PAST_APPOINTMENT,
                "Cannot reschedule to a past time",
            )

        service = await tx.lock_service(appointment.service_id)
        if service is None:
            return ReservationResult.fail(ReservationError.NOT_FOUND, "Service not found")

        new_end_time = new_start_time + timedelta(minutes=service.duration_minutes)
        conflict = await tx.find_conflict(
            appointment.service_id,
            new_start_time,
            new_end_time,
            exclude_id=appointment.id,
        )
        if conflict is not None:
            return ReservationResult.fail(
                ReservationError.SLOT_CONFLICT, "Slot no longer available"
            )

        previous_start = appointment.start_datetime
        appointment.start_datetime = new_start_time
        appointment.end_datetime = new_end_time
        appointment.reminder_sent_at = None
        appointment.updated_at = now
        await tx.save(appointment)

        logger.info(
            f"Appointment rescheduled | ID: {appointment.id} | "
            f"New start: {new_start_time.isoformat()}"
        )
        self._notify(NotificationType.RESCHEDULED, appointment, previous_start)
        return ReservationResult.ok(appointment)

    # === Status ===

    async def transition_status(
        self,
        appointment_id: uuid.UUID,
        organization_id: uuid.UUID,
        target: AppointmentStatus,
    ) -> ReservationResult:
        """Apply a guarded status transition.

        Returns:
            ReservationResult with the updated appointment, or NOT_FOUND /
            INVALID_TRANSITION (status left unchanged)
        """
        async with self._store.transaction() as tx:
            appointment = await tx.get_appointment(appointment_id, organization_id)
            if appointment is None:
                return ReservationResult.fail(
                    ReservationError.NOT_FOUND, "Appointment not found"
                )

            current = appointment.status
            if not can_transition(current, target):
                return ReservationResult.fail(
                    ReservationError.INVALID_TRANSITION,
                    f"Cannot transition from {current.value} to {target.value}",
                )

            appointment.status = target
            appointment.updated_at = self._clock()
            await tx.save(appointment)

        logger.info(
            f"Appointment status changed | ID: {appointment_id} | "
            f"{current.value} -> {target.value}"
        )
        event_type = (
            NotificationType.CANCELLED
            if target == AppointmentStatus.CANCELLED
            else NotificationType.STATUS_CHANGED
        )
        self._notify(event_type, appointment)
        return ReservationResult.ok(appointment)

    # === Management token ===

    async def find_by_token(
        self,
        organization_id: uuid.UUID,
        token: uuid.UUID,
    ) -> Optional[Appointment]:
        """Look up an appointment by its management token."""
        async with self._store.transaction() as tx:
            return await tx.get_appointment_by_token(organization_id, token)

    async def cancel_by_token(
        self,
        organization_id: uuid.UUID,
        token: uuid.UUID,
    ) -> ReservationResult:
        """Customer-initiated cancellation of a future appointment.

        Returns:
            ReservationResult, or NOT_FOUND / NOT_CANCELLABLE / PAST_APPOINTMENT
        """
        now = self._clock()

        async with self._store.transaction() as tx:
            appointment = await tx.get_appointment_by_token(organization_id, token)
            if appointment is None:
                return ReservationResult.fail(
                    ReservationError.NOT_FOUND, "Appointment not found"
                )
            if appointment.status not in CANCELLABLE_STATUSES:
                return ReservationResult.fail(
                    ReservationError.NOT_CANCELLABLE, "Appointment cannot be cancelled"
                )
            if appointment.start_datetime < now:
                return ReservationResult.fail(
                    ReservationError.PAST_APPOINTMENT, "Cannot cancel past appointment"
                )

            appointment.status = AppointmentStatus.CANCELLED
            appointment.updated_at = now
            await tx.save(appointment)

        logger.info(f"Appointment cancelled by customer | ID: {appointment.id}")
        self._notify(NotificationType.CANCELLED, appointment)
        return ReservationResult.ok(appointment)

    def _notify(
        self,
        event_type: NotificationType,
        appointment: Appointment,
        previous_start: Optional[datetime] = None,
    ) -> None:
        if self._outbox is None:
            return
        self._outbox.publish(
            NotificationEvent.from_appointment(event_type, appointment, previous_start)
        )
