"""
Collaborators of the conversation engine.

AppointmentDeps is the booking facade the engine talks to; MessageTransport
sends replies. SqlAppointmentDeps wires the facade to the database, the
availability calculator and the reservation transactor.
"""

import uuid
from datetime import date
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.conversation.states import ServiceOption
from app.core.scheduling.availability import AvailabilityCalculator, TimeSlot
from app.core.scheduling.reservations import (
    CustomerInfo,
    ReservationResult,
    ReservationTransactor,
)
from app.core.scheduling.timeutils import DEFAULT_TIMEZONE, parse_instant
from app.infra.whatsapp import SendResult
from app.models.database import Organization, Service

# Name recorded on appointments booked through chat
CHAT_CUSTOMER_NAME = "WhatsApp Customer"


class AppointmentDeps(Protocol):
    """Booking operations consumed by the conversation engine."""

    async def list_services(self, organization_id: uuid.UUID) -> list[ServiceOption]:
        ...

    async def list_available_slots(
        self,
        service_id: str,
        iso_date: str,
        organization_id: uuid.UUID,
    ) -> list[TimeSlot]:
        ...

    async def create_appointment(
        self,
        organization_id: uuid.UUID,
        service_id: str,
        start_time: str,
        customer_phone: str,
    ) -> ReservationResult:
        ...

    async def get_timezone(self, organization_id: uuid.UUID) -> str:
        ...


class MessageTransport(Protocol):
    """Outbound chat channel. Both calls are best-effort and never raise."""

    async def send_text(self, to: str, body: str) -> SendResult:
        ...

    async def mark_as_read(self, message_id: str) -> None:
        ...


class SqlAppointmentDeps:
    """AppointmentDeps over the shared database and core scheduling components."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        calculator: AvailabilityCalculator,
        transactor: ReservationTransactor,
    ):
        self._session_factory = session_factory
        self._calculator = calculator
        self._transactor = transactor

    async def list_services(self, organization_id: uuid.UUID) -> list[ServiceOption]:
        """Active services of the organization, ordered by name."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(Service.id, Service.name)
                .where(Service.organization_id == organization_id, Service.active.is_(True))
                .order_by(Service.name)
            )
            return [ServiceOption(id=str(row.id), name=row.name) for row in result.all()]

    async def list_available_slots(
        self,
        service_id: str,
        iso_date: str,
        organization_id: uuid.UUID,
    ) -> list[TimeSlot]:
        try:
            service_uuid = uuid.UUID(service_id)
        except ValueError:
            return []
        return await self._calculator.calculate(
            service_uuid, date.fromisoformat(iso_date), organization_id
        )

    async def create_appointment(
        self,
        organization_id: uuid.UUID,
        service_id: str,
        start_time: str,
        customer_phone: str,
    ) -> ReservationResult:
        """Book a chat slot.

        Raises:
            ValueError: If service_id or start_time are malformed
        """
        return await self._transactor.create(
            organization_id=organization_id,
            service_id=uuid.UUID(service_id),
            start_time=parse_instant(start_time),
            customer=CustomerInfo(name=CHAT_CUSTOMER_NAME, email="", phone=customer_phone),
        )

    async def get_timezone(self, organization_id: uuid.UUID) -> str:
        async with self._session_factory() as db:
            organization: Optional[Organization] = await db.get(Organization, organization_id)
            return organization.timezone if organization else DEFAULT_TIMEZONE
