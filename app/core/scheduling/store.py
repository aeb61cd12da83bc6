"""
Appointment storage used by the reservation transactor.

A transaction is the unit of atomicity: everything done through one
AppointmentTransaction commits together or not at all. lock_service()
serializes writers of the same service until the transaction ends, which
makes the conflict check and the following write race-free.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.database import Appointment, AppointmentStatus, Service


class AppointmentTransaction(Protocol):
    """Operations available inside one appointment transaction."""

    async def lock_service(
        self,
        service_id: uuid.UUID,
        organization_id: Optional[uuid.UUID] = None,
    ) -> Optional[Service]:
        ...

    async def get_appointment(
        self,
        appointment_id: uuid.UUID,
        organization_id: Optional[uuid.UUID] = None,
    ) -> Optional[Appointment]:
        ...

    async def get_appointment_by_token(
        self,
        organization_id: uuid.UUID,
        token: uuid.UUID,
    ) -> Optional[Appointment]:
        ...

    async def find_conflict(
        self,
        service_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[Appointment]:
        ...

    async def add(self, appointment: Appointment) -> None:
        ...

    async def save(self, appointment: Appointment) -> None:
        ...


class AppointmentStore(Protocol):
    """Opens appointment transactions."""

    def transaction(self) -> AsyncContextManager[AppointmentTransaction]:
        ...


class SqlAppointmentTransaction:
    """AppointmentTransaction over one SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def lock_service(
        self,
        service_id: uuid.UUID,
        organization_id: Optional[uuid.UUID] = None,
    ) -> Optional[Service]:
        """SELECT ... FOR UPDATE on the service row."""
        query = select(Service).where(Service.id == service_id).with_for_update()
        if organization_id is not None:
            query = query.where(Service.organization_id == organization_id)
        result = await self._db.execute(query)
        return result.scalar_one_or_none()

    async def get_appointment(
        self,
        appointment_id: uuid.UUID,
        organization_id: Optional[uuid.UUID] = None,
    ) -> Optional[Appointment]:
        query = (
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .with_for_update()
        )
        if organization_id is not None:
            query = query.where(Appointment.organization_id == organization_id)
        result = await self._db.execute(query)
        return result.scalar_one_or_none()

    async def get_appointment_by_token(
        self,
        organization_id: uuid.UUID,
        token: uuid.UUID,
    ) -> Optional[Appointment]:
        result = await self._db.execute(
            select(Appointment)
            .where(
                Appointment.management_token == token,
                Appointment.organization_id == organization_id,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def find_conflict(
        self,
        service_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[Appointment]:
        """First non-cancelled appointment of the service overlapping [start, end)."""
        query = select(Appointment).where(
            Appointment.service_id == service_id,
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.start_datetime < end,
            Appointment.end_datetime > start,
        )
        if exclude_id is not None:
            query = query.where(Appointment.id != exclude_id)
        result = await self._db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def add(self, appointment: Appointment) -> None:
        self._db.add(appointment)
        await self._db.flush()

    async def save(self, appointment: Appointment) -> None:
        await self._db.flush()


class SqlAppointmentStore:
    """AppointmentStore backed by PostgreSQL row locks."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAppointmentTransaction]:
        """Open a session and a transaction that commits on clean exit."""
        async with self._session_factory() as db:
            async with db.begin():
                yield SqlAppointmentTransaction(db)
