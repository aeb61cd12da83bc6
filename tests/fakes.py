"""In-memory stand-ins for the storage protocols used in unit tests."""

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

from app.core.conversation.session import SessionData
from app.infra.whatsapp import SendResult
from app.models.database import Appointment, AppointmentStatus, Service

ORG_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
SERVICE_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_service(
    service_id: uuid.UUID = SERVICE_ID,
    organization_id: uuid.UUID = ORG_ID,
    duration_minutes: int = 60,
    active: bool = True,
    name: str = "Haircut",
) -> Service:
    return Service(
        id=service_id,
        organization_id=organization_id,
        name=name,
        duration_minutes=duration_minutes,
        price=5000,
        active=active,
    )


def make_appointment(
    start: datetime,
    duration_minutes: int = 60,
    status: AppointmentStatus = AppointmentStatus.PENDING,
    service_id: uuid.UUID = SERVICE_ID,
    organization_id: uuid.UUID = ORG_ID,
) -> Appointment:
    return Appointment(
        id=uuid.uuid4(),
        organization_id=organization_id,
        service_id=service_id,
        start_datetime=start,
        end_datetime=start + timedelta(minutes=duration_minutes),
        status=status,
        customer_name="Ana",
        customer_email="ana@example.com",
        customer_phone=None,
        notes=None,
        language="en",
        management_token=uuid.uuid4(),
    )


class InMemoryTransaction:
    """Transaction over InMemoryAppointmentStore. Writes apply on commit."""

    def __init__(self, store: "InMemoryAppointmentStore"):
        self._store = store
        self.added: list[Appointment] = []
        self.held: list[asyncio.Lock] = []

    async def lock_service(self, service_id, organization_id=None) -> Optional[Service]:
        lock = self._store.locks[service_id]
        if lock not in self.held:
            await lock.acquire()
            self.held.append(lock)
        await asyncio.sleep(0)
        service = self._store.services.get(service_id)
        if service is None:
            return None
        if organization_id is not None and service.organization_id != organization_id:
            return None
        return service

    async def get_appointment(self, appointment_id, organization_id=None):
        appointment = self._store.appointments.get(appointment_id)
        if appointment is None:
            return None
        if organization_id is not None and appointment.organization_id != organization_id:
            return None
        return appointment

    async def get_appointment_by_token(self, organization_id, token):
        for appointment in self._store.appointments.values():
            if (
                appointment.management_token == token
                and appointment.organization_id == organization_id
            ):
                return appointment
        return None

    async def find_conflict(self, service_id, start, end, exclude_id=None):
        await asyncio.sleep(0)
        for appointment in list(self._store.appointments.values()) + self.added:
            if appointment.service_id != service_id or appointment.id == exclude_id:
                continue
            if appointment.status == AppointmentStatus.CANCELLED:
                continue
            if appointment.start_datetime < end and appointment.end_datetime > start:
                return appointment
        return None

    async def add(self, appointment: Appointment) -> None:
        await asyncio.sleep(0)
        self.added.append(appointment)

    async def save(self, appointment: Appointment) -> None:
        self._store.saves += 1


class InMemoryAppointmentStore:
    """AppointmentStore with one asyncio.Lock per service."""

    def __init__(self, services=(), appointments=()):
        self.services = {s.id: s for s in services}
        self.appointments = {a.id: a for a in appointments}
        self.locks: dict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.commits = 0
        self.saves = 0

    @asynccontextmanager
    async def transaction(self):
        tx = InMemoryTransaction(self)
        try:
            yield tx
            for appointment in tx.added:
                self.appointments[appointment.id] = appointment
            self.commits += 1
        finally:
            for lock in tx.held:
                lock.release()


class InMemorySessionDb:
    """SessionDb keeping rows in a dict. Expired rows stay until deleted."""

    def __init__(self, clock=None):
        self.rows: dict[uuid.UUID, SessionData] = {}
        self._clock = clock or (lambda: FIXED_NOW)

    async def find_active_by_phone(self, phone_number, organization_id, ttl_threshold):
        live = [
            row
            for row in self.rows.values()
            if row.phone_number == phone_number
            and row.organization_id == organization_id
            and row.updated_at > ttl_threshold
        ]
        if not live:
            return None
        return max(live, key=lambda row: row.updated_at)

    async def create(self, phone_number, organization_id) -> SessionData:
        now = self._clock()
        session = SessionData(
            id=uuid.uuid4(),
            phone_number=phone_number,
            organization_id=organization_id,
            created_at=now,
            updated_at=now,
        )
        self.rows[session.id] = session
        return session

    async def update(self, session_id, current_step: str, context: dict[str, Any]):
        row = self.rows.get(session_id)
        if row is None:
            return None
        row.current_step = current_step
        row.context = dict(context)
        row.updated_at = self._clock()
        return row

    async def delete_expired(self, ttl_threshold) -> int:
        expired = [sid for sid, row in self.rows.items() if row.updated_at <= ttl_threshold]
        for sid in expired:
            del self.rows[sid]
        return len(expired)


class RecordingTransport:
    """MessageTransport that records what would have been sent."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.read: list[str] = []

    async def send_text(self, to: str, body: str) -> SendResult:
        self.sent.append((to, body))
        return SendResult(success=True, message_id=f"wamid.{len(self.sent)}")

    async def mark_as_read(self, message_id: str) -> None:
        self.read.append(message_id)

    @property
    def bodies(self) -> list[str]:
        return [body for _, body in self.sent]


def mock_session_factory(db) -> MagicMock:
    """async_sessionmaker stand-in whose sessions are all ``db``."""
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=db)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


def mock_result(one=None, many=None, rows=None) -> MagicMock:
    """Result stand-in for scalar_one_or_none / scalars().all() / all()."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = one
    result.scalars.return_value.all.return_value = many or []
    result.all.return_value = rows or []
    return result
