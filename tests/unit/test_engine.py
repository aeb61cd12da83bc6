"""Tests for the conversation engine."""

import pytest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from app.core.conversation.engine import ConversationEngine
from app.core.conversation.session import SessionStore
from app.core.conversation.states import Completed, SelectDate, ServiceOption
from app.core.scheduling.availability import TimeSlot
from app.core.scheduling.reservations import ReservationError, ReservationResult
from tests.fakes import FIXED_NOW, ORG_ID, InMemorySessionDb, RecordingTransport

PHONE = "5511999999999"
SLOT_START = "2026-02-20T14:00:00Z"


@pytest.fixture
def db():
    return InMemorySessionDb()


@pytest.fixture
def sessions(db):
    return SessionStore(db, ttl_minutes=30, clock=lambda: FIXED_NOW)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def deps():
    mock = MagicMock()
    mock.get_timezone = AsyncMock(return_value="America/Sao_Paulo")
    mock.list_services = AsyncMock(return_value=[
        ServiceOption(id="svc-1", name="Haircut"),
        ServiceOption(id="svc-2", name="Beard"),
    ])
    mock.list_available_slots = AsyncMock(return_value=[
        TimeSlot(
            start_time=datetime(2026, 2, 20, 14, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 2, 20, 15, 0, tzinfo=timezone.utc),
        ),
    ])
    mock.create_appointment = AsyncMock(
        return_value=ReservationResult.ok(SimpleNamespace(id="apt-123"))
    )
    return mock


@pytest.fixture
def engine(sessions, transport, deps):
    return ConversationEngine(sessions, transport, deps)


async def _confirming_session(sessions):
    session = await sessions.create(PHONE, ORG_ID)
    return await sessions.update(
        session.id,
        "confirm",
        {"selectedServiceId": "svc-1", "selectedTimeSlot": SLOT_START},
    )


class TestConfirmStep:
    """Test the reservation turn."""

    @pytest.mark.asyncio
    async def test_confirm_books_appointment(self, engine, sessions, transport, deps):
        """Confirming moves to completed and replies with the appointment id."""
        session = await _confirming_session(sessions)

        state = await engine.handle_message(session, "1")

        stored = await sessions.find(PHONE, ORG_ID)
        assert state == Completed(appointment_id="apt-123")
        assert stored.current_step == "completed"
        assert any("apt-123" in body for body in transport.bodies)
        deps.create_appointment.assert_awaited_once_with(
            organization_id=ORG_ID,
            service_id="svc-1",
            start_time=SLOT_START,
            customer_phone=PHONE,
        )

    @pytest.mark.asyncio
    async def test_reservation_error_returns_to_date(self, engine, sessions, transport, deps):
        """A raised error clears the slot and asks for a date again."""
        deps.create_appointment.side_effect = RuntimeError("connection reset")
        session = await _confirming_session(sessions)

        state = await engine.handle_message(session, "1")

        stored = await sessions.find(PHONE, ORG_ID)
        assert isinstance(state, SelectDate)
        assert stored.current_step == "select_date"
        assert "selectedTimeSlot" not in stored.context
        assert "availableSlots" not in stored.context
        assert stored.context["selectedServiceId"] == "svc-1"
        assert any("no longer available" in body for body in transport.bodies)

    @pytest.mark.asyncio
    async def test_slot_conflict_returns_to_date(self, engine, sessions, transport, deps):
        deps.create_appointment.return_value = ReservationResult.fail(
            ReservationError.SLOT_CONFLICT, "Slot no longer available"
        )
        session = await _confirming_session(sessions)

        await engine.handle_message(session, "1")

        stored = await sessions.find(PHONE, ORG_ID)
        assert stored.current_step == "select_date"
        assert any("no longer available" in body for body in transport.bodies)


class TestConversation:
    """Test whole conversations."""

    @pytest.mark.asyncio
    async def test_full_booking(self, engine, sessions, transport, deps):
        """welcome -> service -> date -> time -> confirm -> completed."""
        steps = []
        for text in ["1", "1", "20/02/2026", "1", "1"]:
            session = await sessions.find_or_create(PHONE, ORG_ID)
            await engine.handle_message(session, text)
            steps.append((await sessions.find(PHONE, ORG_ID)).current_step)

        assert steps == ["select_service", "select_date", "select_time", "confirm", "completed"]
        deps.list_available_slots.assert_awaited_once_with("svc-1", "2026-02-20", ORG_ID)
        assert "Available times:\n1. 11:00" in transport.bodies
        assert transport.sent[-1] == (PHONE, "Appointment confirmed! ID: apt-123")

    @pytest.mark.asyncio
    async def test_input_is_trimmed(self, engine, sessions, deps):
        session = await sessions.create(PHONE, ORG_ID)

        await engine.handle_message(session, "  1 \n")

        deps.list_services.assert_awaited_once_with(ORG_ID)

    @pytest.mark.asyncio
    async def test_invalid_input_still_persists(self, engine, sessions, db):
        """Every turn rewrites the session, even without a step change."""
        session = await sessions.create(PHONE, ORG_ID)
        db.update = AsyncMock(wraps=db.update)

        await engine.handle_message(session, "what?")

        db.update.assert_awaited_once_with(session.id, "welcome", {})

    @pytest.mark.asyncio
    async def test_corrupt_context_restarts(self, engine, sessions, transport):
        """A record that cannot be decoded is treated as welcome."""
        session = await sessions.create(PHONE, ORG_ID)
        session = await sessions.update(session.id, "select_time", {"version": 99})

        await engine.handle_message(session, "2")

        assert (await sessions.find(PHONE, ORG_ID)).current_step == "welcome"
        assert transport.bodies[0].startswith("Welcome")

    @pytest.mark.asyncio
    async def test_no_slots(self, engine, sessions, transport, deps):
        deps.list_available_slots.return_value = []
        session = await sessions.create(PHONE, ORG_ID)
        session = await sessions.update(session.id, "select_date", {"selectedServiceId": "svc-1"})

        await engine.handle_message(session, "20/02/2026")

        assert (await sessions.find(PHONE, ORG_ID)).current_step == "select_date"
        assert transport.bodies == [
            "No available slots for this date. Try another date (DD/MM/YYYY):"
        ]
