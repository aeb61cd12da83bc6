"""Tests for slot generation and the availability calculator."""

import uuid
import pytest
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

from app.core.scheduling.availability import (
    AvailabilityCalculator,
    TimeSlot,
    generate_slots,
)
from app.core.scheduling.timeutils import overlaps
from tests.fakes import mock_result, mock_session_factory

UTC = timezone.utc
MONDAY = date(2025, 6, 2)
SAO_PAULO = "America/Sao_Paulo"

# 08:00 in São Paulo
BEFORE_OPENING = datetime(2025, 6, 2, 11, 0, tzinfo=UTC)

MORNING = [(9 * 60, 12 * 60)]


def utc(hour: int, minute: int = 0, day: int = 2) -> datetime:
    return datetime(2025, 6, day, hour, minute, tzinfo=UTC)


class TestGenerateSlots:
    """Test the pure slot generator."""

    def test_morning_period_thirty_minutes(self):
        """09:00-12:00 in 30 minute steps gives six slots in UTC-3."""
        slots = generate_slots(MONDAY, SAO_PAULO, 30, MORNING, [], [], BEFORE_OPENING)

        assert len(slots) == 6
        assert slots[0] == TimeSlot(start_time=utc(12), end_time=utc(12, 30))
        assert slots[5] == TimeSlot(start_time=utc(14, 30), end_time=utc(15))

    def test_half_hour_offset_zone(self):
        """Kolkata slots land on :30 in UTC."""
        slots = generate_slots(
            MONDAY, "Asia/Kolkata", 60, MORNING, [], [], datetime(2025, 6, 1, tzinfo=UTC)
        )

        assert [s.start_time for s in slots] == [utc(3, 30), utc(4, 30), utc(5, 30)]

    def test_block_removes_overlapping_slots(self):
        """A 10:00-11:00 block removes the 10:00 and 10:30 slots."""
        slots = generate_slots(
            MONDAY, SAO_PAULO, 30, MORNING, [(600, 660)], [], BEFORE_OPENING
        )

        starts = [s.start_time for s in slots]
        assert len(slots) == 4
        assert utc(13) not in starts
        assert utc(13, 30) not in starts

    def test_block_touching_period_edge_removes_nothing(self):
        """A block starting at 12:00 does not touch a slot ending at 12:00."""
        slots = generate_slots(
            MONDAY, SAO_PAULO, 30, MORNING, [(720, 780)], [], BEFORE_OPENING
        )

        assert len(slots) == 6

    def test_appointment_removes_slot(self):
        """An appointment at 10:00 local removes exactly that slot."""
        booked = [(utc(13), utc(13, 30))]

        slots = generate_slots(MONDAY, SAO_PAULO, 30, MORNING, [], booked, BEFORE_OPENING)

        assert len(slots) == 5
        assert all(s.start_time != utc(13) for s in slots)

    def test_misaligned_appointment_removes_both_neighbours(self):
        """10:15-10:45 overlaps the 10:00 and 10:30 slots."""
        booked = [(utc(13, 15), utc(13, 45))]

        slots = generate_slots(MONDAY, SAO_PAULO, 30, MORNING, [], booked, BEFORE_OPENING)

        assert len(slots) == 4

    def test_slots_starting_at_or_before_now_are_dropped(self):
        """At exactly 10:00 local the 10:00 slot is no longer offered."""
        slots = generate_slots(MONDAY, SAO_PAULO, 30, MORNING, [], [], utc(13))

        assert [s.start_time for s in slots] == [utc(13, 30), utc(14), utc(14, 30)]

    def test_periods_are_walked_in_order(self):
        """Unsorted periods still produce chronological slots."""
        periods = [(14 * 60, 15 * 60), (9 * 60, 10 * 60)]

        slots = generate_slots(MONDAY, SAO_PAULO, 60, periods, [], [], BEFORE_OPENING)

        assert [s.start_time for s in slots] == [utc(12), utc(17)]

    def test_duration_not_dividing_period(self):
        """Trailing time shorter than the duration is not offered."""
        slots = generate_slots(MONDAY, SAO_PAULO, 50, MORNING, [], [], BEFORE_OPENING)

        assert len(slots) == 3
        assert slots[-1].end_time == utc(14, 30)

    def test_period_ending_at_midnight(self):
        """A period ending at minute 1440 includes the last slot of the day."""
        slots = generate_slots(
            MONDAY, SAO_PAULO, 60, [(23 * 60, 24 * 60)], [], [], BEFORE_OPENING
        )

        assert slots == [TimeSlot(start_time=utc(2, day=3), end_time=utc(3, day=3))]

    def test_dst_gap_slot_is_skipped(self):
        """On spring-forward day the slot starting at 02:00 is not offered."""
        slots = generate_slots(
            date(2025, 3, 9),
            "America/New_York",
            60,
            [(60, 240)],
            [],
            [],
            datetime(2025, 3, 8, tzinfo=UTC),
        )

        assert [(s.start_time.hour, s.end_time.hour) for s in slots] == [(6, 7), (7, 8)]

    def test_spring_forward_half_hour_slots_do_not_overlap(self):
        """Starts at 02:00 and 02:30 do not exist; nothing lands on 03:00's interval."""
        slots = generate_slots(
            date(2025, 3, 9),
            "America/New_York",
            30,
            [(60, 240)],
            [],
            [],
            datetime(2025, 3, 8, tzinfo=UTC),
        )

        assert [(s.start_time.strftime("%H:%M"), s.end_time.strftime("%H:%M")) for s in slots] == [
            ("06:00", "06:30"),
            ("06:30", "07:00"),
            ("07:00", "07:30"),
            ("07:30", "08:00"),
        ]
        for index, slot in enumerate(slots):
            for other in slots[index + 1:]:
                assert not overlaps(slot.start_time, slot.end_time, other.start_time, other.end_time)

    def test_fall_back_slots_have_service_length(self):
        """The slot spanning the repeated hour is dropped."""
        slots = generate_slots(
            date(2025, 11, 2),
            "America/New_York",
            30,
            [(0, 180)],
            [],
            [],
            datetime(2025, 11, 1, tzinfo=UTC),
        )

        assert all(s.end_time - s.start_time == timedelta(minutes=30) for s in slots)
        assert [s.start_time.strftime("%H:%M") for s in slots] == [
            "04:00", "04:30", "05:00", "07:00", "07:30",
        ]

    def test_transition_at_local_midnight(self):
        """Santiago skips 00:00-01:00 on 2025-09-07; the day starts at 01:00 local."""
        slots = generate_slots(
            date(2025, 9, 7),
            "America/Santiago",
            60,
            [(0, 180)],
            [],
            [],
            datetime(2025, 9, 6, tzinfo=UTC),
        )

        assert slots == [
            TimeSlot(
                start_time=datetime(2025, 9, 7, 4, 0, tzinfo=UTC),
                end_time=datetime(2025, 9, 7, 5, 0, tzinfo=UTC),
            ),
            TimeSlot(
                start_time=datetime(2025, 9, 7, 5, 0, tzinfo=UTC),
                end_time=datetime(2025, 9, 7, 6, 0, tzinfo=UTC),
            ),
        ]

    def test_zero_duration_returns_nothing(self):
        assert generate_slots(MONDAY, SAO_PAULO, 0, MORNING, [], [], BEFORE_OPENING) == []

    def test_count_matches_formula_and_slots_are_disjoint(self):
        """Count equals periods/duration minus removed slots; nothing overlaps."""
        periods = [(8 * 60, 12 * 60), (13 * 60, 18 * 60)]
        blocks = [(15 * 60, 16 * 60)]
        booked = [(utc(12), utc(12, 20)), (utc(17), utc(17, 20))]

        slots = generate_slots(MONDAY, SAO_PAULO, 20, periods, blocks, booked, BEFORE_OPENING)

        # 12 + 15 candidates; 3 blocked; 2 booked; 08:00 local starts at now
        assert len(slots) == 27 - 3 - 2 - 1
        for i, a in enumerate(slots):
            for b in slots[i + 1:]:
                assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)
            for booked_start, booked_end in booked:
                assert not overlaps(a.start_time, a.end_time, booked_start, booked_end)
            assert a.start_time > BEFORE_OPENING

    def test_idempotent(self):
        """Identical inputs give identical ordered output."""
        args = (MONDAY, SAO_PAULO, 30, MORNING, [(600, 630)], [(utc(14), utc(14, 30))])

        assert generate_slots(*args, BEFORE_OPENING) == generate_slots(*args, BEFORE_OPENING)


class TestTimeSlot:
    """Test TimeSlot serialization."""

    def test_to_dict(self):
        slot = TimeSlot(start_time=utc(12), end_time=utc(12, 30))

        assert slot.to_dict() == {
            "startTime": "2025-06-02T12:00:00Z",
            "endTime": "2025-06-02T12:30:00Z",
        }


class TestAvailabilityCalculator:
    """Test AvailabilityCalculator with a mocked session."""

    @pytest.fixture
    def service(self):
        return SimpleNamespace(active=True, duration_minutes=30)

    @pytest.fixture
    def schedule(self):
        return SimpleNamespace(
            is_active=True,
            periods=[SimpleNamespace(start_time=time(9), end_time=time(12))],
        )

    @pytest.fixture
    def db(self):
        mock = AsyncMock()
        mock.get = AsyncMock(return_value=SimpleNamespace(timezone=SAO_PAULO))
        return mock

    def _calculator(self, db) -> AvailabilityCalculator:
        return AvailabilityCalculator(mock_session_factory(db), clock=lambda: BEFORE_OPENING)

    @pytest.mark.asyncio
    async def test_calculate(self, db, service, schedule):
        """Loads everything and returns the free slots."""
        db.execute = AsyncMock(side_effect=[
            mock_result(one=service),
            mock_result(one=schedule),
            mock_result(many=[SimpleNamespace(start_time=time(10), end_time=time(11))]),
            mock_result(many=[SimpleNamespace(start_datetime=utc(14), end_datetime=utc(14, 30))]),
        ])

        slots = await self._calculator(db).calculate(uuid.uuid4(), MONDAY, uuid.uuid4())

        assert [s.start_time for s in slots] == [utc(12), utc(12, 30), utc(14, 30)]

    @pytest.mark.asyncio
    async def test_unknown_service(self, db):
        """Missing service gives an empty list without further queries."""
        db.execute = AsyncMock(side_effect=[mock_result(one=None)])

        slots = await self._calculator(db).calculate(uuid.uuid4(), MONDAY, uuid.uuid4())

        assert slots == []
        assert db.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_inactive_service(self, db):
        db.execute = AsyncMock(side_effect=[
            mock_result(one=SimpleNamespace(active=False, duration_minutes=30)),
        ])

        assert await self._calculator(db).calculate(uuid.uuid4(), MONDAY, uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_missing_organization(self, db, service):
        db.execute = AsyncMock(side_effect=[mock_result(one=service)])
        db.get = AsyncMock(return_value=None)

        assert await self._calculator(db).calculate(uuid.uuid4(), MONDAY, uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_no_schedule_for_weekday(self, db, service):
        db.execute = AsyncMock(side_effect=[mock_result(one=service), mock_result(one=None)])

        assert await self._calculator(db).calculate(uuid.uuid4(), MONDAY, uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_inactive_schedule(self, db, service, schedule):
        schedule.is_active = False
        db.execute = AsyncMock(side_effect=[mock_result(one=service), mock_result(one=schedule)])

        assert await self._calculator(db).calculate(uuid.uuid4(), MONDAY, uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_schedule_without_periods(self, db, service, schedule):
        schedule.periods = []
        db.execute = AsyncMock(side_effect=[mock_result(one=service), mock_result(one=schedule)])

        assert await self._calculator(db).calculate(uuid.uuid4(), MONDAY, uuid.uuid4()) == []
