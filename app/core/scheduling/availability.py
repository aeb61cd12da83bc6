"""
Availability Calculator.

Computes the bookable slots of a service on one local calendar date from the
service's weekly schedule, the organization's time blocks and the existing
non-cancelled appointments.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.core.scheduling.timeutils import (
    _utcnow,
    day_of_week,
    format_utc,
    get_zone,
    local_day_window,
    local_to_utc,
    overlaps,
    to_minutes,
    wall_time_exists,
)
from app.models.database import (
    Appointment,
    AppointmentStatus,
    Organization,
    Schedule,
    Service,
    TimeBlock,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSlot:
    """A bookable interval. Both ends are UTC instants."""

    start_time: datetime
    end_time: datetime

    def to_dict(self) -> dict:
        """Convert to API/context dictionary."""
        return {
            "startTime": format_utc(self.start_time),
            "endTime": format_utc(self.end_time),
        }


def generate_slots(
    day: date,
    timezone_name: str,
    duration_minutes: int,
    periods: Iterable[tuple[int, int]],
    blocks: Sequence[tuple[int, int]],
    booked: Sequence[tuple[datetime, datetime]],
    now: datetime,
) -> list[TimeSlot]:
    """
    Walk each period in steps of the service duration and keep free slots.

    Args:
        day: Local calendar date
        timezone_name: Organization IANA timezone
        duration_minutes: Service duration (also the step)
        periods: (start, end) minutes since local midnight
        blocks: (start, end) minutes of the day's time blocks
        booked: (start, end) UTC instants of non-cancelled appointments
        now: Current instant; only slots starting strictly after it are kept

    Returns:
        Slots in chronological order
    """
    if duration_minutes <= 0:
        return []

    tz = get_zone(timezone_name)
    length = timedelta(minutes=duration_minutes)
    slots: list[TimeSlot] = []

    for period_start, period_end in sorted(periods):
        slot_start = period_start
        while slot_start + duration_minutes <= period_end:
            slot_end = slot_start + duration_minutes

            blocked = any(
                overlaps(slot_start, slot_end, block_start, block_end)
                for block_start, block_end in blocks
            )
            # Starts skipped by a DST gap and slots whose UTC length differs
            # from the duration (spanning a transition) are not offered
            if not blocked and wall_time_exists(day, slot_start, tz):
                start_utc = local_to_utc(day, slot_start, tz)
                end_utc = local_to_utc(day, slot_end, tz)
                taken = any(
                    overlaps(start_utc, end_utc, booked_start, booked_end)
                    for booked_start, booked_end in booked
                )
                after_previous = not slots or start_utc >= slots[-1].end_time
                if (
                    end_utc - start_utc == length
                    and after_previous
                    and not taken
                    and start_utc > now
                ):
                    slots.append(TimeSlot(start_time=start_utc, end_time=end_utc))

            slot_start += duration_minutes

    return slots


class AvailabilityCalculator:
    """
    Loads scheduling data and delegates to generate_slots.

    Any missing piece (service, organization, schedule, periods) yields an
    empty list rather than an error.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize calculator.

        Args:
            session_factory: Shared SQLAlchemy session factory
            clock: Returns the current UTC instant (defaults to wall clock)
        """
        self._session_factory = session_factory
        self._clock = clock or _utcnow

    async def calculate(
        self,
        service_id: uuid.UUID,
        day: date,
        organization_id: uuid.UUID,
    ) -> list[TimeSlot]:
        """Return the available slots of a service on a local date.

        Args:
            service_id: Service to book
            day: Local calendar date in the organization's timezone
            organization_id: Owning organization

        Returns:
            Chronological list of free future slots
        """
        async with self._session_factory() as db:
            service = await self._get_service(db, service_id, organization_id)
            if service is None or not service.active:
                return []

            organization = await db.get(Organization, organization_id)
            if organization is None:
                return []

            schedule = await self._get_schedule(db, service_id, day_of_week(day))
            if schedule is None or not schedule.is_active or not schedule.periods:
                return []

            tz = get_zone(organization.timezone)
            window_start, window_end = local_day_window(day, tz)

            blocks = await self._get_blocks(db, organization_id, day)
            booked = await self._get_booked(db, service_id, window_start, window_end)

        slots = generate_slots(
            day=day,
            timezone_name=organization.timezone,
            duration_minutes=service.duration_minutes,
            periods=[
                (to_minutes(p.start_time), to_minutes(p.end_time))
                for p in schedule.periods
            ],
            blocks=[(to_minutes(b.start_time), to_minutes(b.end_time)) for b in blocks],
            booked=[(a.start_datetime, a.end_datetime) for a in booked],
            now=self._clock(),
        )
        logger.debug(
            f"Availability computed | Service: {service_id} | Date: {day} | "
            f"Slots: {len(slots)}"
        )
        return slots

    async def _get_service(
        self,
        db: AsyncSession,
        service_id: uuid.UUID,
        organization_id: uuid.UUID,
    ) -> Optional[Service]:
        result = await db.execute(
            select(Service).where(
                Service.id == service_id,
                Service.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def _get_schedule(
        self,
        db: AsyncSession,
        service_id: uuid.UUID,
        weekday: int,
    ) -> Optional[Schedule]:
        result = await db.execute(
            select(Schedule)
            .options(selectinload(Schedule.periods))
            .where(Schedule.service_id == service_id, Schedule.day_of_week == weekday)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_blocks(
        self,
        db: AsyncSession,
        organization_id: uuid.UUID,
        day: date,
    ) -> list[TimeBlock]:
        result = await db.execute(
            select(TimeBlock).where(
                TimeBlock.organization_id == organization_id,
                TimeBlock.date == day,
            )
        )
        return list(result.scalars().all())

    async def _get_booked(
        self,
        db: AsyncSession,
        service_id: uuid.UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Appointment]:
        result = await db.execute(
            select(Appointment).where(
                Appointment.service_id == service_id,
                Appointment.status != AppointmentStatus.CANCELLED,
                Appointment.start_datetime < window_end,
                Appointment.end_datetime > window_start,
            )
        )
        return list(result.scalars().all())
