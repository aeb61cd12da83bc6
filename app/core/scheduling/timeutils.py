"""
Time helpers for organization-local scheduling.

Schedules and time blocks are expressed as local times-of-day on a local
calendar date; appointments are UTC instants. These helpers convert between
the two using the organization's IANA timezone.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

DEFAULT_TIMEZONE = "America/Sao_Paulo"


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to the default zone."""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def to_minutes(value: Union[str, time]) -> int:
    """Minutes since local midnight for "HH:MM[:SS]" or a time object."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def day_of_week(day: date) -> int:
    """Weekday of a calendar date with 0 = Sunday .. 6 = Saturday."""
    return (day.weekday() + 1) % 7


def local_to_utc(day: date, minutes: int, tz: ZoneInfo) -> datetime:
    """
    Convert a local wall-clock minute on ``day`` to a UTC instant.

    Minutes past 1440 roll onto the following days. Wall times skipped by a
    DST gap resolve forward; repeated wall times resolve to the first
    occurrence.
    """
    days, minute_of_day = divmod(minutes, MINUTES_PER_DAY)
    local_day = day + timedelta(days=days)
    wall = datetime.combine(
        local_day,
        time(minute_of_day // 60, minute_of_day % 60),
        tzinfo=tz,
    )
    return wall.astimezone(timezone.utc)


def wall_time_exists(day: date, minutes: int, tz: ZoneInfo) -> bool:
    """False for a wall-clock minute skipped by a DST gap."""
    days, minute_of_day = divmod(minutes, MINUTES_PER_DAY)
    local = local_to_utc(day, minutes, tz).astimezone(tz)
    return (
        local.date() == day + timedelta(days=days)
        and local.hour * 60 + local.minute == minute_of_day
    )


def local_day_window(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds of [local midnight, next local midnight) for ``day``."""
    return local_to_utc(day, 0, tz), local_to_utc(day, MINUTES_PER_DAY, tz)


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open interval overlap. Touching endpoints do not overlap."""
    return a_start < b_end and a_end > b_start


def format_utc(value: datetime) -> str:
    """Serialize an instant as YYYY-MM-DDTHH:MM:SSZ."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_instant(value: str) -> datetime:
    """
    Parse an ISO-8601 instant into an aware UTC datetime.

    Raises:
        ValueError: If the value is not ISO-8601 or has no offset
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise ValueError(f"Instant without offset: {value}")
    return parsed.astimezone(timezone.utc)


def format_local_time(value: datetime, tz: ZoneInfo) -> str:
    """HH:MM of an instant in the given zone."""
    return value.astimezone(tz).strftime("%H:%M")
