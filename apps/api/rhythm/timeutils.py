"""Wall-clock parsing and local-day helpers shared by the engine modules."""
from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

_CLOCK_PATTERN = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m?\.?\s*$", re.IGNORECASE)
_CLOCK_24H_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")


def parse_clock(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse "6:45 PM", "6pm" or "18:45" into an (hour, minute) pair.

    Returns None for anything that is not a valid clock time.
    """

    if not value:
        return None
    text = value.strip()
    match = _CLOCK_PATTERN.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            return None
        meridiem = match.group(3).lower()
        if meridiem == "p" and hour != 12:
            hour += 12
        if meridiem == "a" and hour == 12:
            hour = 0
        return hour, minute
    match = _CLOCK_24H_PATTERN.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return hour, minute
    return None


def is_valid_zone(name: Optional[str]) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_zone(name: Optional[str], fallback: tzinfo) -> tzinfo:
    """Return the named zone, or ``fallback`` when the name is empty or unknown."""

    if not name:
        return fallback
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown timezone, using fallback", extra={"timezone": name, "fallback": str(fallback)})
        return fallback


def default_zone(name: str) -> tzinfo:
    """Resolve the configured default zone, degrading to UTC."""

    return resolve_zone(name, timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_local_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def anchor_clock(day: date, clock: Tuple[int, int], zone: tzinfo) -> datetime:
    """Turn a local calendar day plus clock time into an absolute UTC instant."""

    hour, minute = clock
    local = datetime.combine(day, time(hour, minute), tzinfo=zone)
    return local.astimezone(timezone.utc)


def local_date(value: datetime, zone: tzinfo) -> date:
    return value.astimezone(zone).date()


def local_hour(value: datetime, zone: tzinfo) -> int:
    return value.astimezone(zone).hour


def local_day_bounds(now: datetime, zone: tzinfo) -> Tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of the local calendar day containing ``now``."""

    day = local_date(now, zone)
    start = datetime.combine(day, time(0, 0), tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def is_night_hour(hour: int, night_start: int, night_end: int) -> bool:
    if night_start > night_end:
        return hour >= night_start or hour < night_end
    return night_start <= hour < night_end


def minutes_between(later: datetime, earlier: datetime) -> int:
    return int(round((later - earlier).total_seconds() / 60))


def format_clock(value: datetime, zone: tzinfo) -> str:
    local = value.astimezone(zone)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {meridiem}"


def format_duration(minutes: float) -> str:
    total = int(round(minutes))
    hours, remainder = divmod(total, 60)
    if hours == 0:
        return f"{remainder}m"
    if remainder == 0:
        return f"{hours}h"
    return f"{hours}h {remainder}m"


def parse_birth_date(value: Optional[str]) -> Optional[date]:
    return parse_local_date(value)


def age_in_months(birth_date: Optional[date], now: datetime, zone: tzinfo) -> Optional[int]:
    """Whole months since birth using the 30.44-day average month."""

    if birth_date is None:
        return None
    days = (local_date(now, zone) - birth_date).days
    if days < 0:
        return None
    return int(math.floor(days / 30.44))
