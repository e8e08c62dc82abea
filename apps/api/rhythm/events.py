"""Normalize raw activity records into events, sleep segments and feeds."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, List, Optional, Sequence

from .config import EngineSettings
from .schemas import SCHEDULING_TYPES, ActivityDetails, ActivityRecord, ActivityType, FeedType, SleepKind
from .timeutils import (
    anchor_clock,
    ensure_aware,
    is_night_hour,
    local_date,
    local_hour,
    minutes_between,
    parse_clock,
    parse_local_date,
    resolve_zone,
)

logger = logging.getLogger(__name__)

_QUANTITY_PATTERN = re.compile(r"\d+(?:\.\d+)?")
_SCHEDULING_VALUES = {kind.value for kind in SCHEDULING_TYPES}


@dataclass(frozen=True)
class Event:
    id: str
    kind: str
    timestamp: datetime
    zone: tzinfo
    details: ActivityDetails
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class SleepSegment:
    start: datetime
    end: Optional[datetime]
    kind: SleepKind
    duration: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.end is None


@dataclass(frozen=True)
class FeedEvent:
    timestamp: datetime
    volume: float
    type: FeedType


class _UnparseableClock(ValueError):
    pass


def _anchor_day(record: ActivityRecord, logged_at: datetime, zone: tzinfo) -> date:
    return parse_local_date(record.details.date_local) or local_date(logged_at, zone)


def _resolve_clock(value: Optional[str], day: date, zone: tzinfo) -> Optional[datetime]:
    if value is None or not str(value).strip():
        return None
    clock = parse_clock(str(value))
    if clock is None:
        raise _UnparseableClock(value)
    return anchor_clock(day, clock, zone)


def _normalize_one(record: ActivityRecord, fallback_zone: tzinfo) -> Optional[Event]:
    zone = resolve_zone(record.timezone, fallback_zone)
    logged_at = ensure_aware(record.logged_at)
    day = _anchor_day(record, logged_at, zone)
    details = record.details

    timestamp = logged_at
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    try:
        if record.type == ActivityType.NAP.value:
            start = _resolve_clock(details.start_time, day, zone)
            end = _resolve_clock(details.end_time, day, zone)
            if start is not None:
                timestamp = start
                if end is not None and end < start:
                    end += timedelta(hours=24)
                if start > logged_at and not parse_local_date(details.date_local):
                    # Logged the morning after: the start belongs to the previous evening.
                    start -= timedelta(hours=24)
                    end = end - timedelta(hours=24) if end is not None else None
                    timestamp = start
                    logger.debug("moved sleep start to previous day", extra={"record_id": record.id})
            elif end is not None and end <= logged_at:
                # Only an end time was logged and it predates the log entry: keep the nap open.
                end = None
        elif record.type == ActivityType.FEED.value:
            display = _resolve_clock(details.display_time, day, zone)
            start = _resolve_clock(details.start_time, day, zone)
            end = _resolve_clock(details.end_time, day, zone)
            if start is not None and end is not None and end < start:
                end += timedelta(hours=24)
            if display is not None:
                timestamp = display
            elif start is not None:
                timestamp = start
    except _UnparseableClock as exc:
        logger.debug("skipping record with unparseable clock", extra={"record_id": record.id, "value": str(exc)})
        return None

    return Event(
        id=record.id,
        kind=record.type,
        timestamp=timestamp,
        zone=zone,
        details=details,
        start=start,
        end=end,
    )


def normalize_events(
    records: Iterable[ActivityRecord],
    *,
    now: datetime,
    fallback_zone: tzinfo,
) -> List[Event]:
    """Resolve scheduling-relevant records into events, most recent first.

    Records are never modified. Events whose resolved time is after ``now`` are dropped.
    """

    now = ensure_aware(now)
    events: List[Event] = []
    for record in records:
        if record.type not in _SCHEDULING_VALUES:
            continue
        event = _normalize_one(record, fallback_zone)
        if event is None:
            continue
        if event.timestamp > now:
            logger.debug("dropping future event", extra={"record_id": record.id})
            continue
        events.append(event)
    events.sort(key=lambda item: item.id, reverse=True)
    events.sort(key=lambda item: item.timestamp, reverse=True)
    return events


def classify_sleep(start: datetime, zone: tzinfo, settings: EngineSettings) -> SleepKind:
    if is_night_hour(local_hour(start, zone), settings.night_start_hour, settings.night_end_hour):
        return SleepKind.NIGHT
    return SleepKind.NAP


def make_segment(start: datetime, end: Optional[datetime], kind: SleepKind) -> SleepSegment:
    duration = minutes_between(end, start) if end is not None else None
    return SleepSegment(start=start, end=end, kind=kind, duration=duration)


def extract_sleep_segments(
    events: Sequence[Event],
    *,
    now: datetime,
    settings: EngineSettings,
) -> List[SleepSegment]:
    """Build sleep segments from nap events, most recent start first.

    Open daytime naps that have run longer than the auto-close threshold are
    ended at the first later non-sleep event. Open night sleep is never closed.
    """

    chronological = sorted(events, key=lambda item: item.timestamp)
    segments: List[SleepSegment] = []
    for event in events:
        if event.kind != ActivityType.NAP.value:
            continue
        start = event.start or event.timestamp
        end = event.end
        kind = classify_sleep(start, event.zone, settings)
        if end is None and kind is SleepKind.NAP and minutes_between(now, start) > settings.auto_close_after_minutes:
            end = _first_event_after(chronological, start)
            if end is not None:
                logger.debug("auto-closed open nap", extra={"record_id": event.id, "end": end.isoformat()})
        segments.append(make_segment(start, end, kind))
    segments.sort(key=lambda item: item.start, reverse=True)
    return segments


def _first_event_after(chronological: Sequence[Event], start: datetime) -> Optional[datetime]:
    for candidate in chronological:
        if candidate.timestamp > start and candidate.kind != ActivityType.NAP.value:
            return candidate.timestamp
    return None


def parse_volume(quantity: object) -> Optional[float]:
    if quantity is None or isinstance(quantity, bool):
        return None
    if isinstance(quantity, (int, float)):
        return float(quantity)
    match = _QUANTITY_PATTERN.search(str(quantity))
    if not match:
        return None
    return float(match.group(0))


def _feed_instant(event: Event) -> datetime:
    if event.start is not None and event.end is not None:
        return event.start + (event.end - event.start) / 2
    return event.timestamp


def extract_feed_events(events: Sequence[Event]) -> List[FeedEvent]:
    """Feeds as (instant, volume, type), most recent first."""

    feeds: List[FeedEvent] = []
    for event in events:
        if event.kind != ActivityType.FEED.value:
            continue
        volume = parse_volume(event.details.quantity)
        feed_type = FeedType.BOTTLE if volume is not None else FeedType.NURSING
        feeds.append(FeedEvent(timestamp=_feed_instant(event), volume=volume or 0.0, type=feed_type))
    feeds.sort(key=lambda item: item.timestamp, reverse=True)
    return feeds
