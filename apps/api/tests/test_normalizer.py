from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rhythm.events import extract_feed_events, extract_sleep_segments, normalize_events, parse_volume
from rhythm.schemas import FeedType, SleepKind


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def test_display_time_anchors_to_record_local_day(make_record) -> None:
    record = make_record(
        "feed-1",
        "feed",
        utc(2025, 3, 10, 20, 5),
        tz="America/Los_Angeles",
        displayTime="12:30 PM",
    )
    events = normalize_events([record], now=utc(2025, 3, 10, 21), fallback_zone=timezone.utc)
    assert len(events) == 1
    assert events[0].timestamp == utc(2025, 3, 10, 19, 30)


def test_date_local_wins_over_logged_day(make_record) -> None:
    # Logged just after local midnight for a feed that happened the evening before.
    record = make_record(
        "feed-late",
        "feed",
        utc(2025, 3, 11, 7, 30),
        tz="America/Los_Angeles",
        displayTime="11:45 PM",
        date_local="2025-03-10",
    )
    events = normalize_events([record], now=utc(2025, 3, 11, 8), fallback_zone=timezone.utc)
    assert events[0].timestamp == utc(2025, 3, 11, 6, 45)


def test_nap_crossing_midnight_adds_a_day_to_end(make_record, settings) -> None:
    record = make_record(
        "sleep-1",
        "nap",
        utc(2025, 3, 11, 3),
        startTime="9:30 PM",
        endTime="2:15 AM",
        date_local="2025-03-10",
    )
    now = utc(2025, 3, 11, 8)
    events = normalize_events([record], now=now, fallback_zone=timezone.utc)
    assert events[0].start == utc(2025, 3, 10, 21, 30)
    assert events[0].end == utc(2025, 3, 11, 2, 15)

    segments = extract_sleep_segments(events, now=now, settings=settings)
    assert segments[0].kind is SleepKind.NIGHT
    assert segments[0].duration == 285


def test_future_events_are_dropped(make_record) -> None:
    records = [
        make_record("feed-past", "feed", utc(2025, 3, 10, 9)),
        make_record("feed-future", "feed", utc(2025, 3, 10, 10), displayTime="11:00 AM"),
    ]
    events = normalize_events(records, now=utc(2025, 3, 10, 10, 30), fallback_zone=timezone.utc)
    assert [event.id for event in events] == ["feed-past"]


def test_non_scheduling_and_unparseable_records_are_skipped(make_record) -> None:
    records = [
        make_record("note-1", "note", utc(2025, 3, 10, 9), note="smiled"),
        make_record("feed-bad", "feed", utc(2025, 3, 10, 9), displayTime="soon"),
        make_record("diaper-1", "diaper", utc(2025, 3, 10, 8)),
    ]
    events = normalize_events(records, now=utc(2025, 3, 10, 12), fallback_zone=timezone.utc)
    assert [event.id for event in events] == ["diaper-1"]


def test_events_sorted_most_recent_first_with_id_tiebreak(make_record) -> None:
    records = [
        make_record("a", "diaper", utc(2025, 3, 10, 9)),
        make_record("c", "feed", utc(2025, 3, 10, 7)),
        make_record("b", "diaper", utc(2025, 3, 10, 9)),
    ]
    events = normalize_events(records, now=utc(2025, 3, 10, 12), fallback_zone=timezone.utc)
    assert [event.id for event in events] == ["b", "a", "c"]


def test_twenty_four_hour_clock_is_accepted(make_record) -> None:
    record = make_record("feed-24h", "feed", utc(2025, 3, 10, 19), displayTime="18:45")
    events = normalize_events([record], now=utc(2025, 3, 10, 20), fallback_zone=timezone.utc)
    assert events[0].timestamp == utc(2025, 3, 10, 18, 45)


def test_unknown_record_timezone_uses_fallback(make_record) -> None:
    record = make_record("feed-1", "feed", utc(2025, 3, 10, 15), tz="Mars/Olympus", displayTime="2:00 PM")
    events = normalize_events([record], now=utc(2025, 3, 10, 16), fallback_zone=timezone.utc)
    assert events[0].timestamp == utc(2025, 3, 10, 14)


def test_long_open_nap_closes_at_next_non_sleep_event(make_record, settings) -> None:
    records = [
        make_record("nap-1", "nap", utc(2025, 3, 10, 9), startTime="9:00 AM"),
        make_record("diaper-1", "diaper", utc(2025, 3, 10, 10)),
        make_record("feed-1", "feed", utc(2025, 3, 10, 11, 30)),
    ]
    now = utc(2025, 3, 10, 12)
    events = normalize_events(records, now=now, fallback_zone=timezone.utc)
    segments = extract_sleep_segments(events, now=now, settings=settings)
    assert segments[0].end == utc(2025, 3, 10, 10)
    assert segments[0].duration == 60


def test_recent_open_nap_stays_open(make_record, settings) -> None:
    records = [
        make_record("nap-1", "nap", utc(2025, 3, 10, 9), startTime="9:00 AM"),
        make_record("diaper-1", "diaper", utc(2025, 3, 10, 10)),
    ]
    now = utc(2025, 3, 10, 10, 30)
    events = normalize_events(records, now=now, fallback_zone=timezone.utc)
    segments = extract_sleep_segments(events, now=now, settings=settings)
    assert segments[0].is_open
    assert segments[0].duration is None


def test_open_night_sleep_is_never_auto_closed(make_record, settings) -> None:
    records = [
        make_record("night-1", "nap", utc(2025, 3, 10, 20), startTime="8:00 PM"),
        make_record("diaper-1", "diaper", utc(2025, 3, 10, 23)),
    ]
    now = utc(2025, 3, 11, 1)
    events = normalize_events(records, now=now, fallback_zone=timezone.utc)
    segments = extract_sleep_segments(events, now=now, settings=settings)
    assert segments[0].kind is SleepKind.NIGHT
    assert segments[0].is_open


def test_feed_events_use_midpoint_and_infer_type(make_record) -> None:
    records = [
        make_record("nurse-1", "feed", utc(2025, 3, 10, 10, 30), startTime="10:00 AM", endTime="10:30 AM"),
        make_record("bottle-1", "feed", utc(2025, 3, 10, 13), quantity="4 oz", unit="oz"),
    ]
    events = normalize_events(records, now=utc(2025, 3, 10, 14), fallback_zone=timezone.utc)
    feeds = extract_feed_events(events)
    assert feeds[0].type is FeedType.BOTTLE
    assert feeds[0].volume == 4.0
    assert feeds[1].type is FeedType.NURSING
    assert feeds[1].volume == 0.0
    assert feeds[1].timestamp == utc(2025, 3, 10, 10, 15)


@pytest.mark.parametrize(
    ("quantity", "expected"),
    [(4, 4.0), ("120 ml", 120.0), ("2.5", 2.5), ("lots", None), (None, None)],
)
def test_parse_volume(quantity, expected) -> None:
    assert parse_volume(quantity) == expected


def test_normalizer_leaves_records_untouched(make_record) -> None:
    record = make_record("nap-1", "nap", utc(2025, 3, 11, 3), startTime="9:30 PM", endTime="2:15 AM")
    before = record.model_dump()
    normalize_events([record], now=utc(2025, 3, 11, 8), fallback_zone=timezone.utc)
    assert record.model_dump() == before


def test_night_logged_next_morning_starts_previous_evening(make_record, settings) -> None:
    record = make_record("night-1", "nap", utc(2025, 3, 11, 6, 35), startTime="7:30 PM", endTime="6:30 AM")
    now = utc(2025, 3, 11, 9)
    events = normalize_events([record], now=now, fallback_zone=timezone.utc)
    assert events[0].start == utc(2025, 3, 10, 19, 30)
    assert events[0].end == utc(2025, 3, 11, 6, 30)
    assert events[0].timestamp == events[0].start

    segments = extract_sleep_segments(events, now=now, settings=settings)
    assert segments[0].kind is SleepKind.NIGHT
    assert segments[0].duration == 660
