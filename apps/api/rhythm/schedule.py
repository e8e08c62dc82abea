"""Simulate the rest of the day by replaying the decision engine on a virtual clock."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Optional, Tuple

from .baselines import expected_night_minutes
from .engine import EngineState, current_sleep, get_next_action, minutes_awake
from .events import classify_sleep
from .schemas import (
    AdaptiveSchedule,
    Confidence,
    DataStability,
    Intent,
    NextActionResult,
    ScheduleEvent,
    ScheduleEventType,
    SleepKind,
)
from .timeutils import (
    anchor_clock,
    format_clock,
    format_duration,
    local_date,
    local_hour,
    minutes_between,
)

logger = logging.getLogger(__name__)

MORNING_WAKE_HOURS = (4, 12)
TYPICAL_WAKE_HOURS = (4, 11)
WAKE_HISTORY_LIMIT = 14
BEDTIME_HISTORY_HOURS = (18, 23)
BEDTIME_HIGH_CONFIDENCE_NIGHTS = 5
ACCURACY_MATCH_MINUTES = 30
FRESH_NIGHT_HOURS = 12

SCHEDULE_CONFIDENCE = {
    DataStability.STABLE: Confidence.HIGH,
    DataStability.UNSTABLE: Confidence.MEDIUM,
    DataStability.SPARSE: Confidence.LOW,
}


def resolve_day_start(state: EngineState, now: datetime) -> Tuple[datetime, Confidence, str]:
    """Today's wake instant with how sure we are about it."""

    zone = state.zone
    today = local_date(now, zone)
    first, last = MORNING_WAKE_HOURS
    logged = [
        segment.end
        for segment in state.sleep_segments
        if segment.kind is SleepKind.NIGHT
        and segment.end is not None
        and segment.end <= now
        and local_date(segment.end, zone) == today
        and first <= local_hour(segment.end, zone) <= last
    ]
    if logged:
        return max(logged), Confidence.HIGH, "Actual logged wake time"

    first, last = TYPICAL_WAKE_HOURS
    history = [
        segment.end.astimezone(zone)
        for segment in state.sleep_segments
        if segment.kind is SleepKind.NIGHT
        and segment.end is not None
        and segment.end <= now
        and first <= local_hour(segment.end, zone) <= last
    ][:WAKE_HISTORY_LIMIT]
    if history:
        average = round(sum(item.hour * 60 + item.minute for item in history) / len(history))
        wake = anchor_clock(today, divmod(average, 60), zone)
        return wake, Confidence.MEDIUM, "Based on typical wake pattern"

    wake = anchor_clock(today, state.settings.default_wake_clock, zone)
    return wake, Confidence.MEDIUM, "Typical wake time for age"


def _day_cutoff(day: date, state: EngineState) -> datetime:
    hour = state.settings.day_end_hour
    if hour >= 24:
        midnight = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=state.zone)
        return midnight.astimezone(timezone.utc)
    return anchor_clock(day, (hour, 0), state.zone)


def _seed_state(state: EngineState, wake_at: datetime) -> EngineState:
    """End any open sleep at wake time and assume a night of sleep before it when none is logged."""

    covering = current_sleep(state, wake_at)
    if covering is not None and covering.end is None:
        state = state.with_sleep_ended(covering, wake_at)
    awake = minutes_awake(state, wake_at)
    if awake is None or awake > FRESH_NIGHT_HOURS * 60:
        night_start = wake_at - timedelta(minutes=expected_night_minutes(state.age_in_months))
        state = state.with_sleep(night_start, wake_at, SleepKind.NIGHT)
    return state


class DaySimulation:
    """Bounded walk of a virtual clock from ``start`` to ``horizon``.

    Every step moves the clock forward by at least ``min_clock_advance_minutes``
    and the walk stops once the clock reaches the horizon, so it takes at most
    (horizon - start) / min_advance steps. The nap, feed and event caps can only
    suppress emissions or end the walk sooner.
    """

    def __init__(self, state: EngineState, start: datetime, horizon: datetime, max_events: int):
        self.state = state
        self.clock = start
        self.start = start
        self.horizon = horizon
        self.max_events = max_events
        self.naps = 0
        self.feeds = 0
        self.emitted = 0
        self.last_feed_at: Optional[datetime] = None
        self.truncated = False
        self.settings = state.settings

    @property
    def max_steps(self) -> int:
        span = max(0.0, (self.horizon - self.start).total_seconds() / 60)
        return int(span // self.settings.min_clock_advance_minutes) + 1

    def __iter__(self) -> Iterator[ScheduleEvent]:
        for _ in range(self.max_steps):
            if self.clock >= self.horizon:
                return
            if self.emitted >= self.max_events:
                self.truncated = True
                return
            event = self._step()
            if event is not None:
                self.emitted += 1
                yield event

    def _advance(self, target: datetime) -> None:
        floor = self.clock + timedelta(minutes=self.settings.min_clock_advance_minutes)
        self.clock = max(target, floor)

    def _step_forward(self) -> None:
        self._advance(self.clock + timedelta(minutes=self.settings.simulation_step_minutes))

    def _step(self) -> Optional[ScheduleEvent]:
        result = get_next_action(self.state, self.clock)
        if result.intent is Intent.LET_SLEEP_CONTINUE:
            return self._continue_sleep(result)
        if result.intent is Intent.FEED_SOON:
            return self._feed(result)
        if result.intent is Intent.START_WIND_DOWN:
            return self._wind_down(result)
        self._step_forward()
        return None

    def _continue_sleep(self, result: NextActionResult) -> Optional[ScheduleEvent]:
        segment = current_sleep(self.state, self.clock)
        wake = result.timing.next_wake_at
        if segment is None or wake is None:
            self._step_forward()
            return None
        began = max(segment.start, self.start)
        if wake <= self.clock:
            wake = self.clock + timedelta(minutes=self.settings.min_clock_advance_minutes)
        if segment.end != wake:
            self.state = self.state.with_sleep_ended(segment, wake)
        self._advance(wake)

        is_bed = segment.kind is SleepKind.NIGHT
        if not is_bed:
            if self.naps >= self.settings.max_naps:
                self.truncated = True
                return None
            self.naps += 1
        reasoning = "Logged sleep in progress" if segment.end is not None else "Expected length of current sleep"
        return self._event(
            began,
            ScheduleEventType.BED if is_bed else ScheduleEventType.NAP,
            result.confidence,
            reasoning,
            duration=minutes_between(wake, began),
        )

    def _feed(self, result: NextActionResult) -> Optional[ScheduleEvent]:
        spacing = timedelta(minutes=self.settings.min_feed_spacing_minutes)
        due = self.last_feed_at is None or self.clock - self.last_feed_at >= spacing
        event = None
        if due and self.feeds >= self.settings.max_feeds:
            self.truncated = True
        elif due:
            volume = result.timing.expected_feed_volume
            at = self.clock
            self.state = self.state.with_feed(at, volume or 0.0)
            self.feeds += 1
            self.last_feed_at = at
            notes = f"About {volume:g} per feed" if volume else None
            event = self._event(
                at,
                ScheduleEventType.FEED,
                result.confidence,
                _reasoning(result, "Feed interval reached"),
                notes=notes,
            )
        self._step_forward()
        return event

    def _wind_down(self, result: NextActionResult) -> Optional[ScheduleEvent]:
        window = result.timing.next_nap_window_start
        if window is not None and window > self.clock:
            self._advance(window)
            return None
        if self.naps >= self.settings.max_naps:
            self.truncated = True
            self._step_forward()
            return None
        at = self.clock
        end = at + timedelta(minutes=self.settings.default_nap_minutes)
        self.state = self.state.with_sleep(at, end, classify_sleep(at, self.state.zone, self.settings))
        self.naps += 1
        self._advance(end)
        return self._event(
            at,
            ScheduleEventType.NAP,
            result.confidence,
            _reasoning(result, "Wake window reached"),
            duration=self.settings.default_nap_minutes,
        )

    def _event(
        self,
        at: datetime,
        kind: ScheduleEventType,
        confidence: Confidence,
        reasoning: str,
        duration: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> ScheduleEvent:
        return schedule_event(self.state, at, kind, confidence, reasoning, duration=duration, notes=notes)


def _reasoning(result: NextActionResult, default: str) -> str:
    if result.reasons:
        return "; ".join(result.reasons)
    return default


def schedule_event(
    state: EngineState,
    at: datetime,
    kind: ScheduleEventType,
    confidence: Confidence,
    reasoning: str,
    duration: Optional[int] = None,
    notes: Optional[str] = None,
) -> ScheduleEvent:
    return ScheduleEvent(
        time=at,
        label=format_clock(at, state.zone),
        type=kind,
        duration_minutes=duration,
        duration=format_duration(duration) if duration else None,
        notes=notes,
        confidence=confidence,
        reasoning=reasoning,
    )


def _bedtime_confidence(state: EngineState, now: datetime) -> Confidence:
    """High with five or more evening night-sleep starts in the learning window, medium with any."""

    since = now - timedelta(days=state.settings.learning_window_days)
    first, last = BEDTIME_HISTORY_HOURS
    starts = [
        segment.start
        for segment in state.sleep_segments
        if segment.kind is SleepKind.NIGHT
        and since <= segment.start <= now
        and first <= local_hour(segment.start, state.zone) <= last
    ]
    if len(starts) >= BEDTIME_HIGH_CONFIDENCE_NIGHTS:
        return Confidence.HIGH
    if starts:
        return Confidence.MEDIUM
    return Confidence.LOW


def accuracy_score(state: EngineState, now: datetime, events: List[ScheduleEvent]) -> Optional[int]:
    """Share of today's logged naps that started within half an hour of a planned nap."""

    today = local_date(now, state.zone)
    logged = [
        segment.start
        for segment in state.sleep_segments
        if segment.kind is SleepKind.NAP and segment.start <= now and local_date(segment.start, state.zone) == today
    ]
    if not logged:
        return None
    planned = [event.time for event in events if event.type is ScheduleEventType.NAP]
    window = timedelta(minutes=ACCURACY_MATCH_MINUTES)
    matched = sum(1 for start in logged if any(abs(start - item) <= window for item in planned))
    return round(100 * matched / len(logged))


def _based_on(state: EngineState) -> str:
    if not state.events:
        return "Age-based defaults"
    days = {local_date(event.timestamp, state.zone) for event in state.events}
    return f"{len(state.events)} logged activities over {len(days)} days"


def generate_adaptive_schedule(state: EngineState, now: datetime) -> AdaptiveSchedule:
    """Plan today from wake time to bedtime by re-running the decision engine on a virtual clock."""

    settings = state.settings
    zone = state.zone
    today = local_date(now, zone)
    wake_at, wake_confidence, wake_reason = resolve_day_start(state, now)

    cutoff = _day_cutoff(today, state)
    bedtime = anchor_clock(today, settings.bedtime_clock, zone)
    routine_start = bedtime - timedelta(minutes=settings.bedtime_routine_lead_minutes)
    has_routine = bedtime <= cutoff
    horizon = routine_start if has_routine else cutoff

    events: List[ScheduleEvent] = [
        schedule_event(state, wake_at, ScheduleEventType.WAKE, wake_confidence, wake_reason, notes="Wake up")
    ]
    reserved = 2 if has_routine else 0
    simulation = DaySimulation(
        _seed_state(state, wake_at),
        wake_at,
        horizon,
        max_events=max(0, settings.max_events - len(events) - reserved),
    )
    events.extend(simulation)

    if (
        has_routine
        and simulation.clock <= routine_start
        and simulation.feeds < settings.max_feeds
        and len(events) < settings.max_events
    ):
        events.append(
            schedule_event(state, routine_start, ScheduleEventType.FEED, Confidence.MEDIUM, "Bedtime routine feed")
        )
    if has_routine and simulation.clock <= bedtime and len(events) < settings.max_events:
        events.append(
            schedule_event(
                state,
                bedtime,
                ScheduleEventType.BED,
                Confidence.MEDIUM,
                "Bedtime",
                notes="Bedtime routine",
            )
        )
    events.sort(key=lambda item: item.time)

    logger.debug(
        "schedule simulated",
        extra={
            "event_count": len(events),
            "naps": simulation.naps,
            "feeds": simulation.feeds,
            "truncated": simulation.truncated,
        },
    )
    return AdaptiveSchedule(
        events=events,
        confidence=SCHEDULE_CONFIDENCE[state.internals.data_stability],
        based_on=_based_on(state),
        predicted_bedtime=format_clock(bedtime, zone),
        bedtime_confidence=_bedtime_confidence(state, now),
        accuracy_score=accuracy_score(state, now, events),
        truncated=simulation.truncated,
    )
