"""Next-action decision engine.

``build_engine`` turns a snapshot of activity records into an immutable
``EngineState``; ``get_next_action`` is a pure function of that state and an
explicit ``now``. Nothing here reads the wall clock.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .baselines import (
    PersonalizedParams,
    baseline_for_age,
    expected_feeds,
    expected_nap_minutes,
    expected_naps,
    expected_night_minutes,
)
from .config import CONFIG, EngineSettings
from .events import (
    Event,
    FeedEvent,
    SleepSegment,
    extract_feed_events,
    extract_sleep_segments,
    make_segment,
    normalize_events,
)
from .learning import learn_adaptive_params
from .schemas import (
    ActivityDetails,
    ActivityRecord,
    ActivityType,
    Confidence,
    DataStability,
    DayProgress,
    EngineInternals,
    FeedType,
    Intent,
    NextActionResult,
    PredictionRationale,
    PredictionScores,
    RationaleFlags,
    SleepKind,
    TimingPredictions,
)
from .scoring import (
    NIGHT_FEED_SUPPRESSION_THRESHOLD,
    SUPPRESSED_NIGHT_FEED_PRESSURE,
    clamp,
    feed_pressure,
    has_night_feed_pattern,
    is_cluster_feeding,
    sleep_pressure,
)
from .timeutils import (
    age_in_months,
    default_zone,
    ensure_aware,
    is_night_hour,
    local_day_bounds,
    local_hour,
    minutes_between,
    parse_birth_date,
    resolve_zone,
)

logger = logging.getLogger(__name__)

FEED_THRESHOLD = 0.55
WIND_DOWN_THRESHOLD = 0.60
DECISION_MARGIN = 0.08
CONFLICT_PENALTY = 0.05
SHORT_NAP_AWAKE_RATIO = 0.75
PROGRESS_DOMINANT = 0.8
EARLY_FEED_PROGRESS = 0.5

REEVALUATE_MINUTES = {
    Intent.FEED_SOON: 45,
    Intent.START_WIND_DOWN: 10,
    Intent.INDEPENDENT_TIME: 10,
    Intent.LET_SLEEP_CONTINUE: 30,
    Intent.HOLD: 10,
}


@dataclass(frozen=True)
class EngineState:
    """Everything derived from one history snapshot. Never mutated."""

    events: Tuple[Event, ...]
    sleep_segments: Tuple[SleepSegment, ...]
    feed_events: Tuple[FeedEvent, ...]
    baseline: PersonalizedParams
    params: PersonalizedParams
    internals: EngineInternals
    age_in_months: int
    zone: tzinfo
    settings: EngineSettings
    built_at: datetime

    def with_feed(self, at: datetime, volume: float = 0.0) -> "EngineState":
        """Copy of the state with one more feed at ``at``."""

        details = ActivityDetails(quantity=volume) if volume else ActivityDetails()
        event = Event(
            id=f"projected-feed-{at.isoformat()}",
            kind=ActivityType.FEED.value,
            timestamp=at,
            zone=self.zone,
            details=details,
        )
        feed = FeedEvent(
            timestamp=at,
            volume=volume,
            type=FeedType.BOTTLE if volume else FeedType.NURSING,
        )
        events = sorted(self.events + (event,), key=lambda item: item.timestamp, reverse=True)
        feeds = sorted(self.feed_events + (feed,), key=lambda item: item.timestamp, reverse=True)
        return replace(self, events=tuple(events), feed_events=tuple(feeds))

    def with_sleep(self, start: datetime, end: Optional[datetime], kind: SleepKind) -> "EngineState":
        segments = self.sleep_segments + (make_segment(start, end, kind),)
        return replace(self, sleep_segments=_by_start(segments))

    def with_sleep_ended(self, segment: SleepSegment, end: datetime) -> "EngineState":
        closed = make_segment(segment.start, end, segment.kind)
        segments = tuple(closed if item is segment else item for item in self.sleep_segments)
        return replace(self, sleep_segments=_by_start(segments))


def _by_start(segments: Iterable[SleepSegment]) -> Tuple[SleepSegment, ...]:
    return tuple(sorted(segments, key=lambda item: item.start, reverse=True))


def _engine_zone(
    records: Sequence[ActivityRecord],
    timezone: Optional[str],
    settings: EngineSettings,
) -> tzinfo:
    fallback = default_zone(settings.default_timezone)
    if timezone:
        return resolve_zone(timezone, fallback)
    labelled = [record for record in records if record.timezone]
    if labelled:
        latest = max(labelled, key=lambda record: ensure_aware(record.logged_at))
        return resolve_zone(latest.timezone, fallback)
    return fallback


def _coerce_birth_date(value: Union[str, date, None]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_birth_date(value)


def build_engine(
    records: Iterable[ActivityRecord],
    birth_date: Union[str, date, None] = None,
    *,
    now: datetime,
    timezone: Optional[str] = None,
    settings: Optional[EngineSettings] = None,
) -> EngineState:
    """Derive events, segments, feeds and learned parameters from a history snapshot.

    ``now`` bounds the snapshot: later events are dropped and the learning
    window ends there. The zone is the explicit ``timezone``, else the most
    recently logged record's zone, else the configured default.
    """

    settings = settings or CONFIG.engine
    now = ensure_aware(now)
    records = list(records)
    zone = _engine_zone(records, timezone, settings)

    events = normalize_events(records, now=now, fallback_zone=zone)
    segments = extract_sleep_segments(events, now=now, settings=settings)
    feeds = extract_feed_events(events)

    age = age_in_months(_coerce_birth_date(birth_date), now, zone)
    if age is None:
        age = settings.default_age_months
    baseline = baseline_for_age(age)
    adaptive = learn_adaptive_params(
        segments,
        feeds,
        baseline,
        now=now,
        zone=zone,
        window_days=settings.learning_window_days,
    )
    logger.debug(
        "engine built",
        extra={
            "record_count": len(records),
            "event_count": len(events),
            "segment_count": len(segments),
            "feed_count": len(feeds),
            "age_months": age,
            "zone": str(zone),
        },
    )
    return EngineState(
        events=tuple(events),
        sleep_segments=tuple(segments),
        feed_events=tuple(feeds),
        baseline=baseline,
        params=adaptive.params,
        internals=adaptive.internals,
        age_in_months=age,
        zone=zone,
        settings=settings,
        built_at=now,
    )


def is_night(state: EngineState, now: datetime) -> bool:
    settings = state.settings
    return is_night_hour(local_hour(now, state.zone), settings.night_start_hour, settings.night_end_hour)


def current_sleep(state: EngineState, now: datetime) -> Optional[SleepSegment]:
    """The sleep segment covering ``now``, if any.

    Only the most recent segment that started by ``now`` is considered: an
    open one counts while it is younger than the lookback window, a completed
    one counts until its end.
    """

    latest = next((segment for segment in state.sleep_segments if segment.start <= now), None)
    if latest is None:
        return None
    if latest.end is None:
        lookback = now - timedelta(hours=state.settings.ongoing_sleep_lookback_hours)
        return latest if latest.start >= lookback else None
    return latest if latest.end > now else None


def minutes_since_last_feed(state: EngineState, now: datetime) -> Optional[int]:
    feeds = visible_feeds(state, now)
    if not feeds:
        return None
    return minutes_between(now, feeds[0].timestamp)


def minutes_awake(state: EngineState, now: datetime) -> Optional[int]:
    ends = [segment.end for segment in state.sleep_segments if segment.end is not None and segment.end <= now]
    if not ends:
        return None
    return minutes_between(now, max(ends))


def visible_feeds(state: EngineState, now: datetime) -> List[FeedEvent]:
    return [feed for feed in state.feed_events if feed.timestamp <= now]


def cumulative_day_sleep(state: EngineState, now: datetime) -> int:
    """Nap minutes overlapping the local day of ``now``, counting an open nap up to ``now``."""

    day_start, day_end = local_day_bounds(now, state.zone)
    total = 0
    for segment in state.sleep_segments:
        if segment.kind is not SleepKind.NAP or segment.start > now:
            continue
        end = segment.end
        if end is None:
            if segment.start < day_start:
                continue
            end = now
        end = min(end, now, day_end)
        start = max(segment.start, day_start)
        if start < end:
            total += minutes_between(end, start)
    return total


def last_nap_duration(state: EngineState, now: datetime) -> Optional[int]:
    nap = next(
        (segment for segment in state.sleep_segments if segment.kind is SleepKind.NAP and segment.start <= now),
        None,
    )
    if nap is None:
        return None
    if nap.end is None or nap.end > now:
        return minutes_between(now, nap.start)
    return nap.duration


def _naps_completed_today(state: EngineState, now: datetime) -> int:
    day_start, day_end = local_day_bounds(now, state.zone)
    return sum(
        1
        for segment in state.sleep_segments
        if segment.kind is SleepKind.NAP
        and segment.end is not None
        and day_start <= segment.start < day_end
        and segment.end <= now
    )


def current_wake_window_position(state: EngineState, now: datetime) -> int:
    return _naps_completed_today(state, now) + 1


def day_progress(state: EngineState, now: datetime) -> DayProgress:
    """Today's counts against age-expected ranges. Descriptive only."""

    day_start, day_end = local_day_bounds(now, state.zone)
    today = [event for event in state.events if day_start <= event.timestamp < day_end and event.timestamp <= now]
    feeds_min, feeds_max = expected_feeds(state.age_in_months)
    naps_min, naps_max = expected_naps(state.age_in_months)
    return DayProgress(
        feeds_today=sum(1 for event in today if event.kind == ActivityType.FEED.value),
        naps_today=_naps_completed_today(state, now),
        diapers_today=sum(1 for event in today if event.kind == ActivityType.DIAPER.value),
        total_day_sleep_minutes=cumulative_day_sleep(state, now),
        expected_feeds_min=feeds_min,
        expected_feeds_max=feeds_max,
        expected_naps_min=naps_min,
        expected_naps_max=naps_max,
    )


def expected_feed_volume(state: EngineState, now: datetime) -> Optional[float]:
    """Mean volume of the measured feeds among the last three, rounded half up."""

    volumes = [feed.volume for feed in visible_feeds(state, now)[:3] if feed.volume > 0]
    if not volumes:
        return None
    return float(math.floor(sum(volumes) / len(volumes) + 0.5))


def expected_sleep_minutes(state: EngineState, segment: SleepSegment, now: datetime) -> float:
    if segment.kind is SleepKind.NIGHT:
        return float(expected_night_minutes(state.age_in_months))
    minutes = float(expected_nap_minutes(state.age_in_months))
    internals = state.internals
    if internals.learned_day_sleep_median and internals.data_stability is not DataStability.SPARSE:
        naps_today = _naps_completed_today(state, now) or 3
        learned_nap = internals.learned_day_sleep_median / max(naps_today, 2)
        minutes = minutes * internals.blend_ratio.age + learned_nap * internals.blend_ratio.learned
    return minutes


def project_timing(
    state: EngineState,
    now: datetime,
    rationale: PredictionRationale,
    sleeping: Optional[SleepSegment],
) -> TimingPredictions:
    params = state.params
    next_feed_at = None
    if rationale.t_since_last_feed_min is not None:
        remaining = max(0.0, params.feed_interval_max - rationale.t_since_last_feed_min)
        next_feed_at = now + timedelta(minutes=remaining)

    next_nap_window_start = None
    if sleeping is None and rationale.t_awake_now_min is not None:
        remaining = max(0.0, params.wake_window_max - rationale.t_awake_now_min)
        next_nap_window_start = now + timedelta(minutes=remaining)

    next_wake_at = None
    if sleeping is not None:
        if sleeping.end is not None:
            next_wake_at = sleeping.end
        else:
            next_wake_at = sleeping.start + timedelta(minutes=expected_sleep_minutes(state, sleeping, now))

    return TimingPredictions(
        next_wake_at=next_wake_at,
        next_nap_window_start=next_nap_window_start,
        next_feed_at=next_feed_at,
        expected_feed_volume=expected_feed_volume(state, now),
    )


def _elapsed(minutes: int) -> str:
    hours, remainder = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remainder}m"
    return f"{remainder}m"


def build_reasons(rationale: PredictionRationale, intent: Intent) -> List[str]:
    reasons: List[str] = []
    if rationale.t_awake_now_min is not None and intent is Intent.START_WIND_DOWN:
        reasons.append(f"Awake for {_elapsed(rationale.t_awake_now_min)}")
    if rationale.t_since_last_feed_min is not None and intent is Intent.FEED_SOON:
        reasons.append(f"{_elapsed(rationale.t_since_last_feed_min)} since last feed")
    if rationale.flags.short_nap and intent is Intent.START_WIND_DOWN:
        reasons.append("Last nap was shorter than typical")
    if rationale.cumulative_day_sleep_min < rationale.day_sleep_target_min * 0.7:
        reasons.append("Day sleep is below target")
    if rationale.flags.cluster_feeding:
        reasons.append("Cluster feeding pattern detected")
    if rationale.night_or_day == "night":
        reasons.append("Evening hours, winding down time")
    return reasons


def break_tie(
    params: PersonalizedParams,
    since_feed: Optional[int],
    awake: Optional[int],
    last_nap: Optional[int],
) -> Intent:
    """Resolve the conflict zone where neither pressure clearly dominates."""

    if since_feed is not None and since_feed > params.feed_interval_max:
        return Intent.FEED_SOON
    if awake is None:
        return Intent.INDEPENDENT_TIME
    cooled_down = awake >= params.wake_window_min
    if awake > params.wake_window_max and cooled_down:
        return Intent.START_WIND_DOWN
    if (
        last_nap is not None
        and last_nap <= params.short_nap_floor
        and awake >= SHORT_NAP_AWAKE_RATIO * params.wake_window_max
        and cooled_down
    ):
        return Intent.START_WIND_DOWN
    if since_feed is None:
        return Intent.INDEPENDENT_TIME
    feed_progress = since_feed / params.feed_interval_max
    if cooled_down:
        nap_progress = awake / params.wake_window_max
        if feed_progress > PROGRESS_DOMINANT:
            return Intent.FEED_SOON
        if nap_progress > PROGRESS_DOMINANT:
            return Intent.START_WIND_DOWN
        return Intent.FEED_SOON if feed_progress > nap_progress else Intent.START_WIND_DOWN
    if feed_progress > EARLY_FEED_PROGRESS:
        return Intent.FEED_SOON
    return Intent.INDEPENDENT_TIME


def confidence_level(score: float, conflict: bool, stability: DataStability) -> Confidence:
    if score >= 0.7 and not conflict and stability is DataStability.STABLE:
        return Confidence.HIGH
    if stability is DataStability.STABLE:
        return Confidence.MEDIUM
    if score >= 0.6 and stability is DataStability.UNSTABLE:
        return Confidence.MEDIUM
    if score >= 0.45:
        return Confidence.MEDIUM
    return Confidence.LOW


def get_next_action(state: EngineState, now: datetime) -> NextActionResult:
    """Recommend what to do next at ``now``.

    Evaluated in order: ongoing sleep, missing or stale feed history, then the
    two pressure scores with tie-breaking when neither clearly wins.
    """

    now = ensure_aware(now)
    settings = state.settings
    params = state.params
    night = is_night(state, now)
    sleeping = current_sleep(state, now)
    since_feed = minutes_since_last_feed(state, now)
    awake = None if sleeping is not None else minutes_awake(state, now)
    day_sleep = cumulative_day_sleep(state, now)
    last_nap = last_nap_duration(state, now)
    cluster = is_cluster_feeding(visible_feeds(state, now), params.feed_interval_min)
    short_nap = last_nap is not None and last_nap <= params.short_nap_floor
    data_gap = since_feed is None or since_feed > settings.data_gap_minutes
    internals = state.internals.model_copy(
        update={"current_wake_window_position": current_wake_window_position(state, now)}
    )

    def rationale_for(feed_score: float, sleep_score: float, **flags) -> PredictionRationale:
        return PredictionRationale(
            t_since_last_feed_min=since_feed,
            t_awake_now_min=awake,
            cumulative_day_sleep_min=day_sleep,
            day_sleep_target_min=params.day_sleep_target,
            last_nap_duration_min=last_nap,
            scores=PredictionScores(feed=feed_score, sleep=sleep_score),
            night_or_day="night" if night else "day",
            flags=RationaleFlags(cluster_feeding=cluster, short_nap=short_nap, **flags),
        )

    def result(
        intent: Intent,
        confidence: Confidence,
        rationale: PredictionRationale,
        reasons: List[str],
    ) -> NextActionResult:
        logger.debug(
            "next action",
            extra={
                "intent": intent.value,
                "confidence": confidence.value,
                "feed_score": rationale.scores.feed,
                "sleep_score": rationale.scores.sleep,
                "now": now.isoformat(),
            },
        )
        return NextActionResult(
            intent=intent,
            confidence=confidence,
            timing=project_timing(state, now, rationale, sleeping),
            reasons=reasons,
            day_progress=day_progress(state, now),
            internals=internals,
            rationale=rationale,
            reevaluate_in_minutes=REEVALUATE_MINUTES[intent],
        )

    if sleeping is not None:
        rationale = rationale_for(0.0, 1.0, data_gap=data_gap)
        return result(Intent.LET_SLEEP_CONTINUE, Confidence.HIGH, rationale, ["Currently sleeping"])

    if data_gap:
        rationale = rationale_for(0.8, 0.0, data_gap=True)
        return result(Intent.FEED_SOON, Confidence.LOW, rationale, ["Not enough recent data", "Feed likely overdue"])

    feed_score = feed_pressure(since_feed, params, cluster_feeding=cluster, is_night=night, illness=False)
    suppressed = False
    if (
        settings.suppress_night_feeds
        and night
        and feed_score >= NIGHT_FEED_SUPPRESSION_THRESHOLD
        and not has_night_feed_pattern(state.feed_events, state.age_in_months, now, state.zone, settings)
    ):
        feed_score = SUPPRESSED_NIGHT_FEED_PRESSURE
        suppressed = True
    sleep_score = sleep_pressure(awake, day_sleep, params, short_nap=short_nap, is_night=night)

    conflict = False
    if feed_score >= FEED_THRESHOLD and feed_score - sleep_score > DECISION_MARGIN:
        intent = Intent.FEED_SOON
    elif sleep_score >= WIND_DOWN_THRESHOLD and sleep_score - feed_score > DECISION_MARGIN:
        intent = Intent.START_WIND_DOWN
    else:
        conflict = True
        intent = break_tie(params, since_feed, awake, last_nap)
        if intent is Intent.INDEPENDENT_TIME and night:
            intent = Intent.START_WIND_DOWN
        if (
            intent is Intent.INDEPENDENT_TIME
            and awake is not None
            and awake > params.wake_window_max
            and feed_score < FEED_THRESHOLD
        ):
            intent = Intent.START_WIND_DOWN

    score = max(feed_score, sleep_score)
    if conflict and state.internals.data_stability is not DataStability.STABLE:
        score -= CONFLICT_PENALTY
    score = clamp(score, 0.2, 0.95)
    confidence = confidence_level(score, conflict, state.internals.data_stability)

    rationale = rationale_for(feed_score, sleep_score, data_gap=False, night_feed_suppressed=suppressed)
    return result(intent, confidence, rationale, build_reasons(rationale, intent))
