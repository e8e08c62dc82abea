"""Blend age baselines with what the child's own recent history shows."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, List, Sequence, Tuple

from .baselines import PersonalizedParams
from .events import FeedEvent, SleepSegment
from .schemas import BlendRatio, DataStability, EngineInternals, WakeWindowPosition, SleepKind
from .scoring import blend, clamp, median, std_dev
from .timeutils import local_date, minutes_between

logger = logging.getLogger(__name__)

MIN_SAMPLES = 3
MAX_GAP_MINUTES = 480
STABLE_CV_THRESHOLD = 0.4
DAY_SLEEP_TARGET_RANGE = (120.0, 300.0)
LOWER_CLAMP = 0.7
UPPER_CLAMP = 1.5
MIN_FROM_MAX_RATIO = 0.8

BLEND_RATIOS: Dict[DataStability, Tuple[float, float]] = {
    DataStability.SPARSE: (0.8, 0.2),
    DataStability.UNSTABLE: (0.6, 0.4),
    DataStability.STABLE: (0.3, 0.7),
}


@dataclass(frozen=True)
class LearnedSamples:
    """Raw samples pulled from the learning window."""

    wake_windows: List[int] = field(default_factory=list)
    feed_intervals: List[int] = field(default_factory=list)
    daily_day_sleep: List[int] = field(default_factory=list)
    wake_windows_by_position: Dict[int, List[int]] = field(default_factory=dict)


@dataclass(frozen=True)
class AdaptiveResult:
    params: PersonalizedParams
    internals: EngineInternals
    samples: LearnedSamples


def _within_gap(value: int) -> bool:
    return 0 < value < MAX_GAP_MINUTES


def collect_wake_windows(segments: Sequence[SleepSegment], zone: tzinfo) -> Tuple[List[int], Dict[int, List[int]]]:
    """Gaps between consecutive completed naps on the same local day.

    Position 2 is the gap after the first nap of the day, matching the
    position numbering used for the wake window currently in progress.
    """

    by_day: Dict[date, List[SleepSegment]] = defaultdict(list)
    for segment in segments:
        if segment.kind is SleepKind.NAP and segment.end is not None:
            by_day[local_date(segment.start, zone)].append(segment)

    windows: List[int] = []
    by_position: Dict[int, List[int]] = defaultdict(list)
    for day in sorted(by_day):
        naps = sorted(by_day[day], key=lambda item: item.start)
        for index, (current, following) in enumerate(zip(naps, naps[1:])):
            gap = minutes_between(following.start, current.end)
            if _within_gap(gap):
                windows.append(gap)
                by_position[index + 2].append(gap)
    return windows, dict(by_position)


def collect_feed_intervals(feeds: Sequence[FeedEvent]) -> List[int]:
    ordered = sorted(feeds, key=lambda item: item.timestamp)
    intervals = [minutes_between(later.timestamp, earlier.timestamp) for earlier, later in zip(ordered, ordered[1:])]
    return [value for value in intervals if _within_gap(value)]


def collect_daily_day_sleep(segments: Sequence[SleepSegment], zone: tzinfo) -> List[int]:
    totals: Dict[date, int] = defaultdict(int)
    for segment in segments:
        if segment.kind is SleepKind.NAP and segment.duration is not None and segment.duration > 0:
            totals[local_date(segment.start, zone)] += segment.duration
    return [totals[day] for day in sorted(totals)]


def classify_stability(wake_windows: Sequence[float], feed_intervals: Sequence[float]) -> DataStability:
    """Sparse below three samples of either kind, otherwise by wake-window variability."""

    if len(wake_windows) < MIN_SAMPLES or len(feed_intervals) < MIN_SAMPLES:
        return DataStability.SPARSE
    center = median(wake_windows)
    spread = std_dev(wake_windows)
    if not center:
        return DataStability.UNSTABLE
    if spread / center < STABLE_CV_THRESHOLD:
        return DataStability.STABLE
    return DataStability.UNSTABLE


def blend_bounds(
    base_min: float,
    base_max: float,
    learned_median: float,
    ratio: Tuple[float, float],
) -> Tuple[float, float]:
    """Blend a learned median into a (min, max) baseline pair, bounded to 0.7x-1.5x of the baseline."""

    age_weight, learned_weight = ratio
    blended = blend(base_max, learned_median, age_weight, learned_weight)
    new_max = clamp(blended, base_max * LOWER_CLAMP, base_max * UPPER_CLAMP)
    new_min = clamp(blended * MIN_FROM_MAX_RATIO, base_min * LOWER_CLAMP, base_min * UPPER_CLAMP)
    return new_min, new_max


def learn_adaptive_params(
    segments: Sequence[SleepSegment],
    feeds: Sequence[FeedEvent],
    baseline: PersonalizedParams,
    *,
    now: datetime,
    zone: tzinfo,
    window_days: int = 7,
) -> AdaptiveResult:
    """Learn personalized parameters from the last ``window_days`` of history."""

    since = now - timedelta(days=window_days)
    recent_segments = [segment for segment in segments if since <= segment.start <= now]
    recent_feeds = [feed for feed in feeds if since <= feed.timestamp <= now]

    wake_windows, by_position = collect_wake_windows(recent_segments, zone)
    feed_intervals = collect_feed_intervals(recent_feeds)
    daily_day_sleep = collect_daily_day_sleep(recent_segments, zone)

    stability = classify_stability(wake_windows, feed_intervals)
    ratio = BLEND_RATIOS[stability]
    params = baseline

    wake_median = median(wake_windows)
    if len(wake_windows) >= MIN_SAMPLES:
        ww_min, ww_max = blend_bounds(baseline.wake_window_min, baseline.wake_window_max, wake_median, ratio)
        params = replace(params, wake_window_min=ww_min, wake_window_max=ww_max)

    feed_median = median(feed_intervals)
    if len(feed_intervals) >= MIN_SAMPLES:
        fi_min, fi_max = blend_bounds(baseline.feed_interval_min, baseline.feed_interval_max, feed_median, ratio)
        params = replace(params, feed_interval_min=fi_min, feed_interval_max=fi_max)

    day_sleep_median = median(daily_day_sleep)
    if len(daily_day_sleep) >= MIN_SAMPLES:
        params = replace(params, day_sleep_target=clamp(day_sleep_median, *DAY_SLEEP_TARGET_RANGE))

    positions = [
        WakeWindowPosition(position=position, median=median(values), count=len(values))
        for position, values in sorted(by_position.items())
        if len(values) >= MIN_SAMPLES
    ]
    internals = EngineInternals(
        learned_wake_window_median=wake_median,
        learned_feed_interval_median=feed_median,
        learned_day_sleep_median=day_sleep_median,
        wake_window_std_dev=std_dev(wake_windows),
        feed_interval_std_dev=std_dev(feed_intervals),
        data_stability=stability,
        blend_ratio=BlendRatio(age=ratio[0], learned=ratio[1]),
        wake_windows_by_position=positions,
    )
    logger.debug(
        "learned adaptive params",
        extra={
            "data_stability": stability.value,
            "wake_window_samples": len(wake_windows),
            "feed_interval_samples": len(feed_intervals),
            "day_sleep_samples": len(daily_day_sleep),
        },
    )
    samples = LearnedSamples(
        wake_windows=wake_windows,
        feed_intervals=feed_intervals,
        daily_day_sleep=daily_day_sleep,
        wake_windows_by_position=by_position,
    )
    return AdaptiveResult(params=params, internals=internals, samples=samples)
