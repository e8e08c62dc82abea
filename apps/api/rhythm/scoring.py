"""Pure scoring helpers: sigmoid transforms and the two pressure scores."""
from __future__ import annotations

import math
import statistics
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Sequence

from .baselines import PersonalizedParams
from .config import EngineSettings
from .events import FeedEvent
from .timeutils import is_night_hour, local_hour, minutes_between

CLUSTER_FEED_MULTIPLIER = 0.85
NIGHT_FEED_MULTIPLIER = 0.9
ILLNESS_FEED_MULTIPLIER = 1.15
UNKNOWN_FEED_PRESSURE = 0.8
SUPPRESSED_NIGHT_FEED_PRESSURE = 0.15
NIGHT_FEED_SUPPRESSION_THRESHOLD = 0.4

WAKE_WINDOW_WEIGHT = 0.55
DAY_SLEEP_WEIGHT = 0.35
SHORT_NAP_BUMP = 0.15
NIGHT_SLEEP_BUMP = 0.1


def sigmoid(value: float) -> float:
    if value >= 0:
        return 1.0 / (1.0 + math.exp(-value))
    exp_value = math.exp(value)
    return exp_value / (1.0 + exp_value)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def median(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return float(statistics.median(values))


def std_dev(values: Sequence[float]) -> Optional[float]:
    """Population standard deviation, None for an empty sample."""

    if not values:
        return None
    return float(statistics.pstdev(values))


def blend(baseline: float, learned: float, age_weight: float, learned_weight: float) -> float:
    return baseline * age_weight + learned * learned_weight


def is_cluster_feeding(feeds: Sequence[FeedEvent], feed_interval_min: float) -> bool:
    """At least two of the last three inter-feed gaps fall below the minimum interval."""

    recent = list(feeds[:4])
    if len(recent) < 3:
        return False
    gaps = [minutes_between(newer.timestamp, older.timestamp) for newer, older in zip(recent, recent[1:])]
    short = sum(1 for gap in gaps if gap < feed_interval_min)
    return short >= 2


def has_night_feed_pattern(
    feeds: Sequence[FeedEvent],
    age_months: int,
    now: datetime,
    zone: tzinfo,
    settings: EngineSettings,
) -> bool:
    if age_months < 3:
        return True
    since = now - timedelta(days=settings.learning_window_days)
    night_feeds = [
        feed
        for feed in feeds
        if since <= feed.timestamp <= now
        and is_night_hour(local_hour(feed.timestamp, zone), settings.night_start_hour, settings.night_end_hour)
    ]
    return len(night_feeds) >= 2


def raw_feed_pressure(minutes_since_feed: float, params: PersonalizedParams) -> float:
    return sigmoid((minutes_since_feed - params.feed_interval_min) / 30)


def feed_pressure(
    minutes_since_feed: Optional[float],
    params: PersonalizedParams,
    *,
    cluster_feeding: bool = False,
    is_night: bool = False,
    illness: bool = False,
) -> float:
    """Likelihood (0-1) that a feed is due; unknown history scores a cautious 0.8."""

    if minutes_since_feed is None:
        return UNKNOWN_FEED_PRESSURE
    score = raw_feed_pressure(minutes_since_feed, params)
    if cluster_feeding:
        score *= CLUSTER_FEED_MULTIPLIER
    if is_night:
        score *= NIGHT_FEED_MULTIPLIER
    if illness:
        score *= ILLNESS_FEED_MULTIPLIER
    return clamp(score, 0.0, 1.0)


def wake_window_term(minutes_awake: float, params: PersonalizedParams) -> float:
    return WAKE_WINDOW_WEIGHT * sigmoid((minutes_awake - params.wake_window_max) / 20)


def sleep_pressure(
    minutes_awake: Optional[float],
    cumulative_day_sleep: float,
    params: PersonalizedParams,
    *,
    short_nap: bool = False,
    is_night: bool = False,
) -> float:
    """Likelihood (0-1) that sleep is due; zero while asleep or when awake time is unknown."""

    if minutes_awake is None:
        return 0.0
    score = wake_window_term(minutes_awake, params)
    score += DAY_SLEEP_WEIGHT * sigmoid((params.day_sleep_target - cumulative_day_sleep) / 40)
    if short_nap:
        score += SHORT_NAP_BUMP
    if is_night:
        score += NIGHT_SLEEP_BUMP
    return clamp(score, 0.0, 1.0)
