from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class PersonalizedParams:
    wake_window_min: float
    wake_window_max: float
    feed_interval_min: float
    feed_interval_max: float
    day_sleep_target: float
    short_nap_floor: float


AGE_BRACKETS: Dict[str, PersonalizedParams] = {
    "0-3mo": PersonalizedParams(
        wake_window_min=45,
        wake_window_max=90,
        feed_interval_min=120,
        feed_interval_max=180,
        day_sleep_target=240,
        short_nap_floor=20,
    ),
    "4-6mo": PersonalizedParams(
        wake_window_min=105,
        wake_window_max=150,
        feed_interval_min=150,
        feed_interval_max=210,
        day_sleep_target=180,
        short_nap_floor=30,
    ),
    "7-12mo": PersonalizedParams(
        wake_window_min=180,
        wake_window_max=240,
        feed_interval_min=180,
        feed_interval_max=300,
        day_sleep_target=150,
        short_nap_floor=45,
    ),
}

# (upper bound in months, exclusive) -> expected range; the last entry covers everyone older.
EXPECTED_FEEDS: List[Tuple[int, Tuple[int, int]]] = [
    (1, (8, 12)),
    (3, (6, 8)),
    (6, (5, 7)),
    (9, (4, 6)),
    (12, (3, 5)),
]
EXPECTED_FEEDS_OLDER = (3, 4)

EXPECTED_NAPS: List[Tuple[int, Tuple[int, int]]] = [
    (3, (4, 6)),
    (6, (3, 4)),
    (9, (2, 3)),
    (12, (2, 3)),
]
EXPECTED_NAPS_OLDER = (1, 2)

NAP_LENGTH_MINUTES: List[Tuple[int, int]] = [(3, 120), (6, 90), (12, 75)]
NAP_LENGTH_OLDER = 60

NIGHT_LENGTH_MINUTES: List[Tuple[int, int]] = [(3, 480), (6, 600)]
NIGHT_LENGTH_OLDER = 660


def age_bracket(age_months: int) -> str:
    if age_months < 4:
        return "0-3mo"
    if age_months < 7:
        return "4-6mo"
    return "7-12mo"


def baseline_for_age(age_months: int) -> PersonalizedParams:
    """Age-derived defaults before any learning."""

    return AGE_BRACKETS[age_bracket(age_months)]


def _banded(age_months: int, bands, fallback):
    for upper, value in bands:
        if age_months < upper:
            return value
    return fallback


def expected_feeds(age_months: int) -> Tuple[int, int]:
    return _banded(age_months, EXPECTED_FEEDS, EXPECTED_FEEDS_OLDER)


def expected_naps(age_months: int) -> Tuple[int, int]:
    return _banded(age_months, EXPECTED_NAPS, EXPECTED_NAPS_OLDER)


def expected_nap_minutes(age_months: int) -> int:
    return _banded(age_months, NAP_LENGTH_MINUTES, NAP_LENGTH_OLDER)


def expected_night_minutes(age_months: int) -> int:
    return _banded(age_months, NIGHT_LENGTH_MINUTES, NIGHT_LENGTH_OLDER)
