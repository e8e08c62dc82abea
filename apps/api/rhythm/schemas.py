"""Pydantic schemas shared across the engine and the API."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActivityType(str, Enum):
    FEED = "feed"
    NAP = "nap"
    DIAPER = "diaper"
    NOTE = "note"
    SOLIDS = "solids"
    PHOTO = "photo"
    MEASURE = "measure"


SCHEDULING_TYPES = {ActivityType.FEED, ActivityType.NAP, ActivityType.DIAPER}


class Intent(str, Enum):
    FEED_SOON = "FEED_SOON"
    START_WIND_DOWN = "START_WIND_DOWN"
    INDEPENDENT_TIME = "INDEPENDENT_TIME"
    LET_SLEEP_CONTINUE = "LET_SLEEP_CONTINUE"
    HOLD = "HOLD"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DataStability(str, Enum):
    SPARSE = "sparse"
    UNSTABLE = "unstable"
    STABLE = "stable"


class SleepKind(str, Enum):
    NAP = "nap"
    NIGHT = "night"


class FeedType(str, Enum):
    BOTTLE = "bottle"
    NURSING = "nursing"


class ScheduleEventType(str, Enum):
    WAKE = "wake"
    NAP = "nap"
    FEED = "feed"
    BED = "bed"


class ActivityDetails(BaseModel):
    """Kind-specific details bag as stored alongside each logged activity."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    display_time: Optional[str] = Field(
        default=None,
        alias="displayTime",
        description="Wall-clock time picked by the caregiver, e.g. 6:45 PM",
    )
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")
    quantity: Optional[Union[float, str]] = Field(default=None, description="Bottle amount, e.g. 4")
    unit: Optional[str] = Field(default=None, description="oz | ml")
    feed_type: Optional[str] = Field(default=None, alias="feedType", description="bottle | nursing")
    is_night_sleep: Optional[bool] = Field(default=None, alias="isNightSleep")
    date_local: Optional[str] = Field(
        default=None,
        description="Local calendar day (YYYY-MM-DD) the caregiver logged the activity for",
    )
    note: Optional[str] = None


class ActivityRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    type: str
    logged_at: datetime = Field(alias="loggedAt")
    timezone: Optional[str] = Field(default=None, description="IANA timezone name")
    details: ActivityDetails = Field(default_factory=ActivityDetails)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        return str(value).strip().lower()


class _ResultModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class TimingPredictions(_ResultModel):
    next_wake_at: Optional[datetime] = Field(default=None, alias="nextWakeAt")
    next_nap_window_start: Optional[datetime] = Field(default=None, alias="nextNapWindowStart")
    next_feed_at: Optional[datetime] = Field(default=None, alias="nextFeedAt")
    expected_feed_volume: Optional[float] = Field(default=None, alias="expectedFeedVolume")


class DayProgress(_ResultModel):
    feeds_today: int = Field(alias="feedsToday")
    naps_today: int = Field(alias="napsToday")
    diapers_today: int = Field(alias="diapersToday")
    total_day_sleep_minutes: int = Field(alias="totalDaySleepMinutes")
    expected_feeds_min: int = Field(alias="expectedFeedsMin")
    expected_feeds_max: int = Field(alias="expectedFeedsMax")
    expected_naps_min: int = Field(alias="expectedNapsMin")
    expected_naps_max: int = Field(alias="expectedNapsMax")


class BlendRatio(_ResultModel):
    age: float
    learned: float


class WakeWindowPosition(_ResultModel):
    position: int
    median: float
    count: int


class EngineInternals(_ResultModel):
    learned_wake_window_median: Optional[float] = Field(default=None, alias="learnedWakeWindowMedian")
    learned_feed_interval_median: Optional[float] = Field(default=None, alias="learnedFeedIntervalMedian")
    learned_day_sleep_median: Optional[float] = Field(default=None, alias="learnedDaySleepMedian")
    wake_window_std_dev: Optional[float] = Field(default=None, alias="wakeWindowStdDev")
    feed_interval_std_dev: Optional[float] = Field(default=None, alias="feedIntervalStdDev")
    data_stability: DataStability = Field(alias="dataStability")
    blend_ratio: BlendRatio = Field(alias="blendRatio")
    wake_windows_by_position: List[WakeWindowPosition] = Field(
        default_factory=list,
        alias="wakeWindowsByPosition",
    )
    current_wake_window_position: Optional[int] = Field(default=None, alias="currentWakeWindowPosition")


class PredictionScores(_ResultModel):
    feed: float
    sleep: float


class RationaleFlags(_ResultModel):
    cluster_feeding: bool = False
    short_nap: bool = False
    illness: bool = False
    data_gap: bool = False
    night_feed_suppressed: bool = False


class PredictionRationale(_ResultModel):
    t_since_last_feed_min: Optional[int] = None
    t_awake_now_min: Optional[int] = None
    cumulative_day_sleep_min: int
    day_sleep_target_min: float
    last_nap_duration_min: Optional[int] = None
    scores: PredictionScores
    night_or_day: str = Field(description="day | night")
    flags: RationaleFlags = Field(default_factory=RationaleFlags)


class NextActionResult(_ResultModel):
    intent: Intent
    confidence: Confidence
    timing: TimingPredictions
    reasons: List[str]
    day_progress: DayProgress = Field(alias="dayProgress")
    internals: EngineInternals
    rationale: PredictionRationale
    reevaluate_in_minutes: int


class ScheduleEvent(_ResultModel):
    time: datetime
    label: str = Field(description="Local clock label, e.g. 9:15 AM")
    type: ScheduleEventType
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes")
    duration: Optional[str] = Field(default=None, description="Human duration, e.g. 1h 30m")
    notes: Optional[str] = None
    confidence: Confidence
    reasoning: str


class AdaptiveSchedule(_ResultModel):
    events: List[ScheduleEvent]
    confidence: Confidence
    based_on: str = Field(alias="basedOn")
    predicted_bedtime: Optional[str] = Field(default=None, alias="predictedBedtime")
    bedtime_confidence: Optional[Confidence] = Field(default=None, alias="bedtimeConfidence")
    accuracy_score: Optional[int] = Field(default=None, alias="accuracyScore")
    truncated: bool = False
