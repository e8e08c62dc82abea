"""Application configuration utilities."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class EngineSettings(BaseModel):
    """Tunable constants for the decision engine and the day simulator."""

    night_start_hour: int = Field(default=19, ge=0, le=23)
    night_end_hour: int = Field(default=7, ge=0, le=23)
    default_timezone: str = Field(default="UTC", description="Zone used when records carry none")
    default_age_months: int = Field(default=6, ge=0)
    auto_close_after_minutes: int = Field(default=120, ge=0)
    ongoing_sleep_lookback_hours: int = Field(default=24, ge=1)
    data_gap_minutes: int = Field(default=360, ge=1)
    learning_window_days: int = Field(default=7, ge=1)
    suppress_night_feeds: bool = Field(
        default=False,
        description="Damp night feed pressure for children without a night-feed pattern",
    )

    bedtime: str = Field(default="19:30", pattern=r"^\d{1,2}:\d{2}$")
    bedtime_routine_lead_minutes: int = Field(default=30, ge=0)
    day_end_hour: int = Field(default=22, ge=1, le=24)
    default_wake_time: str = Field(default="07:00", pattern=r"^\d{1,2}:\d{2}$")
    default_nap_minutes: int = Field(default=90, ge=1)
    simulation_step_minutes: int = Field(default=30, ge=1)
    min_clock_advance_minutes: int = Field(default=5, ge=1)
    min_feed_spacing_minutes: int = Field(default=60, ge=0)
    max_naps: int = Field(default=5, ge=0)
    max_feeds: int = Field(default=10, ge=0)
    max_events: int = Field(default=20, ge=1)

    @model_validator(mode="after")
    def _check_windows(self) -> "EngineSettings":
        if self.night_start_hour == self.night_end_hour:
            raise ValueError("night_start_hour and night_end_hour must differ")
        for label in ("bedtime", "default_wake_time"):
            hour, minute = _split_clock(getattr(self, label))
            if hour > 23 or minute > 59:
                raise ValueError(f"{label} must be a valid HH:MM clock time")
        return self

    @property
    def bedtime_clock(self) -> Tuple[int, int]:
        return _split_clock(self.bedtime)

    @property
    def default_wake_clock(self) -> Tuple[int, int]:
        return _split_clock(self.default_wake_time)


def _split_clock(value: str) -> Tuple[int, int]:
    hour, minute = value.split(":")
    return int(hour), int(minute)


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json."""

    engine: EngineSettings = Field(default_factory=EngineSettings)
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )


def _config_path() -> Path:
    override = os.getenv("RHYTHM_CONFIG_PATH")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[1] / "config.json"


def load_config() -> AppConfig:
    """Load configuration from config.json, falling back to defaults when it is absent."""

    config_file = _config_path()
    if not config_file.exists():
        logger.info("config file not found, using defaults", extra={"path": str(config_file)})
        return AppConfig()

    contents: Dict[str, Any] = json.loads(config_file.read_text())
    return AppConfig(**contents)


CONFIG = load_config()
