from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ..config import CONFIG
from ..engine import EngineState, build_engine, get_next_action
from ..messages import intent_copy, progress_copy
from ..schedule import generate_adaptive_schedule
from ..schemas import ActivityRecord, AdaptiveSchedule, NextActionResult
from ..timeutils import ensure_aware, is_valid_zone

router = APIRouter(prefix="/api/v1/predictions", tags=["predictions"])
logger = logging.getLogger(__name__)


class PredictionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    activities: List[ActivityRecord] = Field(default_factory=list)
    birth_date: Optional[str] = Field(default=None, alias="birthDate", description="ISO date, e.g. 2025-01-31")
    timezone: Optional[str] = Field(default=None, description="IANA timezone name")
    baby_name: Optional[str] = Field(default=None, alias="babyName", description="Used in caregiver messages")
    now: Optional[datetime] = Field(default=None, description="Evaluation instant; defaults to the current time")


class NextActionResponse(NextActionResult):
    """Engine result plus the caregiver-facing wording shown on the home card."""

    message: str
    feed_progress_message: str = Field(alias="feedProgressMessage")
    nap_progress_message: str = Field(alias="napProgressMessage")


def _state_for(payload: PredictionRequest) -> Tuple[EngineState, datetime]:
    if payload.timezone and not is_valid_zone(payload.timezone):
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {payload.timezone}")
    now = ensure_aware(payload.now) if payload.now else datetime.now(timezone.utc)
    state = build_engine(
        payload.activities,
        payload.birth_date,
        now=now,
        timezone=payload.timezone,
        settings=CONFIG.engine,
    )
    return state, now


@router.post("/next-action", response_model=NextActionResponse)
async def next_action_endpoint(payload: PredictionRequest) -> NextActionResponse:
    state, now = _state_for(payload)
    result = get_next_action(state, now)
    response = NextActionResponse.model_validate(
        {
            **result.model_dump(),
            "message": intent_copy(result, state.zone, payload.baby_name),
            "feed_progress_message": progress_copy(result, "feeds"),
            "nap_progress_message": progress_copy(result, "naps"),
        }
    )
    logger.info(
        "next action computed",
        extra={
            "activity_count": len(payload.activities),
            "intent": result.intent.value,
            "confidence": result.confidence.value,
        },
    )
    return response


@router.post("/schedule", response_model=AdaptiveSchedule)
async def schedule_endpoint(payload: PredictionRequest) -> AdaptiveSchedule:
    state, now = _state_for(payload)
    schedule = generate_adaptive_schedule(state, now)
    logger.info(
        "schedule generated",
        extra={
            "activity_count": len(payload.activities),
            "event_count": len(schedule.events),
            "truncated": schedule.truncated,
        },
    )
    return schedule
