from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

import pytest

from rhythm.config import EngineSettings
from rhythm.schemas import ActivityRecord


def build_record(
    record_id: str,
    kind: str,
    logged_at: datetime,
    tz: Optional[str] = "UTC",
    **details: Any,
) -> ActivityRecord:
    return ActivityRecord.model_validate(
        {
            "id": record_id,
            "type": kind,
            "loggedAt": logged_at,
            "timezone": tz,
            "details": details,
        }
    )


@pytest.fixture
def make_record() -> Callable[..., ActivityRecord]:
    return build_record


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()
