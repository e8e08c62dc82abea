"""Caregiver-facing wording for engine results."""
from __future__ import annotations

from datetime import tzinfo
from typing import Optional

from .schemas import Confidence, Intent, NextActionResult
from .timeutils import format_clock

LEARNING_MESSAGE = "Still learning your baby's rhythm. Keep logging to unlock predictions."

# Low confidence is educational: explain what the engine is weighing rather than predicting.
LOW_CONFIDENCE_COPY = {
    Intent.FEED_SOON: "Could be a feeding or sleep need. Watch for hunger and sleepy cues.",
    Intent.START_WIND_DOWN: "Still learning patterns. A nap or a feed could be next, trust your instincts.",
    Intent.LET_SLEEP_CONTINUE: "{name} is resting. Predictions sharpen as patterns strengthen.",
    Intent.INDEPENDENT_TIME: "{name} is between patterns. Watching both feeding and sleep signals.",
}

PROGRESS_COPY = {
    "feeds": {
        "none": "Just getting started today. Every feed builds your routine.",
        "within": "Right on rhythm. Steady days help build confident nights.",
        "below": "Light feeding day, still within a healthy range.",
        "above": "Extra feeds today, often a growth spurt or a comfort need.",
    },
    "naps": {
        "none": "Working on today's first nap. Every rest counts.",
        "within": "Solid nap rhythm today.",
        "below": "Shorter nap day, normal during transitions.",
        "above": "Extra restful day. Sometimes babies need more recovery time.",
    },
}


def _first_name(baby_name: Optional[str]) -> str:
    if baby_name and baby_name.strip():
        return baby_name.split()[0]
    return "Baby"


def intent_copy(result: Optional[NextActionResult], zone: tzinfo, baby_name: Optional[str] = None) -> str:
    """One-line message for the home card.

    High confidence reads as a statement, medium as a suggestion, low as an
    explanation of what is still being learned.
    """

    if result is None:
        return LEARNING_MESSAGE

    name = _first_name(baby_name)
    timing = result.timing
    intent = result.intent

    if result.confidence is Confidence.HIGH:
        if intent is Intent.FEED_SOON:
            if timing.next_feed_at is None:
                return f"{name} will likely be ready for a feed soon"
            volume = f", typically {timing.expected_feed_volume:g}" if timing.expected_feed_volume else ""
            return f"Next feed around {format_clock(timing.next_feed_at, zone)}{volume}"
        if intent is Intent.START_WIND_DOWN:
            if timing.next_nap_window_start is None:
                return "Time to start winding down for a nap"
            return f"Nap window starting around {format_clock(timing.next_nap_window_start, zone)}"
        if intent is Intent.LET_SLEEP_CONTINUE:
            if timing.next_wake_at is None:
                return f"{name} is resting peacefully"
            return f"May wake around {format_clock(timing.next_wake_at, zone)}"
        if intent is Intent.INDEPENDENT_TIME:
            return f"{name} is in a good groove right now"
        return "All is well"

    if result.confidence is Confidence.MEDIUM:
        if intent is Intent.FEED_SOON:
            if timing.next_feed_at is None:
                return "A feed could be coming up. Watch for cues."
            return f"Likely feed around {format_clock(timing.next_feed_at, zone)}. Watch for hunger cues."
        if intent is Intent.START_WIND_DOWN:
            if timing.next_nap_window_start is None:
                return "Nap window approaching. Watch for sleepy cues."
            return f"Nap likely around {format_clock(timing.next_nap_window_start, zone)}. Watch for sleepy cues."
        if intent is Intent.LET_SLEEP_CONTINUE:
            if timing.next_wake_at is None:
                return f"{name} is napping. Let them rest."
            return f"Likely waking around {format_clock(timing.next_wake_at, zone)}"
        if intent is Intent.INDEPENDENT_TIME:
            return f"{name} is showing flexible patterns, and that is okay"
        return "You are finding your rhythm"

    template = LOW_CONFIDENCE_COPY.get(intent, "Keep logging to improve accuracy.")
    return template.format(name=name)


def progress_copy(result: Optional[NextActionResult], kind: str) -> str:
    """Describe today's feed or nap count against the expected range. ``kind`` is "feeds" or "naps"."""

    if result is None:
        return ""
    if kind not in PROGRESS_COPY:
        raise ValueError(f"Unsupported progress kind: {kind}")

    progress = result.day_progress
    if kind == "feeds":
        count, low, high = progress.feeds_today, progress.expected_feeds_min, progress.expected_feeds_max
    else:
        count, low, high = progress.naps_today, progress.expected_naps_min, progress.expected_naps_max

    copy = PROGRESS_COPY[kind]
    if count == 0:
        return copy["none"]
    if low <= count <= high:
        return copy["within"]
    if count < low:
        return copy["below"]
    return copy["above"]
