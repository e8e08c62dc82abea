import unittest
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from rhythm.engine import build_engine, get_next_action
from rhythm.messages import (
    LEARNING_MESSAGE,
    PROGRESS_COPY,
    intent_copy,
    progress_copy,
)
from rhythm.schemas import Confidence, DayProgress, Intent, TimingPredictions

NOW = datetime(2025, 6, 15, 12, tzinfo=timezone.utc)


def progress(feeds: int, naps: int) -> DayProgress:
    return DayProgress(
        feeds_today=feeds,
        naps_today=naps,
        diapers_today=0,
        total_day_sleep_minutes=0,
        expected_feeds_min=5,
        expected_feeds_max=7,
        expected_naps_min=3,
        expected_naps_max=4,
    )


class IntentCopyTests(unittest.TestCase):
    def setUp(self):
        self.result = get_next_action(build_engine([], now=NOW), NOW)

    def variant(self, **update):
        return self.result.model_copy(update=update)

    def test_missing_result_asks_for_more_logs(self):
        self.assertEqual(intent_copy(None, timezone.utc), LEARNING_MESSAGE)
        self.assertEqual(progress_copy(None, "feeds"), "")

    def test_high_confidence_feed_is_a_statement(self):
        timing = TimingPredictions(next_feed_at=datetime(2025, 6, 15, 14, 30, tzinfo=timezone.utc), expected_feed_volume=4.0)
        result = self.variant(confidence=Confidence.HIGH, timing=timing)
        self.assertEqual(intent_copy(result, timezone.utc), "Next feed around 2:30 PM, typically 4")

    def test_high_confidence_without_timing_uses_first_name(self):
        result = self.variant(confidence=Confidence.HIGH, timing=TimingPredictions())
        self.assertEqual(intent_copy(result, timezone.utc, "Ava Rose"), "Ava will likely be ready for a feed soon")

    def test_medium_confidence_renders_local_clock(self):
        timing = TimingPredictions(next_nap_window_start=datetime(2025, 6, 15, 20, 15, tzinfo=timezone.utc))
        result = self.variant(confidence=Confidence.MEDIUM, intent=Intent.START_WIND_DOWN, timing=timing)
        self.assertEqual(
            intent_copy(result, ZoneInfo("America/Los_Angeles")),
            "Nap likely around 1:15 PM. Watch for sleepy cues.",
        )

    def test_low_confidence_explains_instead_of_predicting(self):
        result = self.variant(intent=Intent.LET_SLEEP_CONTINUE)
        self.assertEqual(result.confidence, Confidence.LOW)
        self.assertEqual(
            intent_copy(result, timezone.utc),
            "Baby is resting. Predictions sharpen as patterns strengthen.",
        )


class ProgressCopyTests(unittest.TestCase):
    def setUp(self):
        self.result = get_next_action(build_engine([], now=NOW), NOW)

    def copy_for(self, feeds: int, naps: int, kind: str) -> str:
        return progress_copy(self.result.model_copy(update={"day_progress": progress(feeds, naps)}), kind)

    def test_feed_counts_against_expected_range(self):
        self.assertEqual(self.copy_for(0, 0, "feeds"), PROGRESS_COPY["feeds"]["none"])
        self.assertEqual(self.copy_for(3, 0, "feeds"), PROGRESS_COPY["feeds"]["below"])
        self.assertEqual(self.copy_for(6, 0, "feeds"), PROGRESS_COPY["feeds"]["within"])
        self.assertEqual(self.copy_for(9, 0, "feeds"), PROGRESS_COPY["feeds"]["above"])

    def test_nap_counts_against_expected_range(self):
        self.assertEqual(self.copy_for(0, 3, "naps"), PROGRESS_COPY["naps"]["within"])
        self.assertEqual(self.copy_for(0, 5, "naps"), PROGRESS_COPY["naps"]["above"])

    def test_unknown_kind_is_rejected(self):
        with self.assertRaises(ValueError):
            progress_copy(self.result, "diapers")


if __name__ == "__main__":
    unittest.main()
