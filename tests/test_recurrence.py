"""Tests for next-occurrence arithmetic."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from notifier.errors import ScheduleComputationError
from notifier.models import ReminderFrequency
from notifier.services.recurrence import (
    RecurrenceUnit,
    next_occurrence,
    next_reminder_time,
    parse_pattern,
)

START = datetime(2026, 1, 31, 8, 0, tzinfo=timezone.utc)


class TestParsePattern:
    """Tests for recurrence pattern parsing."""

    @pytest.mark.parametrize(
        "pattern,expected",
        [
            ("daily", (RecurrenceUnit.DAY, 1)),
            ("Weekly", (RecurrenceUnit.WEEK, 1)),
            ("monthly", (RecurrenceUnit.MONTH, 1)),
            ("hourly", (RecurrenceUnit.HOUR, 1)),
            ("every 2 weeks", (RecurrenceUnit.WEEK, 2)),
            ("every 3 day", (RecurrenceUnit.DAY, 3)),
        ],
    )
    def test_valid_patterns(self, pattern, expected):
        assert parse_pattern(pattern) == expected

    @pytest.mark.parametrize("pattern", ["", "yearly", "every 0 days", "every few days"])
    def test_invalid_patterns(self, pattern):
        with pytest.raises(ScheduleComputationError):
            parse_pattern(pattern)


class TestNextOccurrence:
    """Tests for recurring notification steps."""

    def test_daily_and_hourly(self):
        assert next_occurrence(START, "daily") == START + timedelta(days=1)
        assert next_occurrence(START, "every 6 hours") == START + timedelta(hours=6)

    def test_monthly_clamps_to_month_end(self):
        """Jan 31 plus one month is Feb 28."""
        assert next_occurrence(START, "monthly") == datetime(
            2026, 2, 28, 8, 0, tzinfo=timezone.utc
        )

    def test_naive_input_treated_as_utc(self):
        naive = START.replace(tzinfo=None)

        assert next_occurrence(naive, "daily") == START + timedelta(days=1)

    def test_hour_steps_are_elapsed_time_across_dst(self):
        """Hourly recurrence counts real hours even when clocks change."""
        tz = ZoneInfo("America/New_York")
        before = datetime(2026, 3, 8, 1, 30, tzinfo=tz).astimezone(timezone.utc)

        after = next_occurrence(before, "hourly", tz)

        assert after - before == timedelta(hours=1)
        assert after.astimezone(tz).hour == 3


class TestNextReminderTime:
    """Tests for reminder frequency steps."""

    def test_daily_and_weekly(self):
        assert next_reminder_time(START, ReminderFrequency.DAILY) == START + timedelta(days=1)
        assert next_reminder_time(START, "weekly") == START + timedelta(days=7)

    @pytest.mark.parametrize("frequency", [ReminderFrequency.ONCE, "monthly"])
    def test_other_frequencies_rejected(self, frequency):
        with pytest.raises(ScheduleComputationError, match="Invalid reminder frequency"):
            next_reminder_time(START, frequency)
