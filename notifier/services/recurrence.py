"""Next-occurrence arithmetic for reminders and recurring notifications.

Day, week and month steps are calendar steps in the configured zone: a
reminder at 09:00 stays at 09:00 local time across DST changes. Hour
steps are elapsed time.
"""

import calendar
import re
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum

from notifier.errors import ScheduleComputationError
from notifier.models import ReminderFrequency, ensure_utc


class RecurrenceUnit(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


NAMED_PATTERNS: dict[str, tuple[RecurrenceUnit, int]] = {
    "hourly": (RecurrenceUnit.HOUR, 1),
    "daily": (RecurrenceUnit.DAY, 1),
    "weekly": (RecurrenceUnit.WEEK, 1),
    "monthly": (RecurrenceUnit.MONTH, 1),
}

EVERY_PATTERN = re.compile(r"^every\s+(\d+)\s+(hour|day|week|month)s?$")


def parse_pattern(pattern: str) -> tuple[RecurrenceUnit, int]:
    """Parse ``daily``/``weekly``/``monthly``/``hourly`` or ``every N <unit>s``."""
    normalized = pattern.strip().lower()
    if normalized in NAMED_PATTERNS:
        return NAMED_PATTERNS[normalized]

    match = EVERY_PATTERN.match(normalized)
    if match and int(match.group(1)) > 0:
        return RecurrenceUnit(match.group(2)), int(match.group(1))

    raise ScheduleComputationError(f"Invalid recurrence pattern: {pattern!r}")


def _add_months(local: datetime, months: int) -> datetime:
    month_index = local.month - 1 + months
    year = local.year + month_index // 12
    month = month_index % 12 + 1
    day = min(local.day, calendar.monthrange(year, month)[1])
    return local.replace(year=year, month=month, day=day)


def advance(
    when: datetime, unit: RecurrenceUnit, count: int, tz: tzinfo = timezone.utc
) -> datetime:
    """Step ``when`` forward and return the result in UTC."""
    when = ensure_utc(when)
    if unit is RecurrenceUnit.HOUR:
        return when + timedelta(hours=count)

    # Aware arithmetic keeps wall-clock time in the local zone
    local = when.astimezone(tz)
    if unit is RecurrenceUnit.DAY:
        local = local + timedelta(days=count)
    elif unit is RecurrenceUnit.WEEK:
        local = local + timedelta(weeks=count)
    else:
        local = _add_months(local, count)
    return local.astimezone(timezone.utc)


def next_occurrence(
    when: datetime, pattern: str, tz: tzinfo = timezone.utc
) -> datetime:
    """Next fire time for a recurring notification's pattern."""
    unit, count = parse_pattern(pattern)
    return advance(when, unit, count, tz)


def next_reminder_time(
    when: datetime, frequency: ReminderFrequency | str, tz: tzinfo = timezone.utc
) -> datetime:
    """Next fire time for a repeating reminder schedule.

    Raises:
        ScheduleComputationError: ONCE or an unknown frequency
    """
    if frequency == ReminderFrequency.DAILY:
        return advance(when, RecurrenceUnit.DAY, 1, tz)
    if frequency == ReminderFrequency.WEEKLY:
        return advance(when, RecurrenceUnit.WEEK, 1, tz)
    raise ScheduleComputationError(f"Invalid reminder frequency: {frequency}")
