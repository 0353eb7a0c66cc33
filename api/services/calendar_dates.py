"""Calendar-day helpers.

A calendar day is a timezone-naive ``YYYY-MM-DD`` string: the local date an
activity counts toward. All arithmetic goes through ``datetime.date`` so day
differences are whole days even across daylight-saving transitions.
"""

import re
from datetime import date, datetime, timedelta, tzinfo

_CALENDAR_DAY_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


class InvalidCalendarDayError(ValueError):
    """Raised when a string is not a valid YYYY-MM-DD calendar day."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid calendar day {value!r}, expected YYYY-MM-DD")


def local_date_string(instant: datetime | date, tz: tzinfo | None = None) -> str:
    """Render the calendar day of ``instant`` in ``tz``.

    Aware datetimes are converted to ``tz`` first (``None`` = the process's
    local timezone). Naive datetimes are taken as already local.
    """
    if isinstance(instant, datetime):
        if instant.tzinfo is not None:
            instant = instant.astimezone(tz)
        return instant.date().isoformat()
    return instant.isoformat()


def parse_calendar_day(day: str) -> date:
    if not isinstance(day, str) or not _CALENDAR_DAY_RE.fullmatch(day):
        raise InvalidCalendarDayError(day)
    try:
        return date.fromisoformat(day)
    except ValueError as e:
        raise InvalidCalendarDayError(day) from e


def day_difference(a: str, b: str) -> int:
    """Absolute number of calendar days between two calendar days."""
    return abs((parse_calendar_day(b) - parse_calendar_day(a)).days)


def are_consecutive_days(earlier: str, later: str) -> bool:
    return day_difference(earlier, later) == 1


def shift_days(day: str, delta: int) -> str:
    """Calendar day ``delta`` days after ``day`` (negative moves backward)."""
    return (parse_calendar_day(day) + timedelta(days=delta)).isoformat()
