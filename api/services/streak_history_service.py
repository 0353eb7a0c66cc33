"""Archive of broken streaks and longest-streak derivation."""

from collections.abc import Sequence

from core import get_logger
from schemas import StreakHistoryEntry
from services.calendar_dates import parse_calendar_day, shift_days
from services.streaks_service import GRACE_PERIOD_DAYS

logger = get_logger(__name__)


def is_streak_broken(previous_last_activity_date: str | None, today: str) -> bool:
    """True when the last activity is older than the grace period allows.

    A last activity after ``today`` (clock moved back) never breaks the
    streak; that run has not ended yet and must not be archived.
    """
    if previous_last_activity_date is None:
        return False
    gap = parse_calendar_day(today) - parse_calendar_day(previous_last_activity_date)
    return gap.days > GRACE_PERIOD_DAYS


def archive_if_broken(
    previous_streak: int,
    previous_last_activity_date: str | None,
    history: Sequence[StreakHistoryEntry],
    today: str,
) -> list[StreakHistoryEntry]:
    """Return the streak history, with the previous streak appended if it broke.

    The input sequence is never mutated. ``previous_streak`` is the length of
    the run that ended on ``previous_last_activity_date`` (measured on that
    day, not today, since by today it has already dropped to 0). It started
    ``previous_streak - 1`` days before its end date.
    """
    updated = list(history)

    if previous_streak <= 0 or not is_streak_broken(
        previous_last_activity_date, today
    ):
        return updated

    assert previous_last_activity_date is not None
    entry = StreakHistoryEntry(
        start_date=shift_days(previous_last_activity_date, -(previous_streak - 1)),
        end_date=previous_last_activity_date,
        length=previous_streak,
    )
    updated.append(entry)

    logger.info(
        "streak.archived",
        start_date=entry.start_date,
        end_date=entry.end_date,
        length=entry.length,
    )
    return updated


def longest_streak(history: Sequence[StreakHistoryEntry], current_streak: int) -> int:
    historical_max = max((entry.length for entry in history), default=0)
    return max(historical_max, current_streak)
