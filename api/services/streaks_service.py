"""Streak calculation and milestone detection - pure functions.

Rules:
- A streak counts distinct calendar days with activity, however many
  activities fall on one day
- Grace period: the streak stays alive while the most recent activity is today
  or yesterday; a gap of two or more days breaks it (current streak = 0)
- Milestones fire at exactly 7, 30 and 100 days

``today`` is always passed in; nothing here reads the clock.
"""

from collections.abc import Iterable

from schemas import ActivityLogEntry
from services.calendar_dates import are_consecutive_days, day_difference

STREAK_MILESTONES: tuple[int, ...] = (7, 30, 100)
_MILESTONE_SET = frozenset(STREAK_MILESTONES)

# Days since the last activity for which the streak is still alive
GRACE_PERIOD_DAYS = 1


def unique_learning_days(activity_log: Iterable[ActivityLogEntry]) -> list[str]:
    """Distinct calendar days with activity, oldest first."""
    return sorted({entry.date for entry in activity_log})


def calculate_current_streak(
    activity_log: Iterable[ActivityLogEntry], today: str
) -> int:
    """Length of the run of consecutive activity days ending today or yesterday.

    Args:
        activity_log: Activity entries in any order; duplicates per day are fine.
        today: The caller's current calendar day (YYYY-MM-DD).

    Returns:
        0 if there is no activity or the last activity is older than yesterday,
        otherwise the number of consecutive days counted back from the most
        recent activity day.
    """
    days = unique_learning_days(activity_log)
    if not days:
        return 0

    days.reverse()
    if day_difference(days[0], today) > GRACE_PERIOD_DAYS:
        return 0

    streak = 1
    for later, earlier in zip(days, days[1:]):
        if not are_consecutive_days(earlier, later):
            break
        streak += 1

    return streak


def detect_milestone(streak_length: int) -> int | None:
    """Return ``streak_length`` if it is a milestone, otherwise None."""
    if streak_length in _MILESTONE_SET:
        return streak_length
    return None
