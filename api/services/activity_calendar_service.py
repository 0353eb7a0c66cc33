"""Activity calendar aggregation and learning-day statistics."""

from collections.abc import Sequence

from models import ActivityType
from schemas import ActivityDay, ActivityLogEntry
from services.streaks_service import unique_learning_days


def activity_calendar(
    activity_log: Sequence[ActivityLogEntry], year: int, month: int
) -> list[ActivityDay]:
    """Per-day activity counts for one month.

    Only days with at least one activity are returned (callers render blanks
    themselves), sorted by date. Activity types are deduplicated in the order
    they were first logged that day.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    if not 1 <= year <= 9999:
        raise ValueError(f"year must be between 1 and 9999, got {year}")

    prefix = f"{year:04d}-{month:02d}-"

    counts: dict[str, int] = {}
    types_by_day: dict[str, dict[ActivityType, None]] = {}

    for entry in activity_log:
        if not entry.date.startswith(prefix):
            continue
        counts[entry.date] = counts.get(entry.date, 0) + 1
        # dict keys keep first-seen order and drop duplicates
        types_by_day.setdefault(entry.date, {})[entry.type] = None

    return [
        ActivityDay(
            date=day,
            activity_count=counts[day],
            activity_types=list(types_by_day[day]),
        )
        for day in sorted(counts)
    ]


def total_learning_days(activity_log: Sequence[ActivityLogEntry]) -> int:
    return len(unique_learning_days(activity_log))


def average_activities_per_day(activity_log: Sequence[ActivityLogEntry]) -> float:
    """Activities per distinct learning day; 0.0 for an empty log."""
    days = total_learning_days(activity_log)
    if days == 0:
        return 0.0
    return len(activity_log) / days
