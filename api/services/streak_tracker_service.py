"""Streak tracker: records learning activity and serves streak views.

This is the single entry point for streak state. Story, exercise and journal
features call ``record_activity`` whenever an action counts toward a streak;
the UI reads through the ``get_*`` methods.

Each ``record_activity`` call is one load, at most one history append, and
one save of the owner's whole record. Nothing is committed unless the save
succeeds.

Concurrency: calls for one owner must be serialized by the caller (per-owner
lock, single-writer queue, ...). The SQL store's version check turns a lost
update into StaleStreakRecordError; retry the whole call when it happens.
Calls for different owners share no state.
"""

import re
from collections.abc import Callable
from datetime import datetime, tzinfo

from core import get_logger
from core.telemetry import add_custom_attribute, log_business_event, track_operation
from models import ActivityType, utcnow
from repositories.streak_record_repository import StreakRecordStore
from schemas import (
    ActivityDay,
    ActivityLogEntry,
    StreakHistoryEntry,
    StreakRecord,
    StreakStats,
    StreakUpdate,
)
from services.activity_calendar_service import (
    activity_calendar,
    average_activities_per_day,
    total_learning_days,
)
from services.calendar_dates import local_date_string
from services.streak_history_service import (
    archive_if_broken,
    is_streak_broken,
    longest_streak,
)
from services.streaks_service import calculate_current_streak, detect_milestone

logger = get_logger(__name__)

MAX_OWNER_ID_LENGTH = 255
_OWNER_ID_RE = re.compile(r"[^\s\x00-\x1f\x7f]+")


class StreakInputError(ValueError):
    """Raised for invalid arguments, before any persistence is touched."""


class InvalidOwnerIdError(StreakInputError):
    def __init__(self, owner_id: object):
        self.owner_id = owner_id
        super().__init__(
            f"Invalid owner id {owner_id!r}: must be 1-{MAX_OWNER_ID_LENGTH} "
            "characters without whitespace"
        )


class InvalidActivityTypeError(StreakInputError):
    def __init__(self, activity_type: object):
        self.activity_type = activity_type
        allowed = ", ".join(t.value for t in ActivityType)
        super().__init__(
            f"Unknown activity type {activity_type!r}. Expected one of: {allowed}"
        )


def validate_owner_id(owner_id: object) -> str:
    if (
        not isinstance(owner_id, str)
        or len(owner_id) > MAX_OWNER_ID_LENGTH
        or not _OWNER_ID_RE.fullmatch(owner_id)
    ):
        raise InvalidOwnerIdError(owner_id)
    return owner_id


def validate_activity_type(activity_type: object) -> ActivityType:
    if isinstance(activity_type, ActivityType):
        return activity_type
    try:
        return ActivityType(activity_type)
    except ValueError as e:
        raise InvalidActivityTypeError(activity_type) from e


def _longest(
    record: StreakRecord, history: list[StreakHistoryEntry], current: int
) -> int:
    # The stored value also covers a broken streak that has not been
    # archived yet (archiving waits for the next activity)
    return max(longest_streak(history, current), record.longest_streak)


class StreakTracker:
    """Owns the streak record lifecycle for every owner.

    Args:
        store: Where records are loaded from and saved to.
        clock: Returns the current instant; aware datetimes are converted to
            ``tz`` to find today's calendar day.
        tz: Timezone that defines calendar days. None = process local time.
    """

    def __init__(
        self,
        store: StreakRecordStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.tz = tz

    def today(self) -> str:
        return local_date_string(self.clock(), self.tz)

    async def _load(self, owner_id: str) -> StreakRecord:
        record = await self.store.load_record(owner_id)
        if record is None:
            return StreakRecord.empty(owner_id)
        return record

    @track_operation("streak_activity_recording")
    async def record_activity(
        self,
        owner_id: str,
        activity_type: ActivityType | str,
        reference_id: str | None = None,
    ) -> StreakUpdate:
        """Record one learning activity for today and return the new streak state.

        Raises:
            InvalidOwnerIdError / InvalidActivityTypeError: bad arguments.
            StaleStreakRecordError: the record changed concurrently.
            Any store error, unchanged.
        """
        owner_id = validate_owner_id(owner_id)
        activity = validate_activity_type(activity_type)

        record = await self._load(owner_id)
        now = self.clock()
        today = local_date_string(now, self.tz)

        previous_streak = calculate_current_streak(record.activity_log, today)
        previous_last = record.last_activity_date
        was_broken = is_streak_broken(previous_last, today)

        # By today a broken streak already reads 0; archive the length it had
        # on its last day.
        broken_length = (
            calculate_current_streak(record.activity_log, previous_last)
            if was_broken and previous_last is not None
            else 0
        )
        history = archive_if_broken(
            broken_length, previous_last, record.streak_history, today
        )

        entry = ActivityLogEntry(
            date=today,
            type=activity,
            reference_id=reference_id,
            timestamp=int(now.timestamp() * 1000),
        )
        activity_log = [*record.activity_log, entry]

        new_streak = calculate_current_streak(activity_log, today)
        longest = _longest(record, history, new_streak)

        milestone = detect_milestone(new_streak)
        is_new_milestone = milestone is not None and (
            previous_streak < milestone or was_broken
        )

        updated = record.model_copy(
            update={
                "current_streak": new_streak,
                "longest_streak": longest,
                "last_activity_date": today,
                "activity_log": activity_log,
                "streak_history": history,
            }
        )
        await self.store.save_record(updated)

        add_custom_attribute("activity.type", activity.value)
        logger.info(
            "streak.activity.recorded",
            owner_id=owner_id,
            activity_type=activity.value,
            activity_date=today,
            current_streak=new_streak,
            longest_streak=longest,
            was_broken=was_broken,
        )
        if is_new_milestone:
            logger.info(
                "streak.milestone.reached", owner_id=owner_id, milestone=milestone
            )
            log_business_event(
                "streak.milestone", float(milestone), {"owner_id": owner_id}
            )

        return StreakUpdate(
            current_streak=new_streak,
            longest_streak=longest,
            is_new_milestone=is_new_milestone,
            milestone=milestone if is_new_milestone else None,
        )

    async def get_current_streak(self, owner_id: str) -> int:
        record = await self._load(validate_owner_id(owner_id))
        return calculate_current_streak(record.activity_log, self.today())

    async def get_longest_streak(self, owner_id: str) -> int:
        record = await self._load(validate_owner_id(owner_id))
        current = calculate_current_streak(record.activity_log, self.today())
        return _longest(record, record.streak_history, current)

    async def get_streak_history(self, owner_id: str) -> list[StreakHistoryEntry]:
        record = await self._load(validate_owner_id(owner_id))
        return list(record.streak_history)

    async def get_activity_calendar(
        self, owner_id: str, year: int, month: int
    ) -> list[ActivityDay]:
        record = await self._load(validate_owner_id(owner_id))
        return activity_calendar(record.activity_log, year, month)

    async def get_streak_stats(self, owner_id: str) -> StreakStats:
        record = await self._load(validate_owner_id(owner_id))
        current = calculate_current_streak(record.activity_log, self.today())
        return StreakStats(
            current_streak=current,
            longest_streak=_longest(record, record.streak_history, current),
            total_learning_days=total_learning_days(record.activity_log),
            average_activities_per_day=average_activities_per_day(
                record.activity_log
            ),
            last_activity_date=record.last_activity_date,
        )

    async def get_streak_record(self, owner_id: str) -> StreakRecord:
        """Full stored record (admin/debug view)."""
        return await self._load(validate_owner_id(owner_id))
