"""Tests for StreakTracker, the streak record lifecycle.

Uses the in-memory store and a fake clock so every scenario runs against a
known calendar day.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
import time_machine

from models import ActivityType
from repositories.streak_record_repository import (
    InMemoryStreakRecordStore,
    StaleStreakRecordError,
)
from schemas import StreakHistoryEntry, StreakRecord
from services.streak_tracker_service import (
    InvalidActivityTypeError,
    InvalidOwnerIdError,
    StreakInputError,
    StreakTracker,
    validate_activity_type,
    validate_owner_id,
)

OWNER = "learner-1"


@pytest.fixture
def store() -> InMemoryStreakRecordStore:
    return InMemoryStreakRecordStore()


@pytest.fixture
def tracker(store, clock) -> StreakTracker:
    return StreakTracker(store, clock=clock, tz=UTC)


async def _record_days(tracker, clock, start: str, days: int):
    """Record one story completion per day for ``days`` days from ``start``."""
    clock.set_day(start)
    updates = []
    for i in range(days):
        if i:
            clock.advance()
        updates.append(await tracker.record_activity(OWNER, "story_complete"))
    return updates


@pytest.mark.unit
class TestInputValidation:
    @pytest.mark.parametrize(
        "owner_id", ["", " ", "has space", "tab\there", "x" * 256, None, 42]
    )
    def test_invalid_owner_ids(self, owner_id):
        with pytest.raises(InvalidOwnerIdError):
            validate_owner_id(owner_id)

    @pytest.mark.parametrize(
        "owner_id", ["u1", "user_2f9a", "github|12345", "a@b.c", "x" * 255]
    )
    def test_valid_owner_ids(self, owner_id):
        assert validate_owner_id(owner_id) == owner_id

    def test_activity_type_accepts_enum_and_value(self):
        assert validate_activity_type(ActivityType.JOURNAL_ENTRY) is (
            ActivityType.JOURNAL_ENTRY
        )
        assert validate_activity_type("exercise_complete") is (
            ActivityType.EXERCISE_COMPLETE
        )

    @pytest.mark.parametrize("activity_type", ["quiz", "", "Story_Complete", None])
    def test_unknown_activity_type(self, activity_type):
        with pytest.raises(InvalidActivityTypeError, match="Unknown activity type"):
            validate_activity_type(activity_type)

    def test_input_errors_are_value_errors(self):
        assert issubclass(StreakInputError, ValueError)

    async def test_input_errors_raised_before_store_is_touched(self, clock):
        store = AsyncMock()
        tracker = StreakTracker(store, clock=clock, tz=UTC)

        with pytest.raises(InvalidOwnerIdError):
            await tracker.record_activity("bad owner", "story_complete")
        with pytest.raises(InvalidActivityTypeError):
            await tracker.record_activity(OWNER, "quiz")
        with pytest.raises(InvalidOwnerIdError):
            await tracker.get_streak_stats("")

        store.load_record.assert_not_called()
        store.save_record.assert_not_called()


class TestRecordActivity:
    async def test_first_activity_starts_streak(self, tracker, store):
        update = await tracker.record_activity(
            OWNER, ActivityType.STORY_COMPLETE, "s1"
        )

        assert update.current_streak == 1
        assert update.longest_streak == 1
        assert update.is_new_milestone is False
        assert update.milestone is None

        record = await store.load_record(OWNER)
        assert record is not None
        assert record.version == 1
        assert record.last_activity_date == "2024-01-01"
        assert len(record.activity_log) == 1
        entry = record.activity_log[0]
        assert entry.type == ActivityType.STORY_COMPLETE
        assert entry.reference_id == "s1"
        assert entry.timestamp == 1704110400000

    async def test_seventh_day_fires_milestone_once(self, tracker, clock):
        updates = await _record_days(tracker, clock, "2024-01-01", 8)

        assert [u.current_streak for u in updates] == [1, 2, 3, 4, 5, 6, 7, 8]
        assert updates[6].is_new_milestone is True
        assert updates[6].milestone == 7
        assert updates[7].is_new_milestone is False
        assert updates[7].milestone is None
        assert not any(u.is_new_milestone for u in updates[:6])

    async def test_same_day_repeat_is_idempotent(self, tracker, clock, store):
        await _record_days(tracker, clock, "2024-01-01", 7)

        again = await tracker.record_activity(OWNER, "journal_entry")

        assert again.current_streak == 7
        assert again.longest_streak == 7
        assert again.is_new_milestone is False
        record = await store.load_record(OWNER)
        assert len(record.activity_log) == 8

    async def test_yesterday_keeps_streak_alive(self, tracker, clock):
        await _record_days(tracker, clock, "2024-01-01", 3)
        clock.advance()

        update = await tracker.record_activity(OWNER, "story_complete")

        assert update.current_streak == 4

    async def test_broken_streak_is_archived(self, tracker, clock, store):
        await _record_days(tracker, clock, "2024-02-01", 10)
        clock.set_day("2024-02-15")

        update = await tracker.record_activity(OWNER, "exercise_complete")

        assert update.current_streak == 1
        assert update.longest_streak == 10
        record = await store.load_record(OWNER)
        assert record.streak_history == [
            StreakHistoryEntry(
                start_date="2024-02-01", end_date="2024-02-10", length=10
            )
        ]
        assert record.current_streak == 1
        assert record.last_activity_date == "2024-02-15"

    async def test_two_day_gap_archives(self, tracker, clock, store):
        await _record_days(tracker, clock, "2024-03-01", 2)
        clock.set_day("2024-03-04")

        await tracker.record_activity(OWNER, "story_complete")

        history = await tracker.get_streak_history(OWNER)
        assert [(h.start_date, h.end_date, h.length) for h in history] == [
            ("2024-03-01", "2024-03-02", 2)
        ]

    async def test_clock_moved_back_does_not_archive(self, tracker, clock, store):
        await _record_days(tracker, clock, "2024-01-09", 2)
        clock.set_day("2024-01-05")

        await tracker.record_activity(OWNER, "story_complete")

        assert await tracker.get_streak_history(OWNER) == []

        clock.set_day("2024-01-11")
        update = await tracker.record_activity(OWNER, "story_complete")

        assert update.current_streak == 3
        assert update.longest_streak == 3
        record = await store.load_record(OWNER)
        assert record.streak_history == []

    async def test_longest_never_decreases(self, tracker, clock):
        longest_seen = 0
        # 5 days, gap, 3 days, gap, 7 days
        for start, days in (("2024-01-01", 5), ("2024-01-10", 3), ("2024-01-20", 7)):
            for update in await _record_days(tracker, clock, start, days):
                assert update.longest_streak >= longest_seen
                assert update.longest_streak >= update.current_streak
                longest_seen = update.longest_streak

        assert longest_seen == 7
        history = await tracker.get_streak_history(OWNER)
        assert [h.length for h in history] == [5, 3]

    async def test_milestone_fires_again_after_restart(self, tracker, clock):
        await _record_days(tracker, clock, "2024-01-01", 7)

        updates = await _record_days(tracker, clock, "2024-02-01", 7)

        assert updates[-1].is_new_milestone is True
        assert updates[-1].milestone == 7

    async def test_save_failure_propagates(self, clock):
        store = InMemoryStreakRecordStore()
        store.save_record = AsyncMock(side_effect=RuntimeError("disk full"))
        tracker = StreakTracker(store, clock=clock, tz=UTC)

        with pytest.raises(RuntimeError, match="disk full"):
            await tracker.record_activity(OWNER, "story_complete")

        assert await store.load_record(OWNER) is None

    async def test_load_failure_propagates(self, clock):
        store = AsyncMock()
        store.load_record.side_effect = ConnectionError("db down")
        tracker = StreakTracker(store, clock=clock, tz=UTC)

        with pytest.raises(ConnectionError):
            await tracker.record_activity(OWNER, "story_complete")
        store.save_record.assert_not_called()

    async def test_corrupt_record_starts_over(self, tracker, store):
        store._rows[OWNER] = (3, '{"ownerId": "learner-1", "currentStreak": "many"')

        update = await tracker.record_activity(OWNER, "story_complete")

        assert update.current_streak == 1
        record = await store.load_record(OWNER)
        assert record.version == 4
        assert len(record.activity_log) == 1

    async def test_concurrent_change_raises_stale(self, tracker, clock, store):
        await tracker.record_activity(OWNER, "story_complete")
        stale = await store.load_record(OWNER)

        clock.advance()
        await tracker.record_activity(OWNER, "story_complete")

        with pytest.raises(StaleStreakRecordError) as exc_info:
            await store.save_record(stale)
        assert exc_info.value.expected_version == 1

    async def test_lost_race_does_not_overwrite(self, tracker, store):
        await tracker.record_activity(OWNER, "story_complete")
        original_load = store.load_record

        async def load_then_race(owner_id):
            record = await original_load(owner_id)
            # Another writer saves between our load and our save
            await store.save_record(record.model_copy(update={"current_streak": 99}))
            return record

        store.load_record = load_then_race
        with pytest.raises(StaleStreakRecordError):
            await tracker.record_activity(OWNER, "journal_entry")

        record = await original_load(OWNER)
        assert record.current_streak == 99
        assert len(record.activity_log) == 1

    async def test_calendar_day_uses_tracker_timezone(self, store):
        def late_evening_utc():
            return datetime(2024, 1, 1, 23, 30, tzinfo=UTC)

        tracker = StreakTracker(
            store, clock=late_evening_utc, tz=ZoneInfo("Asia/Tokyo")
        )
        await tracker.record_activity(OWNER, "story_complete")

        record = await store.load_record(OWNER)
        assert record.last_activity_date == "2024-01-02"

    async def test_default_clock_is_current_time(self, store):
        tracker = StreakTracker(store, tz=UTC)

        with time_machine.travel(datetime(2025, 7, 4, 9, 0, tzinfo=UTC), tick=False):
            await tracker.record_activity(OWNER, "story_complete")
            assert tracker.today() == "2025-07-04"

        record = await store.load_record(OWNER)
        assert record.last_activity_date == "2025-07-04"


class TestReadViews:
    async def test_unknown_owner_reads_as_empty(self, tracker):
        assert await tracker.get_current_streak(OWNER) == 0
        assert await tracker.get_longest_streak(OWNER) == 0
        assert await tracker.get_streak_history(OWNER) == []
        assert await tracker.get_activity_calendar(OWNER, 2024, 1) == []

        stats = await tracker.get_streak_stats(OWNER)
        assert stats.current_streak == 0
        assert stats.total_learning_days == 0
        assert stats.average_activities_per_day == 0.0
        assert stats.last_activity_date is None

        record = await tracker.get_streak_record(OWNER)
        assert record == StreakRecord.empty(OWNER)

    async def test_current_streak_decays_without_activity(self, tracker, clock):
        await _record_days(tracker, clock, "2024-01-01", 4)

        clock.advance()
        assert await tracker.get_current_streak(OWNER) == 4

        clock.advance()
        assert await tracker.get_current_streak(OWNER) == 0

    async def test_longest_covers_unarchived_broken_streak(self, tracker, clock):
        await _record_days(tracker, clock, "2024-01-01", 5)
        clock.set_day("2024-01-20")

        assert await tracker.get_current_streak(OWNER) == 0
        assert await tracker.get_longest_streak(OWNER) == 5
        assert await tracker.get_streak_history(OWNER) == []

    async def test_stats(self, tracker, clock):
        await _record_days(tracker, clock, "2024-01-01", 3)
        await tracker.record_activity(OWNER, "journal_entry")

        stats = await tracker.get_streak_stats(OWNER)

        assert stats.current_streak == 3
        assert stats.longest_streak == 3
        assert stats.total_learning_days == 3
        assert stats.average_activities_per_day == pytest.approx(4 / 3)
        assert stats.last_activity_date == "2024-01-03"

    async def test_activity_calendar(self, tracker, clock):
        clock.set_day("2024-02-03")
        await tracker.record_activity(OWNER, "journal_entry")
        await tracker.record_activity(OWNER, "story_complete")
        await tracker.record_activity(OWNER, "story_complete")

        days = await tracker.get_activity_calendar(OWNER, 2024, 2)

        assert len(days) == 1
        assert days[0].date == "2024-02-03"
        assert days[0].activity_count == 3
        assert set(days[0].activity_types) == {
            ActivityType.JOURNAL_ENTRY,
            ActivityType.STORY_COMPLETE,
        }
