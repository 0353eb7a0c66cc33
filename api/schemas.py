"""Pydantic schemas for streak records and API request/response validation.

Wire format uses camelCase keys (``currentStreak``, ``lastActivityDate``);
Python code uses the snake_case attribute names.
"""

from typing import Annotated, Self

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from models import ActivityType
from services.calendar_dates import day_difference, parse_calendar_day


def _check_calendar_day(value: str) -> str:
    parse_calendar_day(value)
    return value


CalendarDay = Annotated[str, AfterValidator(_check_calendar_day)]


class CamelModel(BaseModel):
    """Base for every schema that is serialized to JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ActivityLogEntry(CamelModel):
    """One recorded unit of engagement. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    date: CalendarDay
    type: ActivityType
    reference_id: str | None = None
    # Unix epoch milliseconds; ordering and audit only, never streak math
    timestamp: int


class StreakHistoryEntry(CamelModel):
    """A completed (broken) streak, inclusive of both end dates."""

    model_config = ConfigDict(frozen=True)

    start_date: CalendarDay
    end_date: CalendarDay
    length: int = Field(ge=1)

    @model_validator(mode="after")
    def _length_matches_range(self) -> Self:
        if parse_calendar_day(self.start_date) > parse_calendar_day(self.end_date):
            raise ValueError("start_date must not be after end_date")
        expected = day_difference(self.start_date, self.end_date) + 1
        if self.length != expected:
            raise ValueError(
                f"length {self.length} does not match {self.start_date}.."
                f"{self.end_date} ({expected} days)"
            )
        return self


class StreakRecord(CamelModel):
    """Per-owner aggregate root, persisted as a whole."""

    owner_id: str
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_activity_date: CalendarDay | None = None
    activity_log: list[ActivityLogEntry] = Field(default_factory=list)
    streak_history: list[StreakHistoryEntry] = Field(default_factory=list)
    # 0 = never persisted; stores bump it on every save
    version: int = Field(default=0, ge=0)

    @classmethod
    def empty(cls, owner_id: str) -> Self:
        return cls(owner_id=owner_id)


class StreakUpdate(CamelModel):
    """Result of recording an activity."""

    current_streak: int
    longest_streak: int
    is_new_milestone: bool
    milestone: int | None = None


class ActivityDay(CamelModel):
    """Activity summary for one calendar day (calendar view)."""

    date: CalendarDay
    activity_count: int
    activity_types: list[ActivityType]


class StreakStats(CamelModel):
    current_streak: int
    longest_streak: int
    total_learning_days: int
    average_activities_per_day: float
    last_activity_date: CalendarDay | None = None


class CurrentStreakResponse(CamelModel):
    current_streak: int


class LongestStreakResponse(CamelModel):
    longest_streak: int


class RecordActivityRequest(CamelModel):
    """Body of POST /api/streaks/{owner_id}/activity.

    ``activity_type`` is a plain string so unknown values are rejected by the
    service layer with a 400, the same way direct callers see them.
    """

    activity_type: str
    reference_id: str | None = Field(default=None, max_length=100)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
