"""SQLAlchemy models for learning-streak persistence."""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ActivityType(str, PyEnum):
    """Type of learning activity that counts toward a streak."""

    STORY_COMPLETE = "story_complete"
    EXERCISE_COMPLETE = "exercise_complete"
    JOURNAL_ENTRY = "journal_entry"


class StreakRecordRow(TimestampMixin, Base):
    """One streak record per owner, stored as a single row.

    The activity log and streak history are embedded JSON arrays so a record
    is always read and written as a whole (load-modify-store). ``version``
    backs compare-and-swap updates.
    """

    __tablename__ = "streak_records"

    owner_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    activity_log: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    streak_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
