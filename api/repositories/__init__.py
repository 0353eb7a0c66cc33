"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services free of SQL.
Services depend on the StreakRecordStore protocol, so the SQL repository and
the in-memory store are interchangeable.
"""

from repositories.streak_record_repository import (
    InMemoryStreakRecordStore,
    StaleStreakRecordError,
    StreakRecordRepository,
    StreakRecordStore,
)

__all__ = [
    "InMemoryStreakRecordStore",
    "StaleStreakRecordError",
    "StreakRecordRepository",
    "StreakRecordStore",
]
