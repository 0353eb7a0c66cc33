"""Service layer for streak business logic.

Layer hierarchy:
    Routes (HTTP) -> StreakTracker (orchestration) -> StreakRecordStore (persistence)

The calculation modules (calendar_dates, streaks_service,
streak_history_service, activity_calendar_service) are pure functions:
they take "today" as an argument, never read the clock, and never mutate
their inputs. Only streak_tracker_service talks to a store.
"""
