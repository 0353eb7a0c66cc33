"""Streak tracking endpoints.

The owner is taken from the path; authenticating that the caller may act for
that owner is the job of the gateway in front of this service.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette import status

from core import bind_contextvars, get_logger, set_wide_event_fields
from core.config import get_settings
from core.database import DbSession
from core.ratelimit import READ_LIMIT, WRITE_LIMIT, limiter
from core.wide_event import set_wide_event_nested
from repositories.streak_record_repository import (
    StaleStreakRecordError,
    StreakRecordRepository,
)
from schemas import (
    ActivityDay,
    CurrentStreakResponse,
    LongestStreakResponse,
    RecordActivityRequest,
    StreakHistoryEntry,
    StreakRecord,
    StreakStats,
    StreakUpdate,
)
from services.streak_tracker_service import StreakInputError, StreakTracker

logger = get_logger(__name__)

router = APIRouter(prefix="/api/streaks", tags=["streaks"])


def get_streak_tracker(db: DbSession) -> StreakTracker:
    return StreakTracker(
        StreakRecordRepository(db), tz=get_settings().streak_zoneinfo
    )


Tracker = Annotated[StreakTracker, Depends(get_streak_tracker)]

_INPUT_ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"description": "Invalid owner id or activity type"},
}


def _bad_request(e: StreakInputError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post(
    "/{owner_id}/activity",
    response_model=StreakUpdate,
    responses={
        **_INPUT_ERROR_RESPONSES,
        409: {"description": "Record changed concurrently; retry the request"},
    },
)
@limiter.limit(WRITE_LIMIT)
async def record_activity(
    request: Request,
    owner_id: str,
    body: RecordActivityRequest,
    tracker: Tracker,
) -> StreakUpdate:
    """Record a learning activity for today and return the updated streak."""
    bind_contextvars(owner_id=owner_id)
    set_wide_event_fields(owner_id=owner_id, activity_type=body.activity_type)

    try:
        update = await tracker.record_activity(
            owner_id, body.activity_type, body.reference_id
        )
    except StreakInputError as e:
        raise _bad_request(e) from e
    except StaleStreakRecordError as e:
        logger.warning("streak.record.conflict", owner_id=owner_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(e)
        ) from e

    set_wide_event_nested(
        "streak",
        current=update.current_streak,
        longest=update.longest_streak,
        milestone=update.milestone,
    )
    return update


@router.get(
    "/{owner_id}", response_model=StreakStats, responses=_INPUT_ERROR_RESPONSES
)
@limiter.limit(READ_LIMIT)
async def get_streak_stats(
    request: Request, owner_id: str, tracker: Tracker
) -> StreakStats:
    """Current and longest streak, total learning days and daily average."""
    try:
        stats = await tracker.get_streak_stats(owner_id)
    except StreakInputError as e:
        raise _bad_request(e) from e

    set_wide_event_fields(current_streak=stats.current_streak)
    return stats


@router.get(
    "/{owner_id}/current",
    response_model=CurrentStreakResponse,
    responses=_INPUT_ERROR_RESPONSES,
)
@limiter.limit(READ_LIMIT)
async def get_current_streak(
    request: Request, owner_id: str, tracker: Tracker
) -> CurrentStreakResponse:
    try:
        current = await tracker.get_current_streak(owner_id)
    except StreakInputError as e:
        raise _bad_request(e) from e
    return CurrentStreakResponse(current_streak=current)


@router.get(
    "/{owner_id}/longest",
    response_model=LongestStreakResponse,
    responses=_INPUT_ERROR_RESPONSES,
)
@limiter.limit(READ_LIMIT)
async def get_longest_streak(
    request: Request, owner_id: str, tracker: Tracker
) -> LongestStreakResponse:
    try:
        longest = await tracker.get_longest_streak(owner_id)
    except StreakInputError as e:
        raise _bad_request(e) from e
    return LongestStreakResponse(longest_streak=longest)


@router.get(
    "/{owner_id}/history",
    response_model=list[StreakHistoryEntry],
    responses=_INPUT_ERROR_RESPONSES,
)
@limiter.limit(READ_LIMIT)
async def get_streak_history(
    request: Request, owner_id: str, tracker: Tracker
) -> list[StreakHistoryEntry]:
    """Past streaks that have been broken, oldest first."""
    try:
        return await tracker.get_streak_history(owner_id)
    except StreakInputError as e:
        raise _bad_request(e) from e


@router.get(
    "/{owner_id}/calendar",
    response_model=list[ActivityDay],
    responses=_INPUT_ERROR_RESPONSES,
)
@limiter.limit(READ_LIMIT)
async def get_activity_calendar(
    request: Request,
    owner_id: str,
    tracker: Tracker,
    year: Annotated[int, Query(ge=1, le=9999)],
    month: Annotated[int, Query(ge=1, le=12)],
) -> list[ActivityDay]:
    """Days with activity in one month; days without activity are omitted."""
    try:
        return await tracker.get_activity_calendar(owner_id, year, month)
    except StreakInputError as e:
        raise _bad_request(e) from e


@router.get(
    "/{owner_id}/record",
    response_model=StreakRecord,
    responses=_INPUT_ERROR_RESPONSES,
)
@limiter.limit(READ_LIMIT)
async def get_streak_record(
    request: Request, owner_id: str, tracker: Tracker
) -> StreakRecord:
    """Full stored record, including the raw activity log (admin/debug)."""
    try:
        return await tracker.get_streak_record(owner_id)
    except StreakInputError as e:
        raise _bad_request(e) from e
