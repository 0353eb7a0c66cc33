#!/usr/bin/env python3
"""CLI for Learning Streaks API management tasks.

Usage:
    python -m cli <command>

Commands:
    migrate                             Run database migrations
    stats <owner_id>                    Print streak statistics as JSON
    record <owner_id> <activity_type>   Record an activity and print the update
"""

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from core import get_logger
from core.config import get_settings
from core.database import create_engine, create_session_maker, dispose_engine
from core.logger import configure_logging
from models import ActivityType
from repositories.streak_record_repository import StreakRecordRepository
from services.streak_tracker_service import StreakInputError, StreakTracker

logger = get_logger(__name__)

T = TypeVar("T")


async def _run_with_tracker(action: Callable[[StreakTracker], Awaitable[T]]) -> T:
    """Run ``action`` against the configured database in one transaction."""
    engine = create_engine()
    session_maker = create_session_maker(engine)
    try:
        async with session_maker() as session:
            tracker = StreakTracker(
                StreakRecordRepository(session),
                tz=get_settings().streak_zoneinfo,
            )
            result = await action(tracker)
            await session.commit()
            return result
    finally:
        await dispose_engine(engine)


def _print_model(model: BaseModel) -> None:
    print(model.model_dump_json(by_alias=True, indent=2))


def cmd_migrate() -> int:
    """Run database migrations."""
    from alembic import command
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_dir / "alembic"))

    logger.info("migrations.starting")
    command.upgrade(cfg, "head")
    logger.info("migrations.complete")
    return 0


def cmd_stats(owner_id: str) -> int:
    try:
        stats = asyncio.run(
            _run_with_tracker(lambda tracker: tracker.get_streak_stats(owner_id))
        )
    except StreakInputError as e:
        logger.error("cli.invalid_input", error=str(e))
        return 2
    _print_model(stats)
    return 0


def cmd_record(owner_id: str, activity_type: str, reference_id: str | None) -> int:
    try:
        update = asyncio.run(
            _run_with_tracker(
                lambda tracker: tracker.record_activity(
                    owner_id, activity_type, reference_id
                )
            )
        )
    except StreakInputError as e:
        logger.error("cli.invalid_input", error=str(e))
        return 2
    _print_model(update)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Learning Streaks API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("migrate", help="Run database migrations")

    stats = subparsers.add_parser("stats", help="Print streak statistics for an owner")
    stats.add_argument("owner_id")

    record = subparsers.add_parser("record", help="Record a learning activity")
    record.add_argument("owner_id")
    record.add_argument(
        "activity_type", choices=[activity.value for activity in ActivityType]
    )
    record.add_argument("--reference-id", default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "migrate":
        return cmd_migrate()
    elif args.command == "stats":
        return cmd_stats(args.owner_id)
    elif args.command == "record":
        return cmd_record(args.owner_id, args.activity_type, args.reference_id)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
