"""Persistence for per-owner streak records.

A record is always loaded and saved whole. Saves are compare-and-swap on
``version`` so two writers racing on one owner cannot silently drop an update:
the loser gets StaleStreakRecordError and should retry the whole operation.

A stored record that no longer parses is reported as missing (and logged), so
the caller starts that owner over from an empty record.
"""

from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger
from models import StreakRecordRow, utcnow
from schemas import StreakRecord

logger = get_logger(__name__)


class StaleStreakRecordError(Exception):
    """Raised when a record changed between load and save."""

    def __init__(self, owner_id: str, expected_version: int):
        self.owner_id = owner_id
        self.expected_version = expected_version
        super().__init__(
            f"Streak record for {owner_id} changed since version {expected_version}"
        )


class StreakRecordStore(Protocol):
    """What the streak tracker needs from persistence."""

    async def load_record(self, owner_id: str) -> StreakRecord | None: ...

    async def save_record(self, record: StreakRecord) -> StreakRecord: ...


def _record_columns(record: StreakRecord) -> dict[str, Any]:
    data = record.model_dump(mode="json", by_alias=True)
    return {
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "last_activity_date": record.last_activity_date,
        "activity_log": data["activityLog"],
        "streak_history": data["streakHistory"],
    }


class StreakRecordRepository:
    """SQLAlchemy-backed StreakRecordStore (one streak_records row per owner)."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        # owner_id -> version of a row that failed to parse on load
        self._corrupt_versions: dict[str, int] = {}

    async def load_record(self, owner_id: str) -> StreakRecord | None:
        try:
            result = await self.db.execute(
                select(StreakRecordRow)
                .where(StreakRecordRow.owner_id == owner_id)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
        except ValueError as e:
            # JSON columns that are not JSON at all fail while the row is fetched
            version = await self._stored_version(owner_id)
            self._report_corrupt(owner_id, version, str(e))
            return None

        if row is None:
            return None

        try:
            return StreakRecord.model_validate(
                {
                    "owner_id": row.owner_id,
                    "current_streak": row.current_streak,
                    "longest_streak": row.longest_streak,
                    "last_activity_date": row.last_activity_date,
                    "activity_log": row.activity_log,
                    "streak_history": row.streak_history,
                    "version": row.version,
                }
            )
        except ValidationError as e:
            self._report_corrupt(owner_id, row.version, f"{e.error_count()} errors")
            return None

    async def _stored_version(self, owner_id: str) -> int:
        result = await self.db.execute(
            select(StreakRecordRow.version).where(StreakRecordRow.owner_id == owner_id)
        )
        return result.scalar_one()

    def _report_corrupt(self, owner_id: str, version: int, error: str) -> None:
        logger.warning(
            "streak_record.corrupt",
            owner_id=owner_id,
            version=version,
            error=error,
        )
        self._corrupt_versions[owner_id] = version

    async def save_record(self, record: StreakRecord) -> StreakRecord:
        """Insert a new record or update the stored one at ``record.version``.

        Raises:
            StaleStreakRecordError: the stored version is not the one loaded.
        """
        expected = record.version
        if expected == 0 and record.owner_id in self._corrupt_versions:
            # Replace the unreadable row instead of colliding with it
            expected = self._corrupt_versions[record.owner_id]

        columns = _record_columns(record)

        if expected == 0:
            self.db.add(StreakRecordRow(owner_id=record.owner_id, version=1, **columns))
            try:
                await self.db.flush()
            except IntegrityError as e:
                raise StaleStreakRecordError(record.owner_id, expected) from e
        else:
            result = await self.db.execute(
                update(StreakRecordRow)
                .where(
                    StreakRecordRow.owner_id == record.owner_id,
                    StreakRecordRow.version == expected,
                )
                .values(version=expected + 1, updated_at=utcnow(), **columns)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise StaleStreakRecordError(record.owner_id, expected)

        self._corrupt_versions.pop(record.owner_id, None)
        return record.model_copy(update={"version": expected + 1})


class InMemoryStreakRecordStore:
    """Process-local StreakRecordStore holding JSON payloads.

    Used by tests and embedders without a database. Payloads are serialized the
    same way the database stores them, so corrupt-record handling behaves
    identically.
    """

    def __init__(self) -> None:
        # owner_id -> (version, JSON payload)
        self._rows: dict[str, tuple[int, str]] = {}
        self._corrupt_versions: dict[str, int] = {}

    async def load_record(self, owner_id: str) -> StreakRecord | None:
        stored = self._rows.get(owner_id)
        if stored is None:
            return None

        version, payload = stored
        try:
            record = StreakRecord.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(
                "streak_record.corrupt",
                owner_id=owner_id,
                version=version,
                error=f"{e.error_count()} errors",
            )
            self._corrupt_versions[owner_id] = version
            return None
        return record.model_copy(update={"version": version})

    async def save_record(self, record: StreakRecord) -> StreakRecord:
        expected = record.version
        if expected == 0 and record.owner_id in self._corrupt_versions:
            expected = self._corrupt_versions[record.owner_id]

        current_version = self._rows.get(record.owner_id, (0, ""))[0]
        if current_version != expected:
            raise StaleStreakRecordError(record.owner_id, expected)

        saved = record.model_copy(update={"version": expected + 1})
        self._rows[record.owner_id] = (
            saved.version,
            saved.model_dump_json(by_alias=True),
        )
        self._corrupt_versions.pop(record.owner_id, None)
        return saved
