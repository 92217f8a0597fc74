"""
LedgerStore: persistence for course ledger entries.

Purpose
-------
Create-if-absent, point reads, course-wide reads and write-back for
`CourseLedgerEntry` rows, enforcing one row per (learner, course) even
when two requests race to create it.

Responsibilities
----------------
- `get_or_create` via the dialect's INSERT ... ON CONFLICT DO NOTHING
  (PostgreSQL, SQLite), or a savepoint + IntegrityError catch elsewhere
- Ranking-ordered reads for sweeps and leaderboard pages
- Copy a `ScoreLedger`'s state onto its row (`save`)

Non-Responsibilities
--------------------
- Transactions (callers use `DatabaseService.get_transaction()`)
- Aggregation and ranking rules (domain model and RankEngine)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from courseboard.core.logging.logger import get_logger
from courseboard.database.models.ledger_entry import CourseLedgerEntry
from courseboard.domain.models.ledger import LedgerKey, ScoreLedger
from courseboard.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


# Score desc, then more lessons, then more module tests, then earlier update.
RANKING_ORDER = (
    CourseLedgerEntry.overall_score.desc(),
    CourseLedgerEntry.lessons_completed.desc(),
    CourseLedgerEntry.module_tests_completed.desc(),
    CourseLedgerEntry.last_updated.asc(),
    CourseLedgerEntry.id.asc(),
)


class LedgerStore(BaseRepository[CourseLedgerEntry]):
    """Repository for `CourseLedgerEntry` keyed by (learner_id, course_id)."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(CourseLedgerEntry, logger or get_logger(__name__))

    # ========================================================================
    # POINT ACCESS
    # ========================================================================

    async def find(
        self,
        session: AsyncSession,
        learner_id: str,
        course_id: str,
        for_update: bool = False,
    ) -> Optional[CourseLedgerEntry]:
        return await self.find_one_where(
            session,
            CourseLedgerEntry.learner_id == learner_id,
            CourseLedgerEntry.course_id == course_id,
            for_update=for_update,
        )

    async def get_or_create(
        self,
        session: AsyncSession,
        learner_id: str,
        course_id: str,
        for_update: bool = False,
    ) -> CourseLedgerEntry:
        """
        Return the entry for (learner, course), creating a zeroed one if absent.

        Concurrent callers for the same key all receive the single row.
        """
        row = await self.find(session, learner_id, course_id, for_update=for_update)
        if row is not None:
            return row

        created = await self._insert_if_absent(session, learner_id, course_id)

        row = await self.find(session, learner_id, course_id, for_update=for_update)
        if row is None:
            # Only reachable if the row was deleted between insert and read.
            raise LookupError(
                f"Ledger entry for learner={learner_id} course={course_id} vanished after insert"
            )

        self.log.info(
            "Ledger entry created" if created else "Ledger entry created concurrently",
            extra={"learner_id": learner_id, "course_id": course_id, "entry_id": row.id},
        )
        return row

    async def _insert_if_absent(
        self, session: AsyncSession, learner_id: str, course_id: str
    ) -> bool:
        """Insert a zeroed row unless one exists. True if this call inserted it."""
        ledger = ScoreLedger.new(LedgerKey(learner_id, course_id))
        values = {
            **ledger.to_db_updates(),
            "learner_id": learner_id,
            "course_id": course_id,
            "version": 1,
        }

        dialect = session.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = (
                insert_fn(CourseLedgerEntry.__table__)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["learner_id", "course_id"])
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

        try:
            async with session.begin_nested():
                session.add(CourseLedgerEntry(**values))
            return True
        except IntegrityError:
            self.log.debug(
                "Ledger insert lost a race; using existing row",
                extra={"learner_id": learner_id, "course_id": course_id},
            )
            return False

    # ========================================================================
    # COURSE-WIDE ACCESS
    # ========================================================================

    async def find_all_for_course(
        self,
        session: AsyncSession,
        course_id: str,
        for_update: bool = False,
    ) -> List[CourseLedgerEntry]:
        """All entries of a course in ranking order."""
        return await self.find_many_where(
            session,
            CourseLedgerEntry.course_id == course_id,
            order_by=RANKING_ORDER,
            for_update=for_update,
        )

    async def find_page(
        self,
        session: AsyncSession,
        course_id: str,
        offset: int,
        limit: int,
    ) -> List[CourseLedgerEntry]:
        return await self.find_many_where(
            session,
            CourseLedgerEntry.course_id == course_id,
            order_by=RANKING_ORDER,
            offset=offset,
            limit=limit,
        )

    async def count_for_course(self, session: AsyncSession, course_id: str) -> int:
        return await self.count(session, CourseLedgerEntry.course_id == course_id)

    async def count_scoring_above(
        self, session: AsyncSession, course_id: str, overall_score: float
    ) -> int:
        """Entries in the course with a strictly greater overall score."""
        return await self.count(
            session,
            CourseLedgerEntry.course_id == course_id,
            CourseLedgerEntry.overall_score > overall_score,
        )

    # ========================================================================
    # WRITE-BACK
    # ========================================================================

    async def save(
        self, session: AsyncSession, row: CourseLedgerEntry, ledger: ScoreLedger
    ) -> CourseLedgerEntry:
        """
        Copy the ledger's state onto its row and flush.

        Raises
        ------
        sqlalchemy.orm.exc.StaleDataError
            If another transaction updated the row since it was loaded.
        """
        if (row.learner_id, row.course_id) != (ledger.learner_id, ledger.course_id):
            raise ValueError("Ledger does not belong to this row")

        for column, value in ledger.to_db_updates().items():
            setattr(row, column, value)

        await self.flush(session)
        self.log.debug(
            "Ledger entry saved",
            extra={
                "learner_id": row.learner_id,
                "course_id": row.course_id,
                "overall_score": row.overall_score,
                "version": row.version,
            },
        )
        return row
