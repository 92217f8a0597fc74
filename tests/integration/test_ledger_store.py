"""
Integration tests for LedgerStore against a real database.

Test Coverage
-------------
- Create-if-absent, including concurrent creation of the same key
- Course-scoped reads in ranking order
- Write-back and optimistic version checks
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from courseboard.core.database.service import DatabaseService
from courseboard.database.models.ledger_entry import CourseLedgerEntry
from courseboard.domain.models.ledger import LedgerKey, ScoreLedger

pytestmark = [pytest.mark.integration, pytest.mark.database]

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


async def seed(store, learner_id, course_id, lessons=(), updated=T0):
    """Create an entry and fold `lessons` ((mcq, coding) pairs) into it."""
    async with DatabaseService.get_transaction() as session:
        row = await store.get_or_create(session, learner_id, course_id)
        ledger = ScoreLedger.from_db(row)
        for index, (mcq, coding) in enumerate(lessons):
            ledger.record_lesson("t1", f"le{index}", mcq, coding, 100, now=updated)
        await store.save(session, row, ledger)


class TestGetOrCreate:
    async def test_creates_zeroed_entry(self, database, ledger_store):
        # Act
        async with DatabaseService.get_transaction() as session:
            row = await ledger_store.get_or_create(session, "learner-1", "course-1")

        # Assert
        assert row.id is not None
        assert row.overall_score == 0
        assert row.lessons_completed == 0
        assert row.lesson_records == []
        assert row.rank is None
        assert row.version == 1

    async def test_returns_existing_entry(self, database, ledger_store):
        async with DatabaseService.get_transaction() as session:
            first = await ledger_store.get_or_create(session, "learner-1", "course-1")
        async with DatabaseService.get_transaction() as session:
            second = await ledger_store.get_or_create(session, "learner-1", "course-1")

        assert first.id == second.id

    async def test_concurrent_creation_yields_one_entry(self, database, ledger_store):
        # Arrange
        async def create():
            async with DatabaseService.get_transaction() as session:
                row = await ledger_store.get_or_create(session, "learner-1", "course-1")
                return row.id

        # Act
        ids = await asyncio.gather(*(create() for _ in range(8)))

        # Assert
        assert len(set(ids)) == 1
        async with DatabaseService.get_session() as session:
            assert await ledger_store.count_for_course(session, "course-1") == 1

    async def test_find_missing_returns_none(self, database, ledger_store):
        async with DatabaseService.get_session() as session:
            assert await ledger_store.find(session, "nobody", "course-1") is None


class TestCourseReads:
    async def test_find_all_for_course_in_ranking_order(self, database, ledger_store):
        # Arrange
        await seed(ledger_store, "low", "course-1", [(10, 0)])
        await seed(ledger_store, "high", "course-1", [(50, 40)])
        await seed(ledger_store, "tie-later", "course-1", [(20, 0)], updated=T0 + timedelta(hours=1))
        await seed(ledger_store, "tie-earlier", "course-1", [(15, 5)], updated=T0)
        await seed(ledger_store, "elsewhere", "course-2", [(99, 0)])

        # Act
        async with DatabaseService.get_session() as session:
            rows = await ledger_store.find_all_for_course(session, "course-1")

        # Assert
        assert [row.learner_id for row in rows] == ["high", "tie-earlier", "tie-later", "low"]

    async def test_page_and_counts(self, database, ledger_store):
        for index, score in enumerate([30, 20, 20, 10]):
            await seed(ledger_store, f"learner-{index}", "course-1", [(score, 0)])

        async with DatabaseService.get_session() as session:
            page = await ledger_store.find_page(session, "course-1", offset=2, limit=2)
            above_twenty = await ledger_store.count_scoring_above(session, "course-1", 20)
            total = await ledger_store.count_for_course(session, "course-1")

        assert [row.overall_score for row in page] == [20, 10]
        assert above_twenty == 1
        assert total == 4


class TestSave:
    async def test_save_persists_ledger_state(self, database, ledger_store):
        # Arrange & Act
        async with DatabaseService.get_transaction() as session:
            row = await ledger_store.get_or_create(session, "learner-1", "course-1")
            ledger = ScoreLedger.from_db(row)
            ledger.record_lesson("t1", "le1", 10, 5, 20)
            ledger.record_module_test("t1", 15, 10, 30)
            await ledger_store.save(session, row, ledger)

        # Assert
        async with DatabaseService.get_session() as session:
            stored = await ledger_store.find(session, "learner-1", "course-1")

        assert stored.total_lesson_score == 15
        assert stored.total_module_test_score == 25
        assert stored.overall_score == 40
        assert stored.lessons_completed == 1
        assert stored.module_tests_completed == 1
        assert stored.version == 2
        assert ScoreLedger.from_db(stored).overall_score == 40

    async def test_save_rejects_foreign_ledger(self, database, ledger_store):
        async with DatabaseService.get_transaction() as session:
            row = await ledger_store.get_or_create(session, "learner-1", "course-1")
            other = ScoreLedger.new(LedgerKey("learner-2", "course-1"))

            with pytest.raises(ValueError):
                await ledger_store.save(session, row, other)

    async def test_concurrent_version_bump_raises_stale_data(self, database, ledger_store):
        # Arrange
        async with DatabaseService.get_transaction() as session:
            await ledger_store.get_or_create(session, "learner-1", "course-1")

        # Act & Assert
        with pytest.raises(StaleDataError):
            async with DatabaseService.get_transaction() as session:
                row = await ledger_store.find(session, "learner-1", "course-1")
                ledger = ScoreLedger.from_db(row)
                ledger.record_lesson("t1", "le1", 1, 0, 5)
                # Another writer commits first.
                await session.execute(
                    update(CourseLedgerEntry.__table__)
                    .where(CourseLedgerEntry.__table__.c.id == row.id)
                    .values(version=row.version + 1)
                )
                await ledger_store.save(session, row, ledger)

        async with DatabaseService.get_session() as session:
            stored = await ledger_store.find(session, "learner-1", "course-1")
        assert stored.lessons_completed == 0
