"""
LeaderboardQueryService: ranked reads over course ledgers.

Purpose
-------
Serve leaderboard pages, a learner's rank, and a learner's full statistics.

Rank definition
---------------
Every read reports the competition rank, `count(strictly greater
overall_score) + 1`, computed at read time. It agrees with what a rank sweep
persists, so readers never depend on sweep freshness. Page entries also
carry `position`, their 1-based place in the full deterministic ordering.

Lazy creation
-------------
`get_user_rank` and `get_user_stats` create a zeroed ledger on first read,
which requires the course to exist in the catalog.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from courseboard.core.database.service import DatabaseService
from courseboard.core.logging.logger import get_logger
from courseboard.core.validation.input_validator import InputValidator
from courseboard.domain.models.ledger import ScoreLedger
from courseboard.modules.leaderboard.rank_engine import compute_percentile
from courseboard.modules.shared.base_service import BaseService
from courseboard.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from courseboard.core.config.manager import ConfigManager
    from courseboard.core.event.bus import EventBus
    from courseboard.database.models.ledger_entry import CourseLedgerEntry
    from courseboard.modules.catalog.interfaces import CourseCatalog
    from courseboard.modules.leaderboard.repository import LedgerStore


def _timestamp(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


class LeaderboardQueryService(BaseService):
    def __init__(
        self,
        store: LedgerStore,
        catalog: CourseCatalog,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._store = store
        self._catalog = catalog

    # ========================================================================
    # LEADERBOARD PAGE
    # ========================================================================

    async def get_leaderboard_page(
        self,
        course_id: str,
        page: Any = 1,
        limit: Any = None,
    ) -> Dict[str, Any]:
        """
        One page of a course leaderboard, best first.

        Returns
        -------
        Dict[str, Any]
            `{course_id, leaderboard, total_learners, current_page, total_pages}`.
        """
        course_id = InputValidator.validate_string(course_id, "course_id", max_length=64)
        page = InputValidator.validate_positive_integer(page, "page")
        max_limit = int(self.get_number_config("leaderboard.pagination.max_limit", 100))
        if limit is None:
            limit = int(self.get_number_config("leaderboard.pagination.default_limit", 50))
        limit = InputValidator.validate_positive_integer(limit, "limit", max_value=max_limit)

        offset = (page - 1) * limit
        async with DatabaseService.get_session() as session:
            total = await self._store.count_for_course(session, course_id)
            rows = await self._store.find_page(session, course_id, offset=offset, limit=limit)

            entries: List[Dict[str, Any]] = []
            rank = 0
            previous_score: Optional[float] = None
            for index, row in enumerate(rows):
                position = offset + index + 1
                if previous_score is None:
                    # Earlier pages may hold ties with this row.
                    rank = (
                        await self._store.count_scoring_above(session, course_id, row.overall_score)
                        + 1
                    )
                elif row.overall_score < previous_score:
                    rank = position
                previous_score = row.overall_score
                entries.append(self._page_entry(row, position, rank, total))

        self.log.debug(
            "Leaderboard page served",
            extra={"course_id": course_id, "page": page, "limit": limit, "returned": len(entries)},
        )
        return {
            "course_id": course_id,
            "leaderboard": entries,
            "total_learners": total,
            "current_page": page,
            "total_pages": math.ceil(total / limit),
        }

    @staticmethod
    def _page_entry(
        row: CourseLedgerEntry, position: int, rank: int, total: int
    ) -> Dict[str, Any]:
        return {
            "position": position,
            "rank": rank,
            "percentile": compute_percentile(rank, total),
            "learner_id": row.learner_id,
            "overall_score": row.overall_score,
            "total_lesson_score": row.total_lesson_score,
            "total_module_test_score": row.total_module_test_score,
            "total_final_exam_score": row.total_final_exam_score,
            "total_skill_test_final_exam_score": row.total_skill_test_final_exam_score,
            "lessons_completed": row.lessons_completed,
            "module_tests_completed": row.module_tests_completed,
            "final_exam_completed": row.final_exam_completed,
            "skill_test_final_exams_completed": row.skill_test_final_exams_completed,
            "average_score": row.average_score,
            "last_updated": _timestamp(row.last_updated),
        }

    # ========================================================================
    # PER-LEARNER READS
    # ========================================================================

    async def get_user_rank(self, learner_id: str, course_id: str) -> Dict[str, Any]:
        """`{learner_id, course_id, rank, total_learners, percentile, score}`."""
        learner_id, course_id = await self._validate_learner_course(learner_id, course_id)

        async with DatabaseService.get_transaction() as session:
            row = await self._store.get_or_create(session, learner_id, course_id)
            rank, total = await self._live_rank(session, course_id, row.overall_score)

        return {
            "learner_id": learner_id,
            "course_id": course_id,
            "rank": rank,
            "total_learners": total,
            "percentile": compute_percentile(rank, total),
            "score": row.overall_score,
        }

    async def get_user_stats(self, learner_id: str, course_id: str) -> Dict[str, Any]:
        """Full score breakdown, strongest area, progress counters and live rank."""
        learner_id, course_id = await self._validate_learner_course(learner_id, course_id)

        async with DatabaseService.get_transaction() as session:
            row = await self._store.get_or_create(session, learner_id, course_id)
            ledger = ScoreLedger.from_db(row)
            rank, total = await self._live_rank(session, course_id, ledger.overall_score)

        return {
            "learner_id": learner_id,
            "course_id": course_id,
            "overall_score": ledger.overall_score,
            "breakdown": ledger.breakdown(),
            "performance": {
                "strongest_area": ledger.strongest_area,
                "total_mcq_score": ledger.total_mcq_score,
                "total_coding_score": ledger.total_coding_score,
                "average_score": ledger.average_score,
            },
            "progress": ledger.progress(),
            "rank": rank,
            "percentile": compute_percentile(rank, total),
            "last_updated": _timestamp(ledger.last_updated),
        }

    async def _validate_learner_course(self, learner_id: str, course_id: str) -> tuple[str, str]:
        learner_id = InputValidator.validate_string(learner_id, "learner_id", max_length=64)
        course_id = InputValidator.validate_string(course_id, "course_id", max_length=64)
        if await self._catalog.get_course(course_id) is None:
            raise NotFoundError("Course", course_id)
        return learner_id, course_id

    async def _live_rank(
        self, session: AsyncSession, course_id: str, overall_score: float
    ) -> tuple[int, int]:
        above = await self._store.count_scoring_above(session, course_id, overall_score)
        total = await self._store.count_for_course(session, course_id)
        return above + 1, total
