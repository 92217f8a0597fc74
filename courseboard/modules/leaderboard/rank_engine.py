"""
RankEngine: recompute rank and percentile for every ledger in a course.

Purpose
-------
A rank sweep loads all entries of one course, orders them, assigns
competition ranks and percentiles, and persists the changed ones.

Ordering
--------
Descending by `overall_score`, then more `lessons_completed`, then more
`module_tests_completed`, then earlier `last_updated`. Only `overall_score`
decides the rank VALUE: equal scores share a rank and the next distinct
score jumps to its 1-based position (1, 1, 3). The other fields only
decide the order of tied entries.

Percentile
----------
`round((N - rank + 1) / N * 100)` with half-up rounding; 100 when N = 0.
Non-increasing as rank grows and always within [0, 100].

Events
------
- leaderboard.ranks_swept: {course_id, total_learners, changed}
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from courseboard.core.concurrency.keyed_lock import KeyedLock
from courseboard.core.config.config import Config
from courseboard.core.database.retry_policy import DatabaseRetryPolicy
from courseboard.core.database.service import DatabaseService
from courseboard.core.logging.logger import LogContext, get_logger
from courseboard.core.redis.service import RedisService
from courseboard.core.validation.input_validator import InputValidator
from courseboard.domain.models.ledger import ScoreLedger
from courseboard.modules.shared.base_service import BaseService
from courseboard.modules.shared.exceptions import ConcurrencyConflictError

if TYPE_CHECKING:
    from logging import Logger

    from courseboard.core.config.manager import ConfigManager
    from courseboard.core.event.bus import EventBus
    from courseboard.database.models.ledger_entry import CourseLedgerEntry
    from courseboard.modules.leaderboard.repository import LedgerStore

RANKS_SWEPT_EVENT = "leaderboard.ranks_swept"


# ============================================================================
# PURE RANKING FUNCTIONS
# ============================================================================


def compute_percentile(rank: int, total: int) -> int:
    """
    Percentile for a 1-based rank among `total` learners.

    >>> compute_percentile(1, 1)
    100
    >>> compute_percentile(3, 4)
    50
    """
    if total <= 0:
        return 100
    value = math.floor((total - rank + 1) / total * 100 + 0.5)
    return max(0, min(100, value))


def competition_ranks(scores: Sequence[float]) -> List[int]:
    """
    Ranks for scores already sorted in descending order.

    >>> competition_ranks([90, 80, 80, 70])
    [1, 2, 2, 4]
    """
    ranks: List[int] = []
    previous: Optional[float] = None
    current = 1
    for position, score in enumerate(scores, start=1):
        if previous is not None and score < previous:
            current = position
        ranks.append(current)
        previous = score
    return ranks


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def ranking_sort_key(entry: CourseLedgerEntry) -> tuple:
    return (
        -entry.overall_score,
        -entry.lessons_completed,
        -entry.module_tests_completed,
        _as_utc(entry.last_updated),
        entry.id or 0,
    )


@dataclass(frozen=True)
class RankedEntry:
    learner_id: str
    overall_score: float
    rank: int
    percentile: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "rank": self.rank,
            "percentile": self.percentile,
            "overall_score": self.overall_score,
        }


def rank_entries(entries: Sequence[CourseLedgerEntry]) -> List[RankedEntry]:
    """Order a course's entries and assign rank and percentile to each."""
    ordered = sorted(entries, key=ranking_sort_key)
    ranks = competition_ranks([entry.overall_score for entry in ordered])
    total = len(ordered)
    return [
        RankedEntry(
            learner_id=entry.learner_id,
            overall_score=entry.overall_score,
            rank=rank,
            percentile=compute_percentile(rank, total),
        )
        for entry, rank in zip(ordered, ranks)
    ]


# ============================================================================
# SERVICE
# ============================================================================


class RankEngine(BaseService):
    """
    Runs rank sweeps.

    Sweeps for one course never overlap inside a process. When
    `leaderboard.sweep.distributed_lock` is on and Redis is available they
    are also serialized across processes.
    """

    def __init__(
        self,
        store: LedgerStore,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._store = store
        self._retry = retry_policy or DatabaseRetryPolicy.from_config(config_manager)
        self._course_locks = KeyedLock("rank_sweep")

    async def sweep(self, course_id: str) -> List[RankedEntry]:
        """
        Recompute and persist rank and percentile for every entry of a course.

        Raises
        ------
        ConcurrencyConflictError
            If concurrent ledger writes kept invalidating the sweep.
        TimeoutError
            If the distributed sweep lock could not be acquired.
        """
        async with LogContext(
            course_id=course_id, component="leaderboard", operation="rank_sweep"
        ):
            async with self._course_locks.hold(course_id):
                if not self._use_distributed_lock():
                    return await self._sweep_with_retry(course_id)

                lock_timeout = self.get_number_config("leaderboard.sweep.lock_timeout_seconds", 30)
                lock_wait = self.get_number_config("leaderboard.sweep.lock_wait_seconds", 10)
                async with RedisService.acquire_lock(
                    f"leaderboard:sweep:{course_id}",
                    timeout=int(lock_timeout),
                    wait_timeout=lock_wait,
                ):
                    return await self._sweep_with_retry(course_id)

    async def force_resweep(self, course_id: str) -> List[Dict[str, Any]]:
        """Administrative: sweep a course now, bypassing the scheduler."""
        course_id = InputValidator.validate_string(course_id, "course_id", max_length=64)
        self.log.info("Forced rank sweep requested", extra={"course_id": course_id})
        ranked = await self.sweep(course_id)
        return [entry.to_dict() for entry in ranked]

    def _use_distributed_lock(self) -> bool:
        enabled = bool(self.get_config("leaderboard.sweep.distributed_lock", False))
        return enabled and Config.REDIS_ENABLED and RedisService.is_initialized()

    async def _sweep_with_retry(self, course_id: str) -> List[RankedEntry]:
        try:
            ranked, changed = await self._retry.execute(
                lambda: self._sweep_once(course_id),
                operation_name="leaderboard.rank_sweep",
                context={"course_id": course_id},
            )
        except (StaleDataError, IntegrityError) as exc:
            raise ConcurrencyConflictError("rank_sweep", self._retry.config.max_attempts) from exc

        self.log.info(
            "Rank sweep complete",
            extra={"course_id": course_id, "total_learners": len(ranked), "changed": changed},
        )
        await self.emit_event(
            RANKS_SWEPT_EVENT,
            {"course_id": course_id, "total_learners": len(ranked), "changed": changed},
        )
        return ranked

    async def _sweep_once(self, course_id: str) -> tuple[List[RankedEntry], int]:
        async with DatabaseService.get_transaction() as session:
            rows = await self._store.find_all_for_course(session, course_id)
            ranked = rank_entries(rows)
            by_learner = {row.learner_id: row for row in rows}

            changed = 0
            for entry in ranked:
                row = by_learner[entry.learner_id]
                ledger = ScoreLedger.from_db(row)
                if ledger.apply_rank(entry.rank, entry.percentile):
                    row.rank = ledger.rank
                    row.percentile = ledger.percentile
                    changed += 1

            if changed:
                await self._store.flush(session)

        return ranked, changed
