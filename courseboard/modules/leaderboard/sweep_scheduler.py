"""
RankSweepScheduler: debounce and coalesce rank sweeps per course.

Score submissions never sweep inline. Each `leaderboard.score_recorded`
event asks for a sweep of its course; requests arriving while one is
already waiting out the debounce window are merged into it, and a request
arriving mid-sweep schedules exactly one follow-up sweep. Ranks are
therefore stale for at most one window plus one sweep.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from courseboard.core.event.types import EventPayload, ListenerPriority
from courseboard.core.logging.logger import get_logger
from courseboard.domain.models.ledger import SCORE_RECORDED_EVENT

if TYPE_CHECKING:
    from logging import Logger

    from courseboard.core.config.manager import ConfigManager
    from courseboard.core.event.bus import EventBus
    from courseboard.modules.leaderboard.rank_engine import RankEngine

LISTENER_ID = "leaderboard.rank_sweep_scheduler"


class RankSweepScheduler:
    def __init__(
        self,
        rank_engine: RankEngine,
        config_manager: ConfigManager,
        logger: Optional[Logger] = None,
        debounce_seconds: Optional[float] = None,
    ) -> None:
        self._engine = rank_engine
        self.log = logger or get_logger(__name__)
        if debounce_seconds is None:
            debounce_seconds = float(config_manager.get("leaderboard.sweep.debounce_seconds", 2.0))
        self._debounce = max(0.0, debounce_seconds)

        self._tasks: Dict[str, asyncio.Task[None]] = {}
        self._rerun: Set[str] = set()
        self._accepting = True

    @property
    def debounce_seconds(self) -> float:
        return self._debounce

    def pending_courses(self) -> List[str]:
        return sorted(self._tasks)

    # ========================================================================
    # EVENT WIRING
    # ========================================================================

    def register(self, event_bus: EventBus) -> str:
        return event_bus.subscribe(
            SCORE_RECORDED_EVENT,
            self.on_score_recorded,
            priority=ListenerPriority.HIGH,
            identifier=LISTENER_ID,
        )

    async def on_score_recorded(self, payload: EventPayload) -> None:
        course_id = payload.get("course_id")
        if course_id:
            self.request_sweep(str(course_id))

    # ========================================================================
    # SCHEDULING
    # ========================================================================

    def request_sweep(self, course_id: str) -> bool:
        """
        Ask for a sweep of `course_id`.

        Returns True if a new sweep task was started, False if the request
        was merged into a pending one or the scheduler is shut down.
        """
        if not self._accepting:
            self.log.debug("Sweep request ignored after shutdown", extra={"course_id": course_id})
            return False

        if course_id in self._tasks:
            self._rerun.add(course_id)
            self.log.debug("Sweep request coalesced", extra={"course_id": course_id})
            return False

        task = asyncio.get_running_loop().create_task(
            self._run(course_id), name=f"rank-sweep-{course_id}"
        )
        self._tasks[course_id] = task
        # A task cancelled before its first step never reaches `_run`'s cleanup.
        task.add_done_callback(lambda done, key=course_id: self._forget(key, done))
        return True

    def _forget(self, course_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(course_id) is task:
            del self._tasks[course_id]
            self._rerun.discard(course_id)

    async def _run(self, course_id: str) -> None:
        try:
            while True:
                if self._debounce:
                    await asyncio.sleep(self._debounce)
                # Requests up to this point are covered by the sweep below.
                self._rerun.discard(course_id)

                try:
                    await self._engine.sweep(course_id)
                except Exception as exc:
                    # Background task: nobody awaits it, so log and move on.
                    self.log.error(
                        "Scheduled rank sweep failed",
                        extra={
                            "course_id": course_id,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                        exc_info=True,
                    )

                if course_id not in self._rerun:
                    break
        finally:
            self._forget(course_id, asyncio.current_task())

    async def flush(self) -> None:
        """Wait until every pending and follow-up sweep has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self, drain: bool = True) -> None:
        """Stop accepting requests, then drain (or cancel) outstanding sweeps."""
        self._accepting = False
        if drain:
            await self.flush()
            return

        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._rerun.clear()
        self.log.info("Pending rank sweeps cancelled", extra={"cancelled": len(tasks)})
