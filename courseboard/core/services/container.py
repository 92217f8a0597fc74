"""
Service Container

Purpose
-------
Dependency injection container for the leaderboard services. Builds one
instance of each service with shared dependencies and owns their lifecycle.

Responsibilities
----------------
- Construct LedgerStore, AssessmentScorer, ScoreSubmissionService,
  RankEngine, RankSweepScheduler and LeaderboardQueryService
- Subscribe the sweep scheduler and assessment listeners on `initialize()`
- Drain pending sweeps and unsubscribe on `shutdown()`

Non-Responsibilities
--------------------
- Infrastructure startup order (see `courseboard.bootstrap`)
- Business logic

Architecture Notes
------------------
- Receives ConfigManager, EventBus and the catalog collaborators via the
  constructor
- Services follow the constructor pattern (..., config_manager, event_bus, logger)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, TypeVar

from courseboard.core.database.retry_policy import DatabaseRetryPolicy
from courseboard.core.logging.logger import get_logger
from courseboard.domain.models.ledger import SCORE_RECORDED_EVENT
from courseboard.modules.leaderboard.listeners import (
    ASSESSMENT_COMPLETED_EVENT,
    register_assessment_listeners,
)
from courseboard.modules.leaderboard.query_service import LeaderboardQueryService
from courseboard.modules.leaderboard.rank_engine import RankEngine
from courseboard.modules.leaderboard.repository import LedgerStore
from courseboard.modules.leaderboard.scoring import AssessmentScorer
from courseboard.modules.leaderboard.submission_service import ScoreSubmissionService
from courseboard.modules.leaderboard.sweep_scheduler import RankSweepScheduler

if TYPE_CHECKING:
    from logging import Logger

    from courseboard.core.config.manager import ConfigManager
    from courseboard.core.event.bus import EventBus
    from courseboard.modules.catalog.interfaces import CourseCatalog, SkillTestDirectory

S = TypeVar("S")


class ServiceContainer:
    """
    Usage:
        container = ServiceContainer(config_manager, event_bus, logger, catalog, skill_tests)
        await container.initialize()

        await container.submission.submit_score(...)
        page = await container.queries.get_leaderboard_page("course-1")
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        catalog: CourseCatalog,
        skill_tests: SkillTestDirectory,
        sweep_debounce_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._catalog = catalog
        self._skill_tests = skill_tests
        self._sweep_debounce_seconds = sweep_debounce_seconds

        self._store: Optional[LedgerStore] = None
        self._scorer: Optional[AssessmentScorer] = None
        self._submission: Optional[ScoreSubmissionService] = None
        self._rank_engine: Optional[RankEngine] = None
        self._scheduler: Optional[RankSweepScheduler] = None
        self._queries: Optional[LeaderboardQueryService] = None

        self._subscriptions: List[Tuple[str, str]] = []
        self._initialized = False

        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """Build services and subscribe listeners. Idempotent."""
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            retry_policy = DatabaseRetryPolicy.from_config(self._config_manager)

            self._store = self._timed("ledger_store", lambda: LedgerStore(
                logger=self._service_logger(LedgerStore),
            ))
            self._scorer = self._timed("assessment_scorer", lambda: AssessmentScorer(
                self._catalog,
                self._skill_tests,
                self._config_manager,
                logger=self._service_logger(AssessmentScorer),
            ))
            self._submission = self._timed("score_submission", lambda: ScoreSubmissionService(
                self._store,
                self._scorer,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=self._service_logger(ScoreSubmissionService),
                retry_policy=retry_policy,
            ))
            self._rank_engine = self._timed("rank_engine", lambda: RankEngine(
                self._store,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=self._service_logger(RankEngine),
                retry_policy=retry_policy,
            ))
            self._scheduler = self._timed("rank_sweep_scheduler", lambda: RankSweepScheduler(
                self._rank_engine,
                self._config_manager,
                logger=self._service_logger(RankSweepScheduler),
                debounce_seconds=self._sweep_debounce_seconds,
            ))
            self._queries = self._timed("leaderboard_queries", lambda: LeaderboardQueryService(
                self._store,
                self._catalog,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=self._service_logger(LeaderboardQueryService),
            ))

            self._subscriptions.append(
                (SCORE_RECORDED_EVENT, self._scheduler.register(self._event_bus))
            )
            for listener_id in register_assessment_listeners(self._event_bus, self._submission):
                self._subscriptions.append((ASSESSMENT_COMPLETED_EVENT, listener_id))

            self._init_end = time.perf_counter()
            self._initialized = True

            self._logger.info(
                "Service container initialized successfully",
                extra={
                    "total_time_seconds": round(self._init_end - self._init_start, 3),
                    "service_count": len(self._service_init_times),
                    "sweep_debounce_seconds": self._scheduler.debounce_seconds,
                },
            )

        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def _service_logger(self, cls: type) -> Logger:
        return get_logger(f"{cls.__module__}.{cls.__name__}")

    def _timed(self, name: str, factory: Callable[[], S]) -> S:
        start = time.perf_counter()
        try:
            instance = factory()
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        """Unsubscribe listeners and let scheduled sweeps finish."""
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")

        # In-flight background submissions may still request sweeps.
        await self._event_bus.drain()

        for event_name, listener_id in self._subscriptions:
            self._event_bus.unsubscribe(event_name, listener_id)
        self._subscriptions.clear()

        if self._scheduler is not None:
            await self._scheduler.shutdown(drain=True)

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "pending_sweeps": self._scheduler.pending_courses() if self._scheduler else [],
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
        }

    # ========================================================================
    # Services
    # ========================================================================

    def _require(self, service: Optional[S], name: str) -> S:
        if service is None:
            raise RuntimeError(f"ServiceContainer not initialized; '{name}' unavailable")
        return service

    @property
    def store(self) -> LedgerStore:
        return self._require(self._store, "store")

    @property
    def submission(self) -> ScoreSubmissionService:
        return self._require(self._submission, "submission")

    @property
    def rank_engine(self) -> RankEngine:
        return self._require(self._rank_engine, "rank_engine")

    @property
    def scheduler(self) -> RankSweepScheduler:
        return self._require(self._scheduler, "scheduler")

    @property
    def queries(self) -> LeaderboardQueryService:
        return self._require(self._queries, "queries")
