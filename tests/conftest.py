"""
Pytest Configuration and Fixtures for Courseboard Tests
========================================================

Purpose
-------
Shared fixtures for the Courseboard test suite: configuration, a database per
test, a course catalog with known marks, and fully wired leaderboard services.

Responsibilities
----------------
- Force the testing environment before any `courseboard` import
- Reset ConfigManager between tests and load the repository YAML on demand
- Provide a fresh SQLite database per test, and PostgreSQL through
  testcontainers when Docker is available
- Provide catalog/skill-test fixtures and service factories

Non-Responsibilities
--------------------
- Test implementation (delegated to test files)
- Production configuration (test-specific only)

Architecture Notes
------------------
- Unit tests use mocks and in-memory collaborators (fast, isolated)
- Integration tests run against a real database through DatabaseService
- The `database` fixture is parametrized over SQLite and PostgreSQL; the
  PostgreSQL leg is skipped when Docker is unavailable
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_ENABLED"] = "false"

from typing import AsyncGenerator, Dict, Generator, List

import pytest
import pytest_asyncio
from sqlalchemy import delete

from courseboard.core.config.config import Config
from courseboard.core.config.manager import ConfigManager
from courseboard.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from courseboard.core.database.service import DatabaseService
from courseboard.core.event.bus import EventBus
from courseboard.core.logging.logger import get_logger
from courseboard.core.redis.service import RedisService
from courseboard.database.models.ledger_entry import CourseLedgerEntry
from courseboard.modules.catalog.memory import (
    InMemoryCourseCatalog,
    InMemorySkillTestDirectory,
    build_assessment,
)
from courseboard.modules.leaderboard.query_service import LeaderboardQueryService
from courseboard.modules.leaderboard.rank_engine import RankEngine
from courseboard.modules.leaderboard.repository import LedgerStore
from courseboard.modules.leaderboard.scoring import AssessmentScorer
from courseboard.modules.leaderboard.submission_service import ScoreSubmissionService

logger = get_logger(__name__)

COURSE_ID = "course-py"
OTHER_COURSE_ID = "course-js"
TOPIC_ID = "topic-1"
EMPTY_TOPIC_ID = "topic-empty"


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config_manager() -> Generator[None, None, None]:
    """Every test starts from an empty ConfigManager."""
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest_asyncio.fixture
async def config_manager() -> type[ConfigManager]:
    """ConfigManager loaded from the repository's config/ directory."""
    await ConfigManager.initialize(Config.PROJECT_ROOT / "config")
    return ConfigManager


@pytest.fixture
def fast_retry_policy() -> DatabaseRetryPolicy:
    """Retry policy without backoff so conflict tests run quickly."""
    return DatabaseRetryPolicy(
        DatabaseRetryConfig(max_attempts=3, initial_backoff_ms=0, max_backoff_ms=0, jitter_ms=0)
    )


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(critical_timeout_seconds=5.0, high_timeout_seconds=5.0)


@pytest.fixture
def recorded_events(event_bus: EventBus) -> List[Dict]:
    """Collects every `leaderboard.*` event published on the test bus."""
    events: List[Dict] = []

    async def _record(payload):
        events.append(dict(payload))

    event_bus.subscribe("leaderboard.*", _record, identifier="test.recorder")
    return events


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container():
    """
    Start a PostgreSQL testcontainer for the postgres leg of `database`.

    Scope: session (container persists across all tests)
    Skips when Docker is not reachable.
    """
    try:
        from testcontainers.postgres import PostgresContainer

        container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
        container.start()
    except Exception as exc:
        pytest.skip(f"PostgreSQL testcontainer unavailable: {exc}")

    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())
    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container():
    """
    Start a Redis testcontainer for distributed-lock tests.

    Scope: session
    Skips when Docker is not reachable.
    """
    try:
        from testcontainers.redis import RedisContainer

        container = RedisContainer(image="redis:7-alpine")
        container.start()
    except Exception as exc:
        pytest.skip(f"Redis testcontainer unavailable: {exc}")

    logger.info(
        "Redis testcontainer started: %s:%s",
        container.get_container_host_ip(),
        container.get_exposed_port(6379),
    )
    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def redis_service(redis_container) -> AsyncGenerator[type[RedisService], None]:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    await RedisService.initialize(f"redis://{host}:{port}/0")
    yield RedisService
    await RedisService.client().flushdb()
    await RedisService.shutdown()


@pytest_asyncio.fixture(
    params=["sqlite", pytest.param("postgres", marks=pytest.mark.slow)]
)
async def database(request, tmp_path) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialized DatabaseService with an empty ledger table.

    Scope: function (clean slate per test)
    """
    if request.param == "postgres":
        container = request.getfixturevalue("postgres_container")
        url = container.get_connection_url()
    else:
        url = f"sqlite+aiosqlite:///{tmp_path / 'courseboard.db'}"

    await DatabaseService.initialize(database_url=url)
    await DatabaseService.create_schema()

    yield DatabaseService

    if request.param == "postgres":
        async with DatabaseService.get_transaction() as session:
            await session.execute(delete(CourseLedgerEntry))
    await DatabaseService.shutdown()


# ============================================================================
# CATALOG FIXTURES
# ============================================================================


@pytest.fixture
def catalog() -> InMemoryCourseCatalog:
    """
    Python course with known marks.

    - lesson-1: two 5-mark MCQs and two 5-mark coding challenges (max 20)
    - lesson-2 .. lesson-12: two MCQs and one coding challenge on course
      default marks (1 + 1 + 5 = 7)
    - module test topic-1: four 5-mark MCQs and one 10-mark challenge (max 30)
    - module test topic-empty: no questions
    - final exam: two 10-mark MCQs and one 30-mark challenge (max 50)
    """
    catalog = InMemoryCourseCatalog()
    catalog.add_course(COURSE_ID, "Python Foundations")
    catalog.add_course(OTHER_COURSE_ID, "JavaScript Foundations")

    catalog.add_lesson(
        COURSE_ID, TOPIC_ID, "lesson-1", build_assessment([5, 5], [5, 5])
    )
    for number in range(2, 13):
        catalog.add_lesson(
            COURSE_ID, TOPIC_ID, f"lesson-{number}", build_assessment([None, None], [None])
        )

    catalog.add_module_test(COURSE_ID, TOPIC_ID, build_assessment([5, 5, 5, 5], [10]))
    catalog.add_module_test(COURSE_ID, EMPTY_TOPIC_ID, build_assessment())
    catalog.add_final_exam(COURSE_ID, build_assessment([10, 10], [30]))
    return catalog


@pytest.fixture
def skill_tests() -> InMemorySkillTestDirectory:
    directory = InMemorySkillTestDirectory()
    directory.add_skill_test("skill-final", is_final_exam=True, course_id=COURSE_ID)
    directory.add_skill_test("skill-unbound", is_final_exam=True)
    directory.add_skill_test("skill-practice", is_final_exam=False, course_id=COURSE_ID)
    directory.add_skill_test("skill-js", is_final_exam=True, course_id=OTHER_COURSE_ID)
    return directory


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def ledger_store() -> LedgerStore:
    return LedgerStore()


@pytest.fixture
def scorer(catalog, skill_tests) -> AssessmentScorer:
    return AssessmentScorer(catalog, skill_tests, ConfigManager)


@pytest.fixture
def submission_service(
    ledger_store, scorer, event_bus, fast_retry_policy
) -> ScoreSubmissionService:
    return ScoreSubmissionService(
        ledger_store,
        scorer,
        config_manager=ConfigManager,
        event_bus=event_bus,
        retry_policy=fast_retry_policy,
    )


@pytest.fixture
def rank_engine(ledger_store, event_bus, fast_retry_policy) -> RankEngine:
    return RankEngine(
        ledger_store,
        config_manager=ConfigManager,
        event_bus=event_bus,
        retry_policy=fast_retry_policy,
    )


@pytest.fixture
def query_service(ledger_store, catalog, event_bus) -> LeaderboardQueryService:
    return LeaderboardQueryService(
        ledger_store,
        catalog,
        config_manager=ConfigManager,
        event_bus=event_bus,
    )


# ============================================================================
# PAYLOAD HELPERS
# ============================================================================


def lesson_payload(lesson_id: str = "lesson-1", mcq=(True, True), coding=("Accepted",)) -> Dict:
    return {
        "topic_id": TOPIC_ID,
        "lesson_id": lesson_id,
        "mcq_results": [{"is_correct": flag} for flag in mcq],
        "coding_results": [{"verdict": verdict} for verdict in coding],
    }


@pytest.fixture
def make_lesson_payload():
    return lesson_payload
