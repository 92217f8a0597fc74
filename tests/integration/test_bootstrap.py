"""
End-to-end wiring test: bootstrap, event-driven sweeps and shutdown.
"""

import pytest
import pytest_asyncio

from courseboard import bootstrap
from courseboard.core.database.service import DatabaseService
from courseboard.core.event import event_bus
from courseboard.domain.models.ledger import SCORE_RECORDED_EVENT
from courseboard.modules.leaderboard.listeners import ASSESSMENT_COMPLETED_EVENT
from tests.conftest import COURSE_ID, TOPIC_ID

pytestmark = [pytest.mark.integration, pytest.mark.database]


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "config"
    directory.mkdir()
    (directory / "leaderboard.yaml").write_text(
        "leaderboard:\n"
        "  sweep:\n"
        "    debounce_seconds: 0\n"
        "  pagination:\n"
        "    default_limit: 5\n"
    )
    return directory


@pytest_asyncio.fixture
async def container(tmp_path, config_dir, catalog, skill_tests):
    started = await bootstrap.startup(
        catalog,
        skill_tests,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        config_dir=config_dir,
        create_schema=True,
    )
    yield started
    await bootstrap.shutdown()


class TestApplicationWiring:
    async def test_submission_triggers_debounced_sweep(self, container):
        # Act
        result = await container.submission.submit_score(
            "learner-1",
            COURSE_ID,
            "finalExam",
            {"mcq_results": [{"is_correct": True}], "coding_results": []},
        )
        await container.scheduler.flush()

        # Assert
        assert result["new_score"] == 10
        async with DatabaseService.get_session() as session:
            entry = await container.store.find(session, "learner-1", COURSE_ID)
        assert (entry.rank, entry.percentile) == (1, 100)

    async def test_assessment_completed_event_updates_leaderboard(self, container):
        # Act: the publishing workflow does not wait for the leaderboard
        await event_bus.publish(
            ASSESSMENT_COMPLETED_EVENT,
            {
                "learner_id": "learner-2",
                "course_id": COURSE_ID,
                "assessment_kind": "lesson",
                "assessment_data": {
                    "topic_id": TOPIC_ID,
                    "lesson_id": "lesson-2",
                    "mcq_results": [{"is_correct": True}, {"is_correct": True}],
                    "coding_results": [{"verdict": "Accepted"}],
                },
                "source": "lesson_completion",
            },
        )
        await event_bus.drain()
        await container.scheduler.flush()

        # Assert
        page = await container.queries.get_leaderboard_page(COURSE_ID)
        assert page["total_learners"] == 1
        assert page["leaderboard"][0]["learner_id"] == "learner-2"
        assert page["leaderboard"][0]["overall_score"] == 7

    async def test_rejected_side_effect_does_not_raise(self, container):
        await event_bus.publish(
            ASSESSMENT_COMPLETED_EVENT,
            {"learner_id": "learner-3", "course_id": COURSE_ID, "assessment_kind": "quiz"},
        )
        await event_bus.drain()

        page = await container.queries.get_leaderboard_page(COURSE_ID)
        assert page["total_learners"] == 0

    async def test_config_and_health(self, container):
        health = await container.health_check()

        assert health["initialized"] is True
        assert health["service_count"] == 6
        assert container.scheduler.debounce_seconds == 0
        assert bootstrap.get_container() is container


class TestShutdown:
    async def test_shutdown_unsubscribes_listeners(self, tmp_path, config_dir, catalog, skill_tests):
        # Arrange
        await bootstrap.startup(
            catalog,
            skill_tests,
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
            config_dir=config_dir,
            create_schema=True,
        )
        assert event_bus.get_listener_count(SCORE_RECORDED_EVENT) == 1

        # Act
        await bootstrap.shutdown()

        # Assert
        assert event_bus.get_listener_count(SCORE_RECORDED_EVENT) == 0
        assert event_bus.get_listener_count(ASSESSMENT_COMPLETED_EVENT) == 0
        assert not DatabaseService.is_initialized()
        with pytest.raises(RuntimeError):
            bootstrap.get_container()
