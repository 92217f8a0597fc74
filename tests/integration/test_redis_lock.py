"""
Integration tests for the Redis sweep lock (requires Docker).
"""

import asyncio

import pytest

from courseboard.core.config.config import Config
from courseboard.core.config.manager import ConfigManager
from tests.conftest import COURSE_ID

pytestmark = [pytest.mark.integration, pytest.mark.slow]


class TestRedisLock:
    async def test_health_check(self, redis_service):
        assert await redis_service.health_check() is True

    async def test_second_holder_times_out(self, redis_service):
        async with redis_service.acquire_lock("test:lock", timeout=5, wait_timeout=1):
            with pytest.raises(TimeoutError):
                async with redis_service.acquire_lock(
                    "test:lock", timeout=5, wait_timeout=0.2, retry_interval=0.05
                ):
                    pass

    async def test_lock_released_after_block(self, redis_service):
        async with redis_service.acquire_lock("test:lock", timeout=5):
            pass

        assert await redis_service.client().get("test:lock") is None

    async def test_waiter_acquires_after_release(self, redis_service):
        order = []

        async def holder():
            async with redis_service.acquire_lock("test:lock", timeout=5):
                order.append("first")
                await asyncio.sleep(0.2)

        async def waiter():
            await asyncio.sleep(0.05)
            async with redis_service.acquire_lock(
                "test:lock", timeout=5, wait_timeout=2, retry_interval=0.05
            ):
                order.append("second")

        await asyncio.gather(holder(), waiter())

        assert order == ["first", "second"]


@pytest.mark.database
class TestDistributedSweep:
    async def test_sweep_takes_course_lock(
        self, database, redis_service, submission_service, rank_engine, monkeypatch
    ):
        # Arrange
        ConfigManager.override("leaderboard.sweep.distributed_lock", True)
        monkeypatch.setattr(Config, "REDIS_ENABLED", True)
        lock_key = f"leaderboard:sweep:{COURSE_ID}"
        held = []
        real_sweep = rank_engine._sweep_with_retry

        async def observing_sweep(course_id):
            held.append(await redis_service.client().get(lock_key) is not None)
            return await real_sweep(course_id)

        monkeypatch.setattr(rank_engine, "_sweep_with_retry", observing_sweep)
        await submission_service.submit_score(
            "learner-1",
            COURSE_ID,
            "finalExam",
            {"mcq_results": [{"is_correct": True}], "coding_results": []},
        )

        # Act
        ranked = await rank_engine.sweep(COURSE_ID)

        # Assert
        assert [r.rank for r in ranked] == [1]
        assert held == [True]
        assert await redis_service.client().get(lock_key) is None
