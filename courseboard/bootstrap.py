"""
Courseboard - Application Bootstrap
===================================

Startup order
-------------
1. Config validation
2. Database initialization (and schema creation when asked)
3. Redis (only when REDIS_ENABLED)
4. ConfigManager (YAML tunables)
5. Service container (global event bus)

`shutdown()` unwinds in reverse and never raises; each step logs its own
failure so the remaining steps still run.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from courseboard.core.config.config import Config
from courseboard.core.config.manager import ConfigManager
from courseboard.core.database.service import DatabaseService
from courseboard.core.event import event_bus
from courseboard.core.logging.logger import get_logger
from courseboard.core.redis.service import RedisService
from courseboard.core.services.container import ServiceContainer

if TYPE_CHECKING:
    from courseboard.modules.catalog.interfaces import CourseCatalog, SkillTestDirectory

logger = get_logger(__name__)

_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    if _container is None:
        raise RuntimeError("Courseboard is not started. Call startup() first.")
    return _container


async def startup(
    catalog: CourseCatalog,
    skill_tests: SkillTestDirectory,
    *,
    database_url: Optional[str] = None,
    config_dir: Union[str, Path, None] = None,
    create_schema: bool = False,
) -> ServiceContainer:
    """Initialize infrastructure and services; returns the running container."""
    global _container

    logger.info("========== COURSEBOARD INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    try:
        Config.validate()
        logger.info("✓ Configuration validated")
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    # Step 2: Initialize database service
    try:
        await DatabaseService.initialize(database_url=database_url)
        if create_schema:
            await DatabaseService.create_schema()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Redis (optional)
    if Config.REDIS_ENABLED:
        try:
            await RedisService.initialize()
            logger.info("✓ Redis service initialized")
        except Exception as exc:
            logger.critical(f"Redis initialization failed: {exc}", exc_info=True)
            raise

    # Step 4: Initialize config manager
    try:
        await ConfigManager.initialize(config_dir)
        logger.info("✓ Config manager initialized")
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    # Step 5: Initialize service container
    try:
        container = ServiceContainer(
            config_manager=ConfigManager,
            event_bus=event_bus,
            logger=get_logger("courseboard.core.services.container"),
            catalog=catalog,
            skill_tests=skill_tests,
        )
        await container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    _container = container
    logger.info("========== COURSEBOARD INITIALIZED SUCCESSFULLY ==========")
    return container


async def shutdown() -> None:
    """Gracefully shut down services and infrastructure."""
    global _container

    logger.info("========== COURSEBOARD SHUTDOWN START ==========")

    # Step 1: Shutdown service container (drains pending sweeps)
    if _container is not None:
        try:
            await _container.shutdown()
            logger.info("✓ Service container shut down")
        except Exception as exc:
            logger.error(f"Service container shutdown error: {exc}", exc_info=True)
        _container = None

    # Step 2: Shutdown Redis
    try:
        await RedisService.shutdown()
    except Exception as exc:
        logger.error(f"Redis service shutdown error: {exc}", exc_info=True)

    # Step 3: Shutdown database
    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")
