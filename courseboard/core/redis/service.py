"""
RedisService: async Redis client and distributed lock.

Purpose
-------
Provide the optional cross-process lock that keeps two application
instances from sweeping the same course at once.

Responsibilities
----------------
- Initialize and manage a singleton `redis.asyncio` client
- Distributed locking via SET NX EX with a UUID token and Lua release
- Health check (PING)

Non-Responsibilities
--------------------
- Caching leaderboard data (PostgreSQL is the source of truth)
- Business logic of any kind

Configuration
-------------
- REDIS_URL, REDIS_PASSWORD, REDIS_SOCKET_TIMEOUT (environment, via `Config`)
- Lock timing is passed per call by the caller
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from redis.asyncio.client import Redis as AsyncRedis
from redis.exceptions import RedisError

from courseboard.core.config.config import Config
from courseboard.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    """Singleton async Redis access."""

    _client: Optional[AsyncRedis] = None
    _init_lock: Optional[asyncio.Lock] = None

    # Atomic release: delete only if we still hold the token.
    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def _get_init_lock(cls) -> asyncio.Lock:
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()
        return cls._init_lock

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Connect and verify with PING. Idempotent.

        Raises
        ------
        RuntimeError
            If the connection cannot be established.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._get_init_lock():
            if cls._client is not None:
                return

            url = url or Config.REDIS_URL
            url_scheme = url.split("://")[0] if "://" in url else "unknown"
            start_time = time.monotonic()

            client: AsyncRedis = AsyncRedis.from_url(
                url,
                password=Config.REDIS_PASSWORD,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                decode_responses=True,
            )
            try:
                await client.ping()
            except RedisError as exc:
                await client.aclose()
                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": url_scheme,
                    },
                    exc_info=True,
                )
                raise RuntimeError(f"Failed to initialize RedisService: {exc}") from exc

            cls._client = client
            logger.info(
                "RedisService initialized successfully",
                extra={
                    "url_scheme": url_scheme,
                    "socket_timeout_seconds": Config.REDIS_SOCKET_TIMEOUT,
                    "initialization_time_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        if cls._client is None:
            return
        client, cls._client = cls._client, None
        cls._init_lock = None
        await client.aclose()
        logger.info("RedisService shutdown complete")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    @classmethod
    def client(cls) -> AsyncRedis:
        if cls._client is None:
            raise RuntimeError("RedisService is not initialized. Call initialize() first.")
        return cls._client

    @classmethod
    async def health_check(cls) -> bool:
        if cls._client is None:
            return False
        try:
            return bool(await cls._client.ping())
        except RedisError as exc:
            logger.warning("Redis health check failed", extra={"error": str(exc)})
            return False

    # ═══════════════════════════════════════════════════════════════════════
    # DISTRIBUTED LOCKING
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: int = 30,
        wait_timeout: float = 5.0,
        retry_interval: float = 0.1,
    ) -> AsyncGenerator[None, None]:
        """
        Hold a Redis lock for the duration of the block.

        Parameters
        ----------
        key : str
            Lock key (e.g., "leaderboard:sweep:{course_id}").
        timeout : int
            Lock expiry in seconds; the lock frees itself if the holder dies.
        wait_timeout : float
            How long to keep trying before giving up.
        retry_interval : float
            Sleep between acquisition attempts.

        Raises
        ------
        TimeoutError
            If the lock cannot be acquired within `wait_timeout`.
        """
        client = cls.client()
        token = str(uuid.uuid4())
        deadline = time.monotonic() + max(0.0, wait_timeout)
        acquired = False

        try:
            while True:
                acquired = bool(await client.set(name=key, value=token, nx=True, ex=timeout))
                if acquired:
                    logger.debug(
                        "Redis lock acquired",
                        extra={"lock_key": key, "timeout_seconds": timeout},
                    )
                    break

                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={"lock_key": key, "wait_timeout_seconds": wait_timeout},
                    )
                    raise TimeoutError(
                        f"Failed to acquire Redis lock '{key}' within {wait_timeout}s"
                    )

                await asyncio.sleep(retry_interval)

            yield

        finally:
            if acquired:
                try:
                    await client.eval(cls._LUA_UNLOCK_SCRIPT, 1, key, token)
                    logger.debug("Redis lock released", extra={"lock_key": key})
                except RedisError as exc:
                    # The lock expires on its own.
                    logger.error(
                        "Failed to release Redis lock",
                        extra={"lock_key": key, "error": str(exc)},
                        exc_info=True,
                    )
