"""
Database Service - Core Infrastructure Layer

Purpose
-------
Centralized async database engine and session management for Courseboard.
Provides atomic transactions, schema bootstrap and health checks for the
ledger store.

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance with connection pooling
- Provide async context managers for read-only sessions and atomic transactions
- Enforce transaction discipline: automatic commit on success, rollback on exception
- Configure statement timeouts for PostgreSQL connections
- Serialize SQLite writers with BEGIN IMMEDIATE so concurrent tests behave
- Provide idempotent initialization with async lock protection

Non-Responsibilities
--------------------
- Retry policies for optimistic-concurrency conflicts (DatabaseRetryPolicy)
- Database migrations (schema is created from metadata; use Alembic in deployments)
- Domain logic, business rules, event emission

Architecture Notes
------------------
**Transaction Model**:
- `get_transaction()` is the primary interface for all state mutations
- Automatic commit on success, rollback on any exception
- Never manually call `session.commit()` inside service code

**Connection Pooling**:
- QueuePool for PostgreSQL outside tests (configurable pool_size and max_overflow)
- NullPool for testing environments and SQLite

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
>>>     row = await store.get_or_create(session, learner_id, course_id)
>>>     # Automatic commit on exit

Error Handling
--------------
**DatabaseInitializationError** - DATABASE_URL missing/invalid or engine creation fails.
**DatabaseNotInitializedError** - Session requested before initialize() or after shutdown().
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Type

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, Pool, QueuePool

from courseboard.core.config.config import Config
from courseboard.core.database.base import Base
from courseboard.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Domain Exceptions
# ============================================================================


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


# ============================================================================
# Configuration Snapshot
# ============================================================================


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """Immutable snapshot of database configuration for the engine's lifetime."""

    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


# ============================================================================
# DatabaseService - Core Infrastructure
# ============================================================================


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    **Lifecycle**:
    - initialize() -> Initialize engine and session factory
    - create_schema() -> Create tables from ORM metadata
    - shutdown() -> Dispose engine and cleanup resources

    **Session Management**:
    - get_session() -> Read-only access
    - get_transaction() -> Atomic write transaction (preferred)

    **Utilities**:
    - health_check() -> Fast database reachability check
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: Optional[asyncio.Lock] = None
    _init_lock_loop: Optional[asyncio.AbstractEventLoop] = None

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _get_init_lock(cls) -> asyncio.Lock:
        # One lock per running loop; test runners create a loop per test.
        loop = asyncio.get_running_loop()
        if cls._init_lock is None or cls._init_lock_loop is not loop:
            cls._init_lock = asyncio.Lock()
            cls._init_lock_loop = loop
        return cls._init_lock

    @classmethod
    def _build_config_snapshot(
        cls,
        database_url: Optional[str] = None,
        poolclass: Optional[Type[Pool]] = None,
    ) -> _DatabaseConfigSnapshot:
        """
        Build an immutable configuration snapshot from Config.

        Raises
        ------
        DatabaseInitializationError
            If no database URL is available.
        """
        url = database_url or getattr(Config, "DATABASE_URL", None)
        if not url or not isinstance(url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )

        if poolclass is None:
            use_null_pool = Config.is_testing() or url.startswith("sqlite")
            poolclass = NullPool if use_null_pool else QueuePool

        snapshot = _DatabaseConfigSnapshot(
            url=url,
            echo=bool(Config.DATABASE_ECHO),
            pool_class=poolclass,
            pool_size=int(Config.DATABASE_POOL_SIZE),
            max_overflow=int(Config.DATABASE_MAX_OVERFLOW),
            pool_recycle=int(Config.DATABASE_POOL_RECYCLE),
            pool_timeout=int(Config.DATABASE_POOL_TIMEOUT),
            statement_timeout_ms=int(Config.DATABASE_STATEMENT_TIMEOUT_MS),
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "pool_class": poolclass.__name__,
                "pool_size": snapshot.pool_size,
                "max_overflow": snapshot.max_overflow,
                "statement_timeout_ms": snapshot.statement_timeout_ms,
            },
        )

        return snapshot

    @staticmethod
    def _install_sqlite_locking(engine: AsyncEngine) -> None:
        """Take the SQLite write lock at BEGIN instead of at the first write."""

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    @classmethod
    async def initialize(
        cls,
        database_url: Optional[str] = None,
        poolclass: Optional[Type[Pool]] = None,
    ) -> None:
        """
        Initialize the database engine and session factory (idempotent).

        Parameters
        ----------
        database_url:
            Overrides `Config.DATABASE_URL` (tests, admin scripts).
        poolclass:
            Overrides pool selection.

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._get_init_lock():
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            logger.info("Initializing DatabaseService")

            try:
                config = cls._build_config_snapshot(database_url, poolclass)
                cls._config_snapshot = config

                engine_kwargs: Dict[str, Any] = {
                    "echo": config.echo,
                    "poolclass": config.pool_class,
                }

                if config.pool_class is QueuePool:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                        }
                    )

                if config.is_sqlite:
                    engine_kwargs["connect_args"] = {"timeout": 30}

                cls._engine = create_async_engine(config.url, **engine_kwargs)
                if config.is_sqlite:
                    cls._install_sqlite_locking(cls._engine)

                cls._session_factory = async_sessionmaker(
                    bind=cls._engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={
                        "url_scheme": config.url_scheme,
                        "pool_class": config.pool_class.__name__,
                    },
                )

            except Exception as exc:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None
                logger.error(
                    "DatabaseService initialization failed",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                if isinstance(exc, DatabaseInitializationError):
                    raise
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

    @classmethod
    async def create_schema(cls) -> None:
        """Create all tables registered on `Base.metadata` (no-op for existing ones)."""
        cls._ensure_initialized()
        assert cls._engine is not None

        # Registers CourseLedgerEntry on the metadata.
        import courseboard.database.models  # noqa: F401

        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Database schema ensured",
            extra={"tables": sorted(Base.metadata.tables.keys())},
        )

    @classmethod
    async def shutdown(cls) -> None:
        """
        Dispose the engine and reset internal state.

        Safe to call multiple times; no-op if already shut down.
        """
        async with cls._get_init_lock():
            if cls._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            logger.info("Shutting down DatabaseService")

            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")
            except Exception as exc:
                logger.error(
                    "Error during DatabaseService shutdown",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                raise
            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """
        Perform a lightweight `SELECT 1` health check.

        Returns
        -------
        bool
            True if the database is reachable; never raises.
        """
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        success = False

        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            success = True
            return True

        except (OperationalError, DBAPIError) as exc:
            logger.warning(
                "Database health check failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.debug(
                "Database health check completed",
                extra={"success": success, "duration_ms": duration_ms},
            )

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        """
        Raises
        ------
        DatabaseNotInitializedError
            If engine or session factory is not initialized.
        """
        if cls._session_factory is None or cls._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call DatabaseService.initialize() during startup."
            )

    @classmethod
    def _get_config_snapshot(cls) -> _DatabaseConfigSnapshot:
        if cls._config_snapshot is None:
            raise DatabaseNotInitializedError("DatabaseService is not initialized")
        return cls._config_snapshot

    @classmethod
    async def _apply_statement_timeout(cls, session: AsyncSession) -> None:
        config = cls._get_config_snapshot()
        if config.is_postgres and config.statement_timeout_ms > 0:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {config.statement_timeout_ms}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session without automatic commit.

        Use for read-only operations. For writes, prefer `get_transaction()`.

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._apply_statement_timeout(session)
                logger.debug("Database session opened (read-only)")
                yield session
            finally:
                await session.close()
                logger.debug(
                    "Database session closed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session wrapped in an atomic transaction.

        This is the **primary interface for all state mutations**.

        Behavior
        --------
        - On success: commits the transaction
        - On exception: rolls back, logs with error context, re-raises

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        OperationalError / DBAPIError
            For database connection or database-level errors.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._apply_statement_timeout(session)

                logger.debug("Database transaction started")
                yield session

                await session.commit()
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                logger.error(
                    f"{type(exc).__name__} in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                    exc_info=True,
                )
                raise

            except Exception as exc:
                await session.rollback()
                # Domain rejections and version conflicts are routine; callers log them.
                logger.debug(
                    "Transaction aborted; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": (time.perf_counter() - start) * 1000.0,
                    },
                )
                raise

            finally:
                await session.close()
                logger.debug("Database transaction session closed")
