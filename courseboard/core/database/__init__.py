"""
Courseboard database subsystem.

- base: declarative Base and column mixins
- service: DatabaseService (engine, sessions, transactions, schema bootstrap)
- retry_policy: DatabaseRetryPolicy for optimistic-concurrency conflicts
"""

from courseboard.core.database.base import Base, IdMixin, TimestampMixin, utc_now
from courseboard.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from courseboard.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
]
