"""
Database Retry Policy

Purpose
-------
Re-run a whole transactional operation when it loses an optimistic-
concurrency race, with exponential backoff and jitter.

Retried by default
------------------
- `StaleDataError`: the row's `version` changed between load and flush
- `IntegrityError`: a concurrent insert won the (learner, course) race

Infrastructure failures (`OperationalError`, timeouts, connection loss) are
deliberately NOT in the default set; they propagate on the first attempt.

Usage
-----
Retry the operation that creates the transaction, never the work inside it:

```python
async def operation():
    async with DatabaseService.get_transaction() as session:
        ...

await retry_policy.execute(operation, operation_name="leaderboard.submit_score")
```
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from courseboard.core.config.config import Config
from courseboard.core.logging.logger import get_logger

if TYPE_CHECKING:
    from courseboard.core.config.manager import ConfigManager

logger = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class DatabaseRetryConfig:
    """
    Configuration for database retry behavior.

    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts (including initial attempt).
    initial_backoff_ms : int
        Initial backoff duration in milliseconds.
    max_backoff_ms : int
        Maximum backoff duration in milliseconds.
    jitter_ms : int
        Maximum random jitter to add to backoff in milliseconds.
    retriable_exceptions : Tuple[Type[BaseException], ...]
        Exception types considered retriable.
    """

    max_attempts: int
    initial_backoff_ms: int
    max_backoff_ms: int
    jitter_ms: int
    retriable_exceptions: Tuple[Type[BaseException], ...] = (
        StaleDataError,
        IntegrityError,
    )

    @classmethod
    def from_config(cls, config_manager: Optional[ConfigManager] = None) -> DatabaseRetryConfig:
        """
        Build retry configuration.

        Environment values from `Config` are the base; the YAML tunables
        under `leaderboard.concurrency.*` override them when present.
        """
        values = {
            "max_attempts": int(Config.DATABASE_RETRY_MAX_ATTEMPTS),
            "initial_backoff_ms": int(Config.DATABASE_RETRY_INITIAL_BACKOFF_MS),
            "max_backoff_ms": int(Config.DATABASE_RETRY_MAX_BACKOFF_MS),
            "jitter_ms": int(Config.DATABASE_RETRY_JITTER_MS),
        }

        if config_manager is not None:
            for field_name in list(values):
                override = config_manager.get(f"leaderboard.concurrency.{field_name}")
                if override is not None:
                    values[field_name] = int(override)

        values["max_attempts"] = max(values["max_attempts"], 1)
        return cls(**values)


# ============================================================================
# Retry Policy
# ============================================================================


class DatabaseRetryPolicy:
    """
    Execute async database operations with retry semantics.

    Public API
    ----------
    - from_config(config_manager) -> Create policy from Config/YAML
    - execute(operation, operation_name, context) -> Execute with retries
    """

    def __init__(self, config: DatabaseRetryConfig) -> None:
        self._config = config

    @property
    def config(self) -> DatabaseRetryConfig:
        return self._config

    @classmethod
    def from_config(cls, config_manager: Optional[ConfigManager] = None) -> DatabaseRetryPolicy:
        return cls(DatabaseRetryConfig.from_config(config_manager))

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions)

    def _compute_backoff_ms(self, attempt: int) -> int:
        """
        Exponential backoff `initial * 2^(attempt-1)`, capped, plus jitter.

        Parameters
        ----------
        attempt : int
            Current attempt number (1-indexed).
        """
        exponent = max(attempt - 1, 0)
        capped = min(self._config.initial_backoff_ms * (2**exponent), self._config.max_backoff_ms)
        jitter = random.randint(0, self._config.jitter_ms) if self._config.jitter_ms > 0 else 0
        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Execute an async operation, retrying retriable failures.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument async callable that opens its own transaction.
        operation_name : str
            Stable identifier for logging (e.g., "leaderboard.submit_score").
        context : Optional[dict[str, Any]]
            Additional structured context for logs.

        Raises
        ------
        BaseException
            The last exception once retries are exhausted, or the first
            non-retriable exception unchanged.
        """
        ctx_extra = dict(context or {})
        ctx_extra["operation"] = operation_name

        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()

            except Exception as exc:
                if not self._is_retriable(exc):
                    raise

                error_type = type(exc).__name__
                if attempt >= self._config.max_attempts:
                    logger.error(
                        "Database operation retries exhausted",
                        extra={
                            **ctx_extra,
                            "attempt": attempt,
                            "error_type": error_type,
                            "max_attempts": self._config.max_attempts,
                        },
                    )
                    raise

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.warning(
                    "Database operation lost a concurrent update; retrying",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": error_type,
                        "backoff_ms": backoff_ms,
                    },
                )
                await asyncio.sleep(backoff_ms / 1000.0)
