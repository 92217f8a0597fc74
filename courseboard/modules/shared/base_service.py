"""
Base Service Foundation

Purpose
-------
Provides the foundational class for all leaderboard services. Services
implement business logic, drive transactions through DatabaseService,
enforce business rules, and emit domain events.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access patterns
- Event emission helpers, including draining an aggregate's pending events

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Handle SQLAlchemy sessions directly

Usage
-----
    class RankEngine(BaseService):
        def __init__(self, store, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from courseboard.core.config.errors import ConfigError

if TYPE_CHECKING:
    from logging import Logger

    from courseboard.core.config.manager import ConfigManager
    from courseboard.core.event.bus import EventBus
    from courseboard.domain.models.base import Entity


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Application configuration manager
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(self, key: str, default: Optional[Any] = None, required: bool = False) -> Any:
        """
        Safely retrieve configuration value.

        Args:
            key: Configuration key to retrieve
            default: Default value if key not found
            required: If True, raise exception if key missing

        Returns:
            Configuration value

        Raises:
            ConfigError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigError(f"Required configuration key '{key}' is missing")
        return value

    def get_number_config(self, key: str, default: float) -> float:
        """Read a numeric tunable, falling back to `default` on malformed values."""
        value = self.get_config(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            self.log.warning(
                "Non-numeric configuration value, using default",
                extra={"config_key": key, "value": repr(value), "default": default},
            )
            return default

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Emit a domain event for cross-module communication.

        Args:
            event_type: Type/name of the event
            data: Event payload data
            context: Optional additional context (learner_id, course_id, etc.)
        """
        await self._events.publish(event_type, {**data, **(context or {})})

    async def publish_pending_events(self, entity: Entity) -> None:
        """Publish and clear the domain events an aggregate collected."""
        for event in entity.get_pending_events():
            await self.emit_event(event.event_name, event.payload)
        entity.clear_domain_events()

    def log_operation(self, operation: str, **context: Any) -> None:
        """
        Log a service operation with structured context.

        Args:
            operation: Name of the operation being performed
            **context: Additional context data
        """
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        """
        Log a service error with full context.

        Args:
            operation: Name of the operation that failed
            error: The exception that occurred
            **context: Additional context data
        """
        self.log.error(
            f"Service error during {operation}: {str(error)}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )
