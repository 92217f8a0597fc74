"""
EventBus: in-process publish/subscribe with tiered execution.

Purpose
-------
Decouple the leaderboard's write path from its reactions (rank sweeps,
assessment ingestion) so that submitting a score never waits on them.

Responsibilities
----------------
- Register listeners per exact event name or wildcard pattern ("leaderboard.*")
- Run listeners by priority tier (see `ListenerPriority`)
- Isolate listener failures: one bad listener never breaks a publish
- Track LOW-tier background tasks so they can be drained on shutdown

Non-Responsibilities
--------------------
- Durable delivery or cross-process fan-out
- Business rules (listeners own those)
"""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING, Any, Optional

from courseboard.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from courseboard.core.logging.logger import get_logger

if TYPE_CHECKING:
    from courseboard.core.config.manager import ConfigManager

logger = get_logger(__name__)


def matches_pattern(event_name: str, pattern: str) -> bool:
    """Return True if `event_name` matches `pattern` (`*` matches any run of characters)."""
    if pattern == "*":
        return True
    if "*" not in pattern:
        return event_name == pattern

    while "**" in pattern:
        pattern = pattern.replace("**", "*")

    parts = pattern.split("*")
    if parts[0] and not event_name.startswith(parts[0]):
        return False
    if parts[-1] and not event_name.endswith(parts[-1]):
        return False

    idx = len(parts[0])
    for mid in parts[1:-1]:
        if not mid:
            continue
        next_idx = event_name.find(mid, idx)
        if next_idx == -1:
            return False
        idx = next_idx + len(mid)
    return True


class EventBus:
    """
    Tiered in-process event bus.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("leaderboard.score_recorded", on_score, priority=ListenerPriority.LOW)
    >>> await bus.publish("leaderboard.score_recorded", {"course_id": "c1"})
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._listeners: dict[str, list[EventListener]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

        self._critical_timeout = self._load_timeout(
            key="core.event.listener_timeout.critical_seconds",
            override=critical_timeout_seconds,
            default=5.0,
        )
        self._high_timeout = self._load_timeout(
            key="core.event.listener_timeout.high_seconds",
            override=high_timeout_seconds,
            default=5.0,
        )

        logger.debug(
            "EventBus initialized",
            extra={
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)
        try:
            return float(self._config_manager.get(key, default))
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Failed to load timeout from config, using default",
                extra={"config_key": key, "default_value": default, "error": str(exc)},
            )
            return float(default)

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Ensure the callback accepts exactly one parameter (the payload)."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", repr(callback)
            )
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns
        -------
        str
            The listener identifier, for `unsubscribe`.

        Raises
        ------
        ValueError
            If the callback does not take exactly one parameter.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if not allow_duplicates and any(
            existing.identifier == listener.identifier for existing in bucket
        ):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda lst: lst.priority)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name)
        if not bucket:
            return False

        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) < len(bucket)
        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove every listener."""
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info("EventBus: cleared all listeners", extra={"previous_listener_count": total})

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return sum(
            len(bucket)
            for key, bucket in self._listeners.items()
            if matches_pattern(event_name, key)
        )

    def _extract_listeners(self, event_name: str) -> list[EventListener]:
        """Collect matching listeners in priority order, pruning `once` listeners."""
        selected: list[EventListener] = []
        for key in list(self._listeners):
            if not matches_pattern(event_name, key):
                continue
            bucket = self._listeners[key]
            selected.extend(bucket)
            kept = [lst for lst in bucket if not lst.once]
            if kept:
                self._listeners[key] = kept
            else:
                del self._listeners[key]

        selected.sort(key=lambda lst: lst.priority)
        return selected

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to every matching listener.

        Returns
        -------
        list[Any]
            Results from CRITICAL, HIGH and NORMAL listeners. LOW listeners
            run in the background and contribute nothing.
        """
        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        logger.debug(
            "EventBus: publishing event",
            extra={
                "event_name": event_name,
                "listener_count": len(listeners),
                "payload_keys": list(data.keys()),
            },
        )

        results: list[Any] = []
        for listener in listeners:
            if listener.priority == ListenerPriority.CRITICAL:
                results.append(
                    await self._run_with_timeout(listener, event_name, data, self._critical_timeout)
                )
            elif listener.priority == ListenerPriority.HIGH:
                results.append(
                    await self._run_with_timeout(listener, event_name, data, self._high_timeout)
                )

        normal = [lst for lst in listeners if lst.priority == ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *[self._run_listener(lst, event_name, data) for lst in normal]
                )
            )

        loop = asyncio.get_running_loop()
        for listener in listeners:
            if listener.priority != ListenerPriority.LOW:
                continue
            task = loop.create_task(
                self._run_listener(listener, event_name, data),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def get_background_task_count(self) -> int:
        return len(self._background_tasks)

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self, listener: EventListener, event_name: str, payload: EventPayload
    ) -> Any:
        """Run one listener; errors are logged and swallowed."""
        try:
            if asyncio.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, listener.callback, payload)

        except Exception as exc:
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
                exc_info=True,
            )
            return None


# Process-wide bus used by the service container.
event_bus = EventBus()
