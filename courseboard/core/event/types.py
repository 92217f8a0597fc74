"""
Event system type definitions.

Purpose
-------
Shared types for the in-process event bus: payload alias, listener
priority tiers and the immutable listener record.

Priority tiers
--------------
- CRITICAL (0): sequential, with timeout
- HIGH (10): sequential, with timeout
- NORMAL (50): concurrent via asyncio.gather
- LOW (100): fire-and-forget background tasks
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]


class ListenerPriority(IntEnum):
    """Execution tier of a listener. Lower values run first."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    A registered listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    priority:
        Tier that decides ordering and concurrency.
    identifier:
        Unique key used for deduplication and unsubscription.
    once:
        Remove the listener before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """Build a listener, deriving `identifier` from the callback when omitted."""
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"
        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )
