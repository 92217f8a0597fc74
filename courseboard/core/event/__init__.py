"""In-process event bus."""

from courseboard.core.event.bus import EventBus, event_bus, matches_pattern
from courseboard.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "event_bus",
    "matches_pattern",
    "CallbackType",
    "EventListener",
    "EventPayload",
    "ListenerPriority",
]
