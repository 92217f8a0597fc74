"""
Base domain model classes for Courseboard.

Purpose
-------
Provide foundational abstractions for rich domain models that encapsulate
business rules and state transitions, kept separate from the SQLAlchemy rows
they are loaded from.

Responsibilities
----------------
- Define base Entity class with identity and equality semantics
- Define base AggregateRoot class for consistency boundaries
- Provide validation helpers for business rules
- Track domain events for event-driven architecture

Non-Responsibilities
--------------------
- Persistence (handled by repositories)
- Database schema (handled by SQLAlchemy models)
- Service orchestration (handled by service layer)

Usage Example
-------------
>>> class Ledger(AggregateRoot):
...     def __init__(self, key, total):
...         super().__init__(key)
...         self.total = total
...
...     def add(self, points):
...         self.total += points
...         self.add_domain_event("ledger.changed", {"total": self.total})
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Hashable, List, Optional


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass
class DomainEvent:
    """
    Represents a domain event that has occurred.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "leaderboard.score_recorded")
    payload : Dict[str, Any]
        Event payload with relevant data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# ENTITY
# ============================================================================


class Entity(ABC):
    """
    Base class for entities with identity.

    Two entities with the same ID are the same entity even if their
    attributes differ. The ID may be any hashable value, including
    composite keys.
    """

    def __init__(self, entity_id: Hashable) -> None:
        self._id = entity_id
        self._domain_events: List[DomainEvent] = []

    @property
    def id(self) -> Hashable:
        """Get entity ID (immutable)."""
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """
        Add a domain event to be published after the change is persisted.

        Parameters
        ----------
        event_name : str
            Event name (e.g., "leaderboard.score_recorded")
        payload : Dict[str, Any]
            Event payload with relevant data
        """
        self._domain_events.append(DomainEvent(event_name=event_name, payload=payload))

    def clear_domain_events(self) -> List[DomainEvent]:
        """
        Clear and return all domain events.

        Returns
        -------
        List[DomainEvent]
            All domain events that occurred since last clear
        """
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events

    def get_pending_events(self) -> List[DomainEvent]:
        """Get domain events without clearing them."""
        return self._domain_events.copy()


# ============================================================================
# AGGREGATE ROOT
# ============================================================================


class AggregateRoot(Entity):
    """
    Base class for aggregate roots.

    The aggregate root is the single entry point for changes to a cluster of
    domain objects and guards the invariants that span them. Subclasses keep
    internal collections private and expose business methods only.
    """

    pass


# ============================================================================
# DOMAIN MODEL VALIDATION
# ============================================================================


class DomainValidationError(Exception):
    """
    Exception raised when domain model validation fails.

    Services translate this into a caller-facing ValidationError.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_positive(value: float, field_name: str) -> None:
    """
    Validate that a value is strictly positive.

    Raises
    ------
    DomainValidationError
        If value is not positive
    """
    if value <= 0:
        raise DomainValidationError(
            f"{field_name} must be positive, got {value}",
            field=field_name,
        )


def validate_non_negative(value: float, field_name: str) -> None:
    """
    Validate that a value is non-negative.

    Raises
    ------
    DomainValidationError
        If value is negative
    """
    if value < 0:
        raise DomainValidationError(
            f"{field_name} must be non-negative, got {value}",
            field=field_name,
        )


def validate_not_empty(value: str, field_name: str) -> None:
    """
    Validate that a string is not empty.

    Raises
    ------
    DomainValidationError
        If value is empty or whitespace-only
    """
    if not value or not str(value).strip():
        raise DomainValidationError(
            f"{field_name} cannot be empty",
            field=field_name,
        )
