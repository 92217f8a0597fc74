"""Domain models: rich aggregates kept separate from database rows."""

from courseboard.domain.models.base import (
    AggregateRoot,
    DomainEvent,
    DomainValidationError,
    Entity,
)
from courseboard.domain.models.ledger import (
    SCORE_RECORDED_EVENT,
    AssessmentKind,
    AssessmentRecord,
    LedgerKey,
    ScoreLedger,
)

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "DomainValidationError",
    "Entity",
    "SCORE_RECORDED_EVENT",
    "AssessmentKind",
    "AssessmentRecord",
    "LedgerKey",
    "ScoreLedger",
]
