"""
ScoreSubmissionService: fold one assessment result into a learner's ledger.

Purpose
-------
The single write path for score-affecting events. Validates and scores the
submission, then performs the ledger read-modify-write under per-key
serialization and returns the learner's new totals immediately.

Responsibilities
----------------
- Validate identifiers and the assessment kind
- Score the payload against the catalog (`AssessmentScorer`)
- Serialize writes per (learner, course): an in-process `KeyedLock`, plus the
  row's optimistic `version`, retried via `DatabaseRetryPolicy`
- Publish `leaderboard.score_recorded` after commit (the sweep scheduler
  reacts to it; the write path never sweeps)

Non-Responsibilities
--------------------
- Ranking (RankEngine)
- Retrying infrastructure failures (they propagate to the caller)

Concurrency
-----------
Two submissions for the same learner and course never interleave their
read-modify-write: within a process they queue on the key lock; across
processes the loser's flush raises StaleDataError and the whole transaction
is replayed on fresh state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from courseboard.core.concurrency.keyed_lock import KeyedLock
from courseboard.core.database.retry_policy import DatabaseRetryPolicy
from courseboard.core.database.service import DatabaseService
from courseboard.core.logging.logger import LogContext, get_logger
from courseboard.core.validation.input_validator import InputValidator
from courseboard.domain.models.base import DomainValidationError
from courseboard.domain.models.ledger import AssessmentKind, ScoreLedger
from courseboard.modules.shared.base_service import BaseService
from courseboard.modules.shared.exceptions import ConcurrencyConflictError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from courseboard.core.config.manager import ConfigManager
    from courseboard.core.event.bus import EventBus
    from courseboard.modules.leaderboard.repository import LedgerStore
    from courseboard.modules.leaderboard.scoring import AssessmentScorer, ScoredAssessment

SUCCESS_MESSAGE = "Score updated successfully"


class ScoreSubmissionService(BaseService):
    """Applies assessment results to score ledgers."""

    def __init__(
        self,
        store: LedgerStore,
        scorer: AssessmentScorer,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Optional[Logger] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
        key_lock: Optional[KeyedLock] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger or get_logger(__name__))
        self._store = store
        self._scorer = scorer
        self._retry = retry_policy or DatabaseRetryPolicy.from_config(config_manager)
        self._locks = key_lock or KeyedLock("ledger")

    async def submit_score(
        self,
        learner_id: str,
        course_id: str,
        assessment_kind: Union[str, AssessmentKind],
        assessment_data: Optional[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        """
        Record one assessment result.

        Returns
        -------
        Dict[str, Any]
            `{message, learner_id, course_id, assessment_kind, record_stored,
            new_score, breakdown}`. `record_stored` is False only when a
            skill-test attempt did not beat the stored best.

        Raises
        ------
        ValidationError
            Malformed input or an assessment that cannot count. Nothing is
            written.
        NotFoundError
            Unknown course.
        ConcurrencyConflictError
            The write lost every optimistic-concurrency retry.
        """
        learner_id = InputValidator.validate_string(learner_id, "learner_id", max_length=64)
        course_id = InputValidator.validate_string(course_id, "course_id", max_length=64)
        try:
            kind = AssessmentKind.parse(assessment_kind)
        except DomainValidationError as exc:
            raise ValidationError("assessment_kind", str(exc)) from exc

        async with LogContext(
            learner_id=learner_id,
            course_id=course_id,
            component="leaderboard",
            operation="submit_score",
        ):
            scored = await self._scorer.score(course_id, kind, assessment_data)

            async with self._locks.hold((learner_id, course_id)):
                try:
                    ledger, stored = await self._retry.execute(
                        lambda: self._apply(learner_id, course_id, scored),
                        operation_name="leaderboard.submit_score",
                        context={"learner_id": learner_id, "course_id": course_id},
                    )
                except (StaleDataError, IntegrityError) as exc:
                    raise ConcurrencyConflictError(
                        "submit_score", self._retry.config.max_attempts
                    ) from exc

            await self.publish_pending_events(ledger)

            self.log_operation(
                "submit_score",
                assessment_kind=kind.value,
                record_stored=stored,
                overall_score=ledger.overall_score,
            )

        return {
            "message": SUCCESS_MESSAGE,
            "learner_id": learner_id,
            "course_id": course_id,
            "assessment_kind": kind.value,
            "record_stored": stored,
            "new_score": ledger.overall_score,
            "breakdown": ledger.breakdown(),
        }

    async def _apply(
        self, learner_id: str, course_id: str, scored: ScoredAssessment
    ) -> Tuple[ScoreLedger, bool]:
        """One transactional attempt: load or create, fold, write back."""
        async with DatabaseService.get_transaction() as session:
            row = await self._store.get_or_create(session, learner_id, course_id)
            ledger = ScoreLedger.from_db(row)

            try:
                stored = scored.apply_to(ledger)
            except DomainValidationError as exc:
                raise ValidationError(exc.field or "assessment_data", str(exc)) from exc

            await self._store.save(session, row, ledger)

        return ledger, stored
