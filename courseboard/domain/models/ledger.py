"""
Score Ledger Domain Model for Courseboard.

Purpose
-------
Rich domain model for one learner's cumulative achievement in one course.
Folds individual assessment results into per-category totals, an overall
score and an average, and tracks progress counters.

This is separate from the database model (`CourseLedgerEntry`), which is a
plain row. Services load a row, convert it with `ScoreLedger.from_db`, call
a business method, and write `to_db_updates()` back.

Business Rules
--------------
- Lessons are keyed by (topic_id, lesson_id); resubmission replaces the
  stored record and does not change `lessons_completed`.
- Module tests are keyed by topic_id with the same replace semantics.
- The final exam is a single record, always replaced on resubmission.
- Skill-test final exams are keyed by skill_test_id; a stored record is
  replaced only by a strictly greater score (best attempt wins).
- After every fold, each category total, `overall_score` and
  `average_score` are recomputed from the full record set.

Domain Events
-------------
- leaderboard.score_recorded: after any fold

Usage Example
-------------
>>> ledger = ScoreLedger.new(LedgerKey("learner-1", "course-1"))
>>> ledger.record_lesson("t1", "l1", mcq_score=10, coding_score=5, max_score=20)
>>> ledger.overall_score
15
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple, Union

from courseboard.domain.models.base import (
    AggregateRoot,
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
)

if TYPE_CHECKING:
    from courseboard.database.models.ledger_entry import CourseLedgerEntry


SCORE_RECORDED_EVENT = "leaderboard.score_recorded"

# Totals are rounded so equal marks earned in any order compare equal.
SCORE_PRECISION = 6


def score_sum(values: Iterable[float]) -> float:
    return round(math.fsum(values), SCORE_PRECISION)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utc_now()


# ============================================================================
# ASSESSMENT KIND
# ============================================================================


class AssessmentKind(str, Enum):
    """The four assessment kinds that feed a ledger."""

    LESSON = "lesson"
    MODULE_TEST = "module_test"
    FINAL_EXAM = "final_exam"
    SKILL_TEST_FINAL_EXAM = "skill_test_final_exam"

    @classmethod
    def parse(cls, value: Union[str, "AssessmentKind"]) -> "AssessmentKind":
        """
        Parse a kind from snake_case, camelCase or kebab-case text.

        >>> AssessmentKind.parse("skillTestFinalExam")
        <AssessmentKind.SKILL_TEST_FINAL_EXAM: 'skill_test_final_exam'>

        Raises
        ------
        DomainValidationError
            If the value names no known kind.
        """
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        normalized = re.sub(r"(?<!^)(?=[A-Z])", "_", text).lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise DomainValidationError("Invalid assessment type", field="assessment_kind") from None


# ============================================================================
# VALUE OBJECTS
# ============================================================================


@dataclass(frozen=True)
class LedgerKey:
    """Identity of a ledger: one per (learner, course)."""

    learner_id: str
    course_id: str

    def __post_init__(self) -> None:
        validate_not_empty(self.learner_id, "learner_id")
        validate_not_empty(self.course_id, "course_id")


@dataclass(frozen=True)
class AssessmentRecord:
    """
    Immutable result of one assessment attempt as stored in a ledger.

    Attributes
    ----------
    kind : AssessmentKind
        Which category the record belongs to
    mcq_score, coding_score : float
        Earned marks per part; both 0 for skill-test records
    total_score : float
        `mcq_score + coding_score`, or the external score for skill tests
    max_score : float
        Maximum attainable marks, strictly positive
    """

    kind: AssessmentKind
    mcq_score: float
    coding_score: float
    total_score: float
    max_score: float
    completed_at: datetime = field(default_factory=utc_now)
    topic_id: Optional[str] = None
    lesson_id: Optional[str] = None
    skill_test_id: Optional[str] = None
    attempt_id: Optional[str] = None
    percentage: Optional[float] = None
    passed: Optional[bool] = None
    time_spent: Optional[float] = None

    def __post_init__(self) -> None:
        validate_non_negative(self.mcq_score, "mcq_score")
        validate_non_negative(self.coding_score, "coding_score")
        validate_non_negative(self.total_score, "total_score")
        validate_positive(self.max_score, "max_score")

        if self.kind is AssessmentKind.SKILL_TEST_FINAL_EXAM:
            if self.mcq_score or self.coding_score:
                raise DomainValidationError(
                    "skill test records carry no mcq/coding split", field="total_score"
                )
        elif not math.isclose(self.total_score, self.mcq_score + self.coding_score):
            raise DomainValidationError(
                "total_score must equal mcq_score + coding_score", field="total_score"
            )

    @classmethod
    def scored(
        cls,
        kind: AssessmentKind,
        mcq_score: float,
        coding_score: float,
        max_score: float,
        completed_at: Optional[datetime] = None,
        topic_id: Optional[str] = None,
        lesson_id: Optional[str] = None,
    ) -> "AssessmentRecord":
        """Build a lesson/module-test/final-exam record; total is derived."""
        return cls(
            kind=kind,
            mcq_score=mcq_score,
            coding_score=coding_score,
            total_score=mcq_score + coding_score,
            max_score=max_score,
            completed_at=completed_at or utc_now(),
            topic_id=topic_id,
            lesson_id=lesson_id,
        )

    @property
    def key(self) -> Tuple[Optional[str], ...]:
        """Replacement key within the record's category."""
        if self.kind is AssessmentKind.LESSON:
            return (self.topic_id, self.lesson_id)
        if self.kind is AssessmentKind.MODULE_TEST:
            return (self.topic_id,)
        if self.kind is AssessmentKind.SKILL_TEST_FINAL_EXAM:
            return (self.skill_test_id,)
        return ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "mcq_score": self.mcq_score,
            "coding_score": self.coding_score,
            "total_score": self.total_score,
            "max_score": self.max_score,
            "completed_at": self.completed_at.isoformat(),
        }
        optional = {
            "topic_id": self.topic_id,
            "lesson_id": self.lesson_id,
            "skill_test_id": self.skill_test_id,
            "attempt_id": self.attempt_id,
            "percentage": self.percentage,
            "passed": self.passed,
            "time_spent": self.time_spent,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssessmentRecord":
        return cls(
            kind=AssessmentKind.parse(data["kind"]),
            mcq_score=data.get("mcq_score", 0),
            coding_score=data.get("coding_score", 0),
            total_score=data.get("total_score", 0),
            max_score=data["max_score"],
            completed_at=_parse_timestamp(data.get("completed_at")),
            topic_id=data.get("topic_id"),
            lesson_id=data.get("lesson_id"),
            skill_test_id=data.get("skill_test_id"),
            attempt_id=data.get("attempt_id"),
            percentage=data.get("percentage"),
            passed=data.get("passed"),
            time_spent=data.get("time_spent"),
        )


# ============================================================================
# SCORE LEDGER AGGREGATE ROOT
# ============================================================================


class ScoreLedger(AggregateRoot):
    """
    Aggregate root for one (learner, course) ledger.

    Derived aggregates are never set directly; every business method ends in
    `_recompute()`, which rebuilds them from the stored records.
    """

    def __init__(
        self,
        key: LedgerKey,
        lesson_records: Optional[Iterable[AssessmentRecord]] = None,
        module_test_records: Optional[Iterable[AssessmentRecord]] = None,
        final_exam_record: Optional[AssessmentRecord] = None,
        skill_test_final_exam_records: Optional[Iterable[AssessmentRecord]] = None,
        lessons_completed: int = 0,
        module_tests_completed: int = 0,
        final_exam_completed: bool = False,
        skill_test_final_exams_completed: int = 0,
        rank: Optional[int] = None,
        percentile: Optional[int] = None,
        last_updated: Optional[datetime] = None,
    ) -> None:
        super().__init__(key)
        self._key = key

        self._lessons: List[AssessmentRecord] = list(lesson_records or [])
        self._module_tests: List[AssessmentRecord] = list(module_test_records or [])
        self._final_exam: Optional[AssessmentRecord] = final_exam_record
        self._skill_tests: List[AssessmentRecord] = list(skill_test_final_exam_records or [])

        self._lessons_completed = lessons_completed
        self._module_tests_completed = module_tests_completed
        self._final_exam_completed = final_exam_completed
        self._skill_tests_completed = skill_test_final_exams_completed

        self._rank = rank
        self._percentile = percentile
        self._last_updated = last_updated or utc_now()

        self._total_lesson_score: float = 0
        self._total_module_test_score: float = 0
        self._total_final_exam_score: float = 0
        self._total_skill_test_score: float = 0
        self._overall_score: float = 0
        self._average_score: float = 0.0
        self._recompute()

    @classmethod
    def new(cls, key: LedgerKey, now: Optional[datetime] = None) -> "ScoreLedger":
        """Zeroed ledger for a pair that has no history yet."""
        return cls(key, last_updated=now)

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def key(self) -> LedgerKey:
        return self._key

    @property
    def learner_id(self) -> str:
        return self._key.learner_id

    @property
    def course_id(self) -> str:
        return self._key.course_id

    @property
    def lesson_records(self) -> Tuple[AssessmentRecord, ...]:
        return tuple(self._lessons)

    @property
    def module_test_records(self) -> Tuple[AssessmentRecord, ...]:
        return tuple(self._module_tests)

    @property
    def final_exam_record(self) -> Optional[AssessmentRecord]:
        return self._final_exam

    @property
    def skill_test_final_exam_records(self) -> Tuple[AssessmentRecord, ...]:
        return tuple(self._skill_tests)

    @property
    def total_lesson_score(self) -> float:
        return self._total_lesson_score

    @property
    def total_module_test_score(self) -> float:
        return self._total_module_test_score

    @property
    def total_final_exam_score(self) -> float:
        return self._total_final_exam_score

    @property
    def total_skill_test_final_exam_score(self) -> float:
        return self._total_skill_test_score

    @property
    def overall_score(self) -> float:
        return self._overall_score

    @property
    def average_score(self) -> float:
        return self._average_score

    @property
    def lessons_completed(self) -> int:
        return self._lessons_completed

    @property
    def module_tests_completed(self) -> int:
        return self._module_tests_completed

    @property
    def final_exam_completed(self) -> bool:
        return self._final_exam_completed

    @property
    def skill_test_final_exams_completed(self) -> int:
        return self._skill_tests_completed

    @property
    def units_completed(self) -> int:
        return (
            self._lessons_completed
            + self._module_tests_completed
            + (1 if self._final_exam_completed else 0)
            + self._skill_tests_completed
        )

    @property
    def rank(self) -> Optional[int]:
        return self._rank

    @property
    def percentile(self) -> Optional[int]:
        return self._percentile

    @property
    def last_updated(self) -> datetime:
        return self._last_updated

    # ========================================================================
    # BUSINESS LOGIC - FOLDS
    # ========================================================================

    @staticmethod
    def _upsert(records: List[AssessmentRecord], record: AssessmentRecord) -> bool:
        """Replace the record with the same key in place; True when appended."""
        for index, existing in enumerate(records):
            if existing.key == record.key:
                records[index] = record
                return False
        records.append(record)
        return True

    def record_lesson(
        self,
        topic_id: str,
        lesson_id: str,
        mcq_score: float,
        coding_score: float,
        max_score: float,
        now: Optional[datetime] = None,
    ) -> AssessmentRecord:
        """
        Fold a micro-lesson result into the ledger.

        A resubmission for the same (topic_id, lesson_id) replaces the stored
        record; only a first submission increments `lessons_completed`.
        """
        validate_not_empty(topic_id, "topic_id")
        validate_not_empty(lesson_id, "lesson_id")
        now = now or utc_now()

        record = AssessmentRecord.scored(
            AssessmentKind.LESSON,
            mcq_score,
            coding_score,
            max_score,
            completed_at=now,
            topic_id=topic_id,
            lesson_id=lesson_id,
        )
        if self._upsert(self._lessons, record):
            self._lessons_completed += 1

        self._touch(AssessmentKind.LESSON, now)
        return record

    def record_module_test(
        self,
        topic_id: str,
        mcq_score: float,
        coding_score: float,
        max_score: float,
        now: Optional[datetime] = None,
    ) -> AssessmentRecord:
        """Fold a module test result; keyed by topic_id, replace on resubmission."""
        validate_not_empty(topic_id, "topic_id")
        now = now or utc_now()

        record = AssessmentRecord.scored(
            AssessmentKind.MODULE_TEST,
            mcq_score,
            coding_score,
            max_score,
            completed_at=now,
            topic_id=topic_id,
        )
        if self._upsert(self._module_tests, record):
            self._module_tests_completed += 1

        self._touch(AssessmentKind.MODULE_TEST, now)
        return record

    def record_final_exam(
        self,
        mcq_score: float,
        coding_score: float,
        max_score: float,
        now: Optional[datetime] = None,
    ) -> AssessmentRecord:
        """Fold the course final exam; the stored record is always replaced."""
        now = now or utc_now()

        self._final_exam = AssessmentRecord.scored(
            AssessmentKind.FINAL_EXAM,
            mcq_score,
            coding_score,
            max_score,
            completed_at=now,
        )
        self._final_exam_completed = True

        self._touch(AssessmentKind.FINAL_EXAM, now)
        return self._final_exam

    def record_skill_test_final_exam(
        self,
        skill_test_id: str,
        score: float,
        max_score: float,
        attempt_id: Optional[str] = None,
        percentage: Optional[float] = None,
        passed: Optional[bool] = None,
        time_spent: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Fold a skill-test final exam attempt (best attempt wins).

        Returns
        -------
        bool
            True if the attempt was stored, False if an equal or better
            attempt was already on record. Totals and `last_updated` are
            refreshed either way.
        """
        validate_not_empty(skill_test_id, "skill_test_id")
        now = now or utc_now()

        record = AssessmentRecord(
            kind=AssessmentKind.SKILL_TEST_FINAL_EXAM,
            mcq_score=0,
            coding_score=0,
            total_score=score,
            max_score=max_score,
            completed_at=now,
            skill_test_id=skill_test_id,
            attempt_id=attempt_id,
            percentage=percentage,
            passed=passed,
            time_spent=time_spent,
        )

        stored = True
        for index, existing in enumerate(self._skill_tests):
            if existing.skill_test_id == skill_test_id:
                if score > existing.total_score:
                    self._skill_tests[index] = record
                else:
                    stored = False
                break
        else:
            self._skill_tests.append(record)
            self._skill_tests_completed += 1

        self._touch(AssessmentKind.SKILL_TEST_FINAL_EXAM, now, stored=stored)
        return stored

    # ========================================================================
    # BUSINESS LOGIC - DERIVED VALUES
    # ========================================================================

    def _recompute(self) -> None:
        self._total_lesson_score = score_sum(r.total_score for r in self._lessons)
        self._total_module_test_score = score_sum(r.total_score for r in self._module_tests)
        self._total_final_exam_score = self._final_exam.total_score if self._final_exam else 0
        self._total_skill_test_score = score_sum(r.total_score for r in self._skill_tests)

        self._overall_score = score_sum(
            (
                self._total_lesson_score,
                self._total_module_test_score,
                self._total_final_exam_score,
                self._total_skill_test_score,
            )
        )

        units = self.units_completed
        self._average_score = self._overall_score / units if units > 0 else 0.0

    def _touch(self, kind: AssessmentKind, now: datetime, stored: bool = True) -> None:
        self._recompute()
        self._last_updated = now
        self.add_domain_event(
            SCORE_RECORDED_EVENT,
            {
                "learner_id": self.learner_id,
                "course_id": self.course_id,
                "assessment_kind": kind.value,
                "record_stored": stored,
                "overall_score": self._overall_score,
            },
        )

    @property
    def total_mcq_score(self) -> float:
        """MCQ marks across lessons, module tests and the final exam."""
        parts = [r.mcq_score for r in self._lessons]
        parts += [r.mcq_score for r in self._module_tests]
        if self._final_exam:
            parts.append(self._final_exam.mcq_score)
        return score_sum(parts)

    @property
    def total_coding_score(self) -> float:
        """Coding marks across lessons, module tests and the final exam."""
        parts = [r.coding_score for r in self._lessons]
        parts += [r.coding_score for r in self._module_tests]
        if self._final_exam:
            parts.append(self._final_exam.coding_score)
        return score_sum(parts)

    @property
    def strongest_area(self) -> str:
        return "MCQ" if self.total_mcq_score > self.total_coding_score else "Coding"

    def breakdown(self) -> Dict[str, float]:
        return {
            "lesson_score": self._total_lesson_score,
            "module_test_score": self._total_module_test_score,
            "final_exam_score": self._total_final_exam_score,
            "skill_test_final_exam_score": self._total_skill_test_score,
        }

    def progress(self) -> Dict[str, Any]:
        return {
            "lessons_completed": self._lessons_completed,
            "module_tests_completed": self._module_tests_completed,
            "final_exam_completed": self._final_exam_completed,
            "skill_test_final_exams_completed": self._skill_tests_completed,
        }

    def apply_rank(self, rank: int, percentile: int) -> bool:
        """Store sweep output; True when either value changed."""
        validate_positive(rank, "rank")
        if not 0 <= percentile <= 100:
            raise DomainValidationError(
                f"percentile must be between 0 and 100, got {percentile}", field="percentile"
            )
        changed = (rank, percentile) != (self._rank, self._percentile)
        self._rank = rank
        self._percentile = percentile
        return changed

    # ========================================================================
    # PERSISTENCE CONVERSION
    # ========================================================================

    @classmethod
    def from_db(cls, row: CourseLedgerEntry) -> "ScoreLedger":
        """
        Create a ScoreLedger from its database row.

        Stored aggregates are ignored and rebuilt from the records.
        """
        final_exam = row.final_exam_record
        return cls(
            key=LedgerKey(row.learner_id, row.course_id),
            lesson_records=[AssessmentRecord.from_dict(r) for r in row.lesson_records or []],
            module_test_records=[
                AssessmentRecord.from_dict(r) for r in row.module_test_records or []
            ],
            final_exam_record=AssessmentRecord.from_dict(final_exam) if final_exam else None,
            skill_test_final_exam_records=[
                AssessmentRecord.from_dict(r) for r in row.skill_test_final_exam_records or []
            ],
            lessons_completed=row.lessons_completed or 0,
            module_tests_completed=row.module_tests_completed or 0,
            final_exam_completed=bool(row.final_exam_completed),
            skill_test_final_exams_completed=row.skill_test_final_exams_completed or 0,
            rank=row.rank,
            percentile=row.percentile,
            last_updated=_parse_timestamp(row.last_updated),
        )

    def to_db_updates(self) -> Dict[str, Any]:
        """Column values for the ledger's database row."""
        return {
            "lesson_records": [r.to_dict() for r in self._lessons],
            "module_test_records": [r.to_dict() for r in self._module_tests],
            "final_exam_record": self._final_exam.to_dict() if self._final_exam else None,
            "skill_test_final_exam_records": [r.to_dict() for r in self._skill_tests],
            "total_lesson_score": self._total_lesson_score,
            "total_module_test_score": self._total_module_test_score,
            "total_final_exam_score": self._total_final_exam_score,
            "total_skill_test_final_exam_score": self._total_skill_test_score,
            "overall_score": self._overall_score,
            "average_score": self._average_score,
            "lessons_completed": self._lessons_completed,
            "module_tests_completed": self._module_tests_completed,
            "final_exam_completed": self._final_exam_completed,
            "skill_test_final_exams_completed": self._skill_tests_completed,
            "rank": self._rank,
            "percentile": self._percentile,
            "last_updated": self._last_updated,
        }
