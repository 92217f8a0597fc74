"""
Assessment scoring: turn a raw completion payload into a scored result.

Purpose
-------
Resolve the assessment against the course catalog (or the skill-test
directory), sum the marks of the items the learner got right, and reject
submissions that cannot count, all before any ledger is touched.

Payload shapes (snake_case or camelCase keys)
---------------------------------------------
- lesson:                {topic_id, lesson_id, mcq_results, coding_results}
- module_test:           {topic_id, mcq_results, coding_results}
- final_exam:            {mcq_results, coding_results}
- skill_test_final_exam: {skill_test_id, attempt_id, score, max_score,
                          percentage, passed, time_spent}

An MCQ result counts when `is_correct` is true; a coding result counts when
its `verdict` is "Accepted". Results are matched to catalog items by index;
results past the end of the catalog list are ignored.

Marks
-----
Lesson questions without their own marks fall back to the course's scoring
config, then to `leaderboard.scoring.lesson_mcq_marks` /
`leaderboard.scoring.lesson_coding_marks`. Module tests and final exams use
catalog marks as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from courseboard.core.logging.logger import get_logger
from courseboard.core.validation.input_validator import InputValidator
from courseboard.domain.models.ledger import AssessmentKind, ScoreLedger
from courseboard.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from courseboard.core.config.manager import ConfigManager
    from courseboard.modules.catalog.interfaces import (
        AssessmentDefinition,
        CourseCatalog,
        CourseInfo,
        QuestionDefinition,
        SkillTestDirectory,
    )

ACCEPTED_VERDICT = "Accepted"

EMPTY_ASSESSMENT_MESSAGES = {
    AssessmentKind.LESSON: "Assessment must contain at least MCQs or coding challenges",
    AssessmentKind.MODULE_TEST: "Module test must contain at least MCQs or coding challenges",
    AssessmentKind.FINAL_EXAM: "Final exam must contain at least MCQs or coding challenges",
}


@dataclass(frozen=True)
class ScoredAssessment:
    """A validated, scored submission ready to fold into a ledger."""

    kind: AssessmentKind
    mcq_score: float = 0
    coding_score: float = 0
    max_score: float = 0
    topic_id: Optional[str] = None
    lesson_id: Optional[str] = None
    skill_test_id: Optional[str] = None
    attempt_id: Optional[str] = None
    score: float = 0
    percentage: Optional[float] = None
    passed: Optional[bool] = None
    time_spent: Optional[float] = None

    def apply_to(self, ledger: ScoreLedger, now: Optional[datetime] = None) -> bool:
        """Fold into `ledger`. Returns False only for a non-improving skill-test attempt."""
        if self.kind is AssessmentKind.LESSON:
            ledger.record_lesson(
                self.topic_id, self.lesson_id,
                self.mcq_score, self.coding_score, self.max_score, now=now,
            )
            return True

        if self.kind is AssessmentKind.MODULE_TEST:
            ledger.record_module_test(
                self.topic_id, self.mcq_score, self.coding_score, self.max_score, now=now
            )
            return True

        if self.kind is AssessmentKind.FINAL_EXAM:
            ledger.record_final_exam(
                self.mcq_score, self.coding_score, self.max_score, now=now
            )
            return True

        return ledger.record_skill_test_final_exam(
            self.skill_test_id,
            self.score,
            self.max_score,
            attempt_id=self.attempt_id,
            percentage=self.percentage,
            passed=self.passed,
            time_spent=self.time_spent,
            now=now,
        )

    @property
    def total_score(self) -> float:
        if self.kind is AssessmentKind.SKILL_TEST_FINAL_EXAM:
            return self.score
        return self.mcq_score + self.coding_score


def _pick(payload: Mapping[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in payload:
        return payload[snake]
    return payload.get(camel, default)


def _results(payload: Mapping[str, Any], snake: str, camel: str) -> Sequence[Mapping[str, Any]]:
    results = _pick(payload, snake, camel, None)
    if results is None:
        return ()
    if not isinstance(results, (list, tuple)) or not all(
        isinstance(item, Mapping) for item in results
    ):
        raise ValidationError(snake, "Must be a list of result objects")
    return results


def _mcq_correct(result: Mapping[str, Any]) -> bool:
    return bool(_pick(result, "is_correct", "isCorrect", False))


def _coding_accepted(result: Mapping[str, Any]) -> bool:
    return result.get("verdict") == ACCEPTED_VERDICT


class AssessmentScorer:
    """Validates completion payloads and scores them against the catalog."""

    def __init__(
        self,
        catalog: CourseCatalog,
        skill_tests: SkillTestDirectory,
        config_manager: ConfigManager,
        logger: Optional[Logger] = None,
    ) -> None:
        self._catalog = catalog
        self._skill_tests = skill_tests
        self._config = config_manager
        self.log = logger or get_logger(__name__)

    async def score(
        self,
        course_id: str,
        kind: AssessmentKind,
        assessment_data: Optional[Mapping[str, Any]],
    ) -> ScoredAssessment:
        """
        Score one submission.

        Raises
        ------
        NotFoundError
            If the course does not exist.
        ValidationError
            For a missing payload, unresolvable catalog references, an empty
            assessment, or a skill test that cannot count toward the course.
        """
        if not assessment_data or not isinstance(assessment_data, Mapping):
            raise ValidationError("assessment_data", "Assessment data is required")

        course = await self._catalog.get_course(course_id)
        if course is None:
            raise NotFoundError("Course", course_id)

        if kind is AssessmentKind.LESSON:
            scored = await self._score_lesson(course, assessment_data)
        elif kind is AssessmentKind.MODULE_TEST:
            scored = await self._score_module_test(course, assessment_data)
        elif kind is AssessmentKind.FINAL_EXAM:
            scored = await self._score_final_exam(course, assessment_data)
        else:
            scored = await self._score_skill_test(course, assessment_data)

        self.log.debug(
            "Assessment scored",
            extra={
                "course_id": course_id,
                "assessment_kind": kind.value,
                "total_score": scored.total_score,
                "max_score": scored.max_score,
            },
        )
        return scored

    # ========================================================================
    # CATALOG-SCORED KINDS
    # ========================================================================

    def _lesson_fallback_marks(self, course: CourseInfo) -> tuple[float, float]:
        mcq = course.scoring.lesson_mcq_marks or self._config.get(
            "leaderboard.scoring.lesson_mcq_marks", 1
        )
        coding = course.scoring.lesson_coding_marks or self._config.get(
            "leaderboard.scoring.lesson_coding_marks", 5
        )
        return float(mcq), float(coding)

    async def _score_lesson(
        self, course: CourseInfo, payload: Mapping[str, Any]
    ) -> ScoredAssessment:
        topic_id = InputValidator.validate_string(
            _pick(payload, "topic_id", "topicId"), "topic_id", max_length=64
        )
        lesson_id = InputValidator.validate_string(
            _pick(payload, "lesson_id", "lessonId"), "lesson_id", max_length=64
        )

        definition = await self._catalog.get_lesson(course.course_id, topic_id, lesson_id)
        if definition is None:
            raise ValidationError("lesson_id", "Lesson not found for this topic")

        mcq_default, coding_default = self._lesson_fallback_marks(course)
        mcq_score, coding_score, max_score = self._sum_marks(
            AssessmentKind.LESSON, definition, payload, mcq_default, coding_default
        )
        return ScoredAssessment(
            kind=AssessmentKind.LESSON,
            mcq_score=mcq_score,
            coding_score=coding_score,
            max_score=max_score,
            topic_id=topic_id,
            lesson_id=lesson_id,
        )

    async def _score_module_test(
        self, course: CourseInfo, payload: Mapping[str, Any]
    ) -> ScoredAssessment:
        topic_id = InputValidator.validate_string(
            _pick(payload, "topic_id", "topicId"), "topic_id", max_length=64
        )

        definition = await self._catalog.get_module_test(course.course_id, topic_id)
        if definition is None:
            raise ValidationError("topic_id", "Module test not found for this topic")

        mcq_score, coding_score, max_score = self._sum_marks(
            AssessmentKind.MODULE_TEST, definition, payload
        )
        return ScoredAssessment(
            kind=AssessmentKind.MODULE_TEST,
            mcq_score=mcq_score,
            coding_score=coding_score,
            max_score=max_score,
            topic_id=topic_id,
        )

    async def _score_final_exam(
        self, course: CourseInfo, payload: Mapping[str, Any]
    ) -> ScoredAssessment:
        definition = await self._catalog.get_final_exam(course.course_id)
        if definition is None:
            raise ValidationError("course_id", "Final exam not found for this course")

        mcq_score, coding_score, max_score = self._sum_marks(
            AssessmentKind.FINAL_EXAM, definition, payload
        )
        return ScoredAssessment(
            kind=AssessmentKind.FINAL_EXAM,
            mcq_score=mcq_score,
            coding_score=coding_score,
            max_score=max_score,
        )

    def _sum_marks(
        self,
        kind: AssessmentKind,
        definition: AssessmentDefinition,
        payload: Mapping[str, Any],
        mcq_default: float = 0,
        coding_default: float = 0,
    ) -> tuple[float, float, float]:
        """Return (mcq_score, coding_score, max_score) for one catalog assessment."""
        mcq_results = _results(payload, "mcq_results", "mcqResults")
        coding_results = _results(payload, "coding_results", "codingResults")

        def marks(question: QuestionDefinition, default: float) -> float:
            return float(question.marks or default)

        max_score = sum(marks(q, mcq_default) for q in definition.mcqs) + sum(
            marks(q, coding_default) for q in definition.coding_challenges
        )
        if max_score <= 0:
            raise ValidationError("assessment_data", EMPTY_ASSESSMENT_MESSAGES[kind])

        mcq_score = sum(
            marks(question, mcq_default)
            for question, result in zip(definition.mcqs, mcq_results)
            if _mcq_correct(result)
        )
        coding_score = sum(
            marks(question, coding_default)
            for question, result in zip(definition.coding_challenges, coding_results)
            if _coding_accepted(result)
        )
        return mcq_score, coding_score, max_score

    # ========================================================================
    # SKILL-TEST FINAL EXAMS
    # ========================================================================

    async def _score_skill_test(
        self, course: CourseInfo, payload: Mapping[str, Any]
    ) -> ScoredAssessment:
        skill_test_id = InputValidator.validate_string(
            _pick(payload, "skill_test_id", "skillTestId"), "skill_test_id", max_length=64
        )

        skill_test = await self._skill_tests.get_skill_test(skill_test_id)
        if skill_test is None:
            raise ValidationError("skill_test_id", "Skill test not found")
        if not skill_test.is_final_exam:
            raise ValidationError("skill_test_id", "Skill test is not a final exam")
        if skill_test.course_id is not None and skill_test.course_id != course.course_id:
            raise ValidationError(
                "skill_test_id", "Skill test does not belong to the specified course"
            )

        score = InputValidator.validate_number(payload.get("score"), "score", min_value=0)
        max_score = InputValidator.validate_number(
            _pick(payload, "max_score", "maxScore"), "max_score", min_value=0
        )
        if max_score <= 0:
            raise ValidationError("max_score", "Skill test maximum score must be positive")

        attempt_id = _pick(payload, "attempt_id", "attemptId")
        percentage = payload.get("percentage")
        time_spent = _pick(payload, "time_spent", "timeSpent")
        passed = payload.get("passed")

        return ScoredAssessment(
            kind=AssessmentKind.SKILL_TEST_FINAL_EXAM,
            skill_test_id=skill_test_id,
            attempt_id=str(attempt_id) if attempt_id is not None else None,
            score=score,
            max_score=max_score,
            percentage=(
                InputValidator.validate_number(percentage, "percentage", 0, 100)
                if percentage is not None
                else None
            ),
            passed=bool(passed) if passed is not None else None,
            time_spent=(
                InputValidator.validate_number(time_spent, "time_spent", min_value=0)
                if time_spent is not None
                else None
            ),
        )
