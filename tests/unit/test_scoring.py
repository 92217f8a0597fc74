"""
Unit tests for AssessmentScorer.

Payloads are scored against the in-memory catalog from conftest; no database
is involved, so every rejection here happens before a ledger could change.
"""

import pytest

from courseboard.domain.models.ledger import AssessmentKind, LedgerKey, ScoreLedger
from courseboard.modules.leaderboard.scoring import AssessmentScorer, ScoredAssessment
from courseboard.modules.shared.exceptions import NotFoundError, ValidationError
from tests.conftest import COURSE_ID, EMPTY_TOPIC_ID, OTHER_COURSE_ID, TOPIC_ID


@pytest.mark.unit
class TestLessonScoring:
    async def test_sums_marks_of_correct_answers(self, scorer):
        # Arrange
        payload = {
            "topic_id": TOPIC_ID,
            "lesson_id": "lesson-1",
            "mcq_results": [{"is_correct": True}, {"is_correct": True}],
            "coding_results": [{"verdict": "Accepted"}, {"verdict": "Wrong Answer"}],
        }

        # Act
        scored = await scorer.score(COURSE_ID, AssessmentKind.LESSON, payload)

        # Assert
        assert (scored.mcq_score, scored.coding_score, scored.max_score) == (10, 5, 20)
        assert scored.total_score == 15

    async def test_accepts_camel_case_payload(self, scorer):
        payload = {
            "topicId": TOPIC_ID,
            "lessonId": "lesson-1",
            "mcqResults": [{"isCorrect": True}, {"isCorrect": False}],
            "codingResults": [],
        }

        scored = await scorer.score(COURSE_ID, AssessmentKind.LESSON, payload)

        assert scored.mcq_score == 5
        assert scored.coding_score == 0

    async def test_unmarked_questions_use_default_marks(self, scorer):
        payload = {
            "topic_id": TOPIC_ID,
            "lesson_id": "lesson-2",
            "mcq_results": [{"is_correct": True}, {"is_correct": False}],
            "coding_results": [{"verdict": "Accepted"}],
        }

        scored = await scorer.score(COURSE_ID, AssessmentKind.LESSON, payload)

        assert scored.max_score == 7
        assert scored.total_score == 6

    async def test_course_scoring_overrides_yaml_defaults(self, catalog, skill_tests, config_manager):
        # Arrange
        from courseboard.modules.catalog.memory import build_assessment

        catalog.add_course("course-weighted", lesson_mcq_marks=2, lesson_coding_marks=10)
        catalog.add_lesson("course-weighted", "t", "l", build_assessment([None], [None]))
        scorer = AssessmentScorer(catalog, skill_tests, config_manager)
        payload = {
            "topic_id": "t",
            "lesson_id": "l",
            "mcq_results": [{"is_correct": True}],
            "coding_results": [{"verdict": "Accepted"}],
        }

        # Act
        scored = await scorer.score("course-weighted", AssessmentKind.LESSON, payload)

        # Assert
        assert (scored.mcq_score, scored.coding_score, scored.max_score) == (2, 10, 12)

    async def test_yaml_override_changes_fallback(self, scorer, config_manager):
        config_manager.override("leaderboard.scoring.lesson_coding_marks", 20)
        payload = {
            "topic_id": TOPIC_ID,
            "lesson_id": "lesson-3",
            "coding_results": [{"verdict": "Accepted"}],
        }

        scored = await scorer.score(COURSE_ID, AssessmentKind.LESSON, payload)

        assert scored.coding_score == 20
        assert scored.max_score == 22

    async def test_extra_results_are_ignored(self, scorer):
        payload = {
            "topic_id": TOPIC_ID,
            "lesson_id": "lesson-1",
            "mcq_results": [{"is_correct": True}] * 5,
        }

        scored = await scorer.score(COURSE_ID, AssessmentKind.LESSON, payload)

        assert scored.mcq_score == 10

    async def test_unknown_lesson_rejected(self, scorer):
        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(
                COURSE_ID,
                AssessmentKind.LESSON,
                {"topic_id": TOPIC_ID, "lesson_id": "lesson-99"},
            )

        assert exc_info.value.field == "lesson_id"

    async def test_results_must_be_list_of_objects(self, scorer):
        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(
                COURSE_ID,
                AssessmentKind.LESSON,
                {"topic_id": TOPIC_ID, "lesson_id": "lesson-1", "mcq_results": "all correct"},
            )

        assert exc_info.value.field == "mcq_results"


@pytest.mark.unit
class TestModuleTestAndFinalExamScoring:
    async def test_module_test(self, scorer):
        payload = {
            "topic_id": TOPIC_ID,
            "mcq_results": [{"is_correct": True}] * 3 + [{"is_correct": False}],
            "coding_results": [{"verdict": "Accepted"}],
        }

        scored = await scorer.score(COURSE_ID, AssessmentKind.MODULE_TEST, payload)

        assert (scored.mcq_score, scored.coding_score, scored.max_score) == (15, 10, 30)
        assert scored.topic_id == TOPIC_ID

    async def test_empty_module_test_rejected(self, scorer):
        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(
                COURSE_ID, AssessmentKind.MODULE_TEST, {"topic_id": EMPTY_TOPIC_ID}
            )

        assert exc_info.value.validation_message == (
            "Module test must contain at least MCQs or coding challenges"
        )

    async def test_missing_module_test_rejected(self, scorer):
        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(COURSE_ID, AssessmentKind.MODULE_TEST, {"topic_id": "topic-x"})

        assert exc_info.value.field == "topic_id"

    async def test_final_exam(self, scorer):
        payload = {
            "mcq_results": [{"is_correct": True}, {"is_correct": True}],
            "coding_results": [{"verdict": "Time Limit Exceeded"}],
        }

        scored = await scorer.score(COURSE_ID, AssessmentKind.FINAL_EXAM, payload)

        assert scored.total_score == 20
        assert scored.max_score == 50

    async def test_course_without_final_exam_rejected(self, scorer):
        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(OTHER_COURSE_ID, AssessmentKind.FINAL_EXAM, {"mcq_results": []})

        assert exc_info.value.field == "course_id"


@pytest.mark.unit
class TestSkillTestScoring:
    async def test_valid_attempt(self, scorer):
        payload = {
            "skillTestId": "skill-final",
            "attemptId": 77,
            "score": 42,
            "maxScore": 50,
            "percentage": 84,
            "passed": True,
            "timeSpent": 1800,
        }

        scored = await scorer.score(COURSE_ID, AssessmentKind.SKILL_TEST_FINAL_EXAM, payload)

        assert scored.skill_test_id == "skill-final"
        assert scored.attempt_id == "77"
        assert scored.total_score == 42
        assert scored.max_score == 50
        assert scored.percentage == 84
        assert scored.passed is True

    async def test_skill_test_without_course_binding_accepted(self, scorer):
        scored = await scorer.score(
            COURSE_ID,
            AssessmentKind.SKILL_TEST_FINAL_EXAM,
            {"skill_test_id": "skill-unbound", "score": 1, "max_score": 2},
        )

        assert scored.score == 1

    @pytest.mark.parametrize(
        "skill_test_id,message",
        [
            ("skill-missing", "Skill test not found"),
            ("skill-practice", "Skill test is not a final exam"),
            ("skill-js", "Skill test does not belong to the specified course"),
        ],
    )
    async def test_unusable_skill_tests_rejected(self, scorer, skill_test_id, message):
        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(
                COURSE_ID,
                AssessmentKind.SKILL_TEST_FINAL_EXAM,
                {"skill_test_id": skill_test_id, "score": 10, "max_score": 20},
            )

        assert exc_info.value.field == "skill_test_id"
        assert exc_info.value.validation_message == message

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"score": -1}, "score"),
            ({"max_score": 0}, "max_score"),
            ({"percentage": 140}, "percentage"),
            ({"time_spent": -5}, "time_spent"),
        ],
    )
    async def test_invalid_numbers_rejected(self, scorer, overrides, field):
        payload = {"skill_test_id": "skill-final", "score": 10, "max_score": 20, **overrides}

        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(COURSE_ID, AssessmentKind.SKILL_TEST_FINAL_EXAM, payload)

        assert exc_info.value.field == field


@pytest.mark.unit
class TestCommonRejections:
    @pytest.mark.parametrize("payload", [None, {}, ["not", "a", "mapping"]])
    async def test_missing_payload(self, scorer, payload):
        with pytest.raises(ValidationError) as exc_info:
            await scorer.score(COURSE_ID, AssessmentKind.LESSON, payload)

        assert exc_info.value.field == "assessment_data"

    async def test_unknown_course(self, scorer):
        with pytest.raises(NotFoundError) as exc_info:
            await scorer.score("course-missing", AssessmentKind.FINAL_EXAM, {"mcq_results": []})

        assert exc_info.value.error_code == "COURSE_NOT_FOUND"


@pytest.mark.unit
class TestScoredAssessmentApply:
    def test_apply_lesson(self):
        ledger = ScoreLedger.new(LedgerKey("l1", "c1"))
        scored = ScoredAssessment(
            kind=AssessmentKind.LESSON,
            mcq_score=10,
            coding_score=5,
            max_score=20,
            topic_id="t1",
            lesson_id="le1",
        )

        assert scored.apply_to(ledger) is True
        assert ledger.overall_score == 15

    def test_apply_non_improving_skill_test(self):
        ledger = ScoreLedger.new(LedgerKey("l1", "c1"))
        best = ScoredAssessment(
            kind=AssessmentKind.SKILL_TEST_FINAL_EXAM, skill_test_id="s1", score=50, max_score=100
        )
        worse = ScoredAssessment(
            kind=AssessmentKind.SKILL_TEST_FINAL_EXAM, skill_test_id="s1", score=30, max_score=100
        )

        best.apply_to(ledger)

        assert worse.apply_to(ledger) is False
        assert ledger.overall_score == 50
