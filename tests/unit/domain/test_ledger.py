"""
Unit Tests for ScoreLedger Domain Model
=======================================

Purpose
-------
Test the ledger folds and derived aggregates without a database.

Test Coverage
-------------
- LedgerKey and AssessmentKind parsing
- Replace-on-resubmit for lessons, module tests and the final exam
- Best-attempt-wins for skill-test final exams
- Aggregate consistency and average score
- Rank application and domain event emission
- Round trip through the row representation

Testing Strategy
----------------
- Unit tests (fast, no database)
- AAA pattern (Arrange, Act, Assert)
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from courseboard.domain.models.base import DomainValidationError
from courseboard.domain.models.ledger import (
    SCORE_RECORDED_EVENT,
    AssessmentKind,
    AssessmentRecord,
    LedgerKey,
    ScoreLedger,
)

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_ledger() -> ScoreLedger:
    return ScoreLedger.new(LedgerKey("learner-1", "course-1"), now=T0)


def assert_consistent(ledger: ScoreLedger) -> None:
    assert ledger.overall_score == (
        ledger.total_lesson_score
        + ledger.total_module_test_score
        + ledger.total_final_exam_score
        + ledger.total_skill_test_final_exam_score
    )


# ============================================================================
# VALUE OBJECTS
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestLedgerKey:
    def test_create_valid_key(self):
        key = LedgerKey("learner-1", "course-1")

        assert key.learner_id == "learner-1"
        assert key.course_id == "course-1"

    @pytest.mark.parametrize("learner_id,course_id", [("", "c"), ("l", "  ")])
    def test_key_requires_both_ids(self, learner_id, course_id):
        with pytest.raises(DomainValidationError):
            LedgerKey(learner_id, course_id)

    def test_key_is_immutable(self):
        key = LedgerKey("learner-1", "course-1")

        with pytest.raises(Exception):  # FrozenInstanceError
            key.course_id = "other"  # type: ignore[misc]


@pytest.mark.unit
@pytest.mark.domain
class TestAssessmentKind:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("lesson", AssessmentKind.LESSON),
            ("moduleTest", AssessmentKind.MODULE_TEST),
            ("module-test", AssessmentKind.MODULE_TEST),
            ("final_exam", AssessmentKind.FINAL_EXAM),
            ("finalExam", AssessmentKind.FINAL_EXAM),
            ("skillTestFinalExam", AssessmentKind.SKILL_TEST_FINAL_EXAM),
        ],
    )
    def test_parse_accepts_common_spellings(self, raw, expected):
        assert AssessmentKind.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["quiz", "", None])
    def test_parse_rejects_unknown_kind(self, raw):
        with pytest.raises(DomainValidationError) as exc_info:
            AssessmentKind.parse(raw)

        assert exc_info.value.field == "assessment_kind"


@pytest.mark.unit
@pytest.mark.domain
class TestAssessmentRecord:
    def test_total_must_match_parts(self):
        with pytest.raises(DomainValidationError) as exc_info:
            AssessmentRecord(
                kind=AssessmentKind.LESSON,
                mcq_score=5,
                coding_score=5,
                total_score=20,
                max_score=20,
            )

        assert exc_info.value.field == "total_score"

    def test_max_score_must_be_positive(self):
        with pytest.raises(DomainValidationError):
            AssessmentRecord.scored(AssessmentKind.FINAL_EXAM, 0, 0, max_score=0)

    def test_negative_scores_rejected(self):
        with pytest.raises(DomainValidationError):
            AssessmentRecord.scored(AssessmentKind.MODULE_TEST, -1, 0, max_score=10)

    def test_dict_round_trip_keeps_optional_fields(self):
        record = AssessmentRecord(
            kind=AssessmentKind.SKILL_TEST_FINAL_EXAM,
            mcq_score=0,
            coding_score=0,
            total_score=42,
            max_score=50,
            completed_at=T0,
            skill_test_id="skill-1",
            attempt_id="attempt-9",
            passed=True,
        )

        restored = AssessmentRecord.from_dict(record.to_dict())

        assert restored == record
        assert "percentage" not in record.to_dict()


# ============================================================================
# FOLDS
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestLessonFold:
    def test_first_lesson_updates_totals(self):
        # Arrange
        ledger = make_ledger()

        # Act
        ledger.record_lesson("t1", "le1", mcq_score=10, coding_score=5, max_score=20)

        # Assert
        assert ledger.total_lesson_score == 15
        assert ledger.lessons_completed == 1
        assert ledger.overall_score == 15

    def test_resubmitting_lesson_replaces_record(self):
        # Arrange
        ledger = make_ledger()
        ledger.record_lesson("t1", "le1", 10, 5, 20)

        # Act
        ledger.record_lesson("t1", "le1", 2, 0, 20)

        # Assert
        assert len(ledger.lesson_records) == 1
        assert ledger.lesson_records[0].total_score == 2
        assert ledger.lessons_completed == 1
        assert ledger.total_lesson_score == 2

    def test_same_lesson_id_in_other_topic_is_distinct(self):
        ledger = make_ledger()

        ledger.record_lesson("t1", "le1", 1, 0, 5)
        ledger.record_lesson("t2", "le1", 2, 0, 5)

        assert ledger.lessons_completed == 2
        assert ledger.total_lesson_score == 3

    def test_lesson_requires_ids(self):
        ledger = make_ledger()

        with pytest.raises(DomainValidationError):
            ledger.record_lesson("", "le1", 1, 0, 5)

        assert ledger.lessons_completed == 0


@pytest.mark.unit
@pytest.mark.domain
class TestModuleTestAndFinalExamFolds:
    def test_lesson_then_module_test(self):
        # Arrange
        ledger = make_ledger()
        ledger.record_lesson("t1", "le1", 10, 5, 20)

        # Act
        ledger.record_module_test("t1", mcq_score=15, coding_score=10, max_score=30)

        # Assert
        assert ledger.total_module_test_score == 25
        assert ledger.overall_score == 40
        assert ledger.module_tests_completed == 1

    def test_module_test_resubmission_replaces(self):
        ledger = make_ledger()
        ledger.record_module_test("t1", 15, 10, 30)

        ledger.record_module_test("t1", 5, 0, 30)

        assert ledger.module_tests_completed == 1
        assert ledger.total_module_test_score == 5

    def test_final_exam_always_replaced(self):
        ledger = make_ledger()
        ledger.record_final_exam(20, 30, 50)

        ledger.record_final_exam(5, 5, 50)

        assert ledger.final_exam_completed is True
        assert ledger.total_final_exam_score == 10
        assert ledger.final_exam_record.total_score == 10


@pytest.mark.unit
@pytest.mark.domain
class TestSkillTestFold:
    def test_lower_score_keeps_best_attempt(self):
        # Arrange
        ledger = make_ledger()
        ledger.record_skill_test_final_exam("s1", 50, 100, attempt_id="a1")

        # Act
        stored = ledger.record_skill_test_final_exam("s1", 30, 100, attempt_id="a2")

        # Assert
        assert stored is False
        assert ledger.skill_test_final_exam_records[0].total_score == 50
        assert ledger.skill_test_final_exam_records[0].attempt_id == "a1"
        assert ledger.skill_test_final_exams_completed == 1

    def test_higher_score_replaces(self):
        ledger = make_ledger()
        ledger.record_skill_test_final_exam("s1", 50, 100)

        stored = ledger.record_skill_test_final_exam("s1", 70, 100)

        assert stored is True
        assert ledger.total_skill_test_final_exam_score == 70
        assert ledger.skill_test_final_exams_completed == 1

    def test_equal_score_is_not_stored(self):
        ledger = make_ledger()
        ledger.record_skill_test_final_exam("s1", 50, 100, attempt_id="a1")

        stored = ledger.record_skill_test_final_exam("s1", 50, 100, attempt_id="a2")

        assert stored is False
        assert ledger.skill_test_final_exam_records[0].attempt_id == "a1"

    def test_non_improving_attempt_still_touches_ledger(self):
        ledger = make_ledger()
        ledger.record_skill_test_final_exam("s1", 50, 100, now=T0)
        later = T0 + timedelta(minutes=5)

        ledger.record_skill_test_final_exam("s1", 10, 100, now=later)

        assert ledger.last_updated == later


# ============================================================================
# DERIVED VALUES
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestDerivedValues:
    def test_aggregate_consistency_across_all_kinds(self):
        ledger = make_ledger()

        ledger.record_lesson("t1", "le1", 10, 5, 20)
        assert_consistent(ledger)
        ledger.record_module_test("t1", 15, 10, 30)
        assert_consistent(ledger)
        ledger.record_final_exam(20, 25, 50)
        assert_consistent(ledger)
        ledger.record_skill_test_final_exam("s1", 33, 40)
        assert_consistent(ledger)

        assert ledger.overall_score == 15 + 25 + 45 + 33

    def test_average_score_over_completed_units(self):
        ledger = make_ledger()
        ledger.record_lesson("t1", "le1", 10, 0, 20)
        ledger.record_lesson("t1", "le2", 0, 20, 20)
        ledger.record_final_exam(15, 15, 50)

        assert ledger.units_completed == 3
        assert ledger.average_score == pytest.approx(60 / 3)

    def test_empty_ledger_has_zero_average(self):
        ledger = make_ledger()

        assert ledger.average_score == 0.0
        assert ledger.overall_score == 0

    def test_strongest_area(self):
        ledger = make_ledger()
        ledger.record_lesson("t1", "le1", 10, 5, 20)
        assert ledger.strongest_area == "MCQ"

        ledger.record_module_test("t1", 0, 30, 30)
        assert ledger.strongest_area == "Coding"

    def test_skill_tests_excluded_from_mcq_and_coding_totals(self):
        ledger = make_ledger()
        ledger.record_lesson("t1", "le1", 4, 6, 20)
        ledger.record_skill_test_final_exam("s1", 90, 100)

        assert ledger.total_mcq_score == 4
        assert ledger.total_coding_score == 6

    def test_equal_marks_in_any_order_give_equal_totals(self):
        # Arrange
        forward = make_ledger()
        backward = ScoreLedger.new(LedgerKey("learner-2", "course-1"), now=T0)
        marks = [("le1", 0.1), ("le2", 0.2), ("le3", 0.3)]

        # Act
        for lesson_id, mark in marks:
            forward.record_lesson("t1", lesson_id, mark, 0, 1)
        for lesson_id, mark in reversed(marks):
            backward.record_lesson("t1", lesson_id, mark, 0, 1)

        # Assert
        assert forward.overall_score == backward.overall_score == 0.6
        assert forward.total_mcq_score == backward.total_mcq_score


@pytest.mark.unit
@pytest.mark.domain
class TestRankAndEvents:
    def test_apply_rank_reports_change(self):
        ledger = make_ledger()

        assert ledger.apply_rank(1, 100) is True
        assert ledger.apply_rank(1, 100) is False
        assert ledger.apply_rank(2, 50) is True
        assert (ledger.rank, ledger.percentile) == (2, 50)

    @pytest.mark.parametrize("rank,percentile", [(0, 50), (1, 101), (1, -1)])
    def test_apply_rank_rejects_out_of_range(self, rank, percentile):
        ledger = make_ledger()

        with pytest.raises(DomainValidationError):
            ledger.apply_rank(rank, percentile)

    def test_every_fold_emits_score_recorded(self):
        ledger = make_ledger()
        ledger.record_lesson("t1", "le1", 10, 5, 20)
        ledger.record_skill_test_final_exam("s1", 5, 10)
        ledger.record_skill_test_final_exam("s1", 1, 10)

        events = ledger.clear_domain_events()

        assert [e.event_name for e in events] == [SCORE_RECORDED_EVENT] * 3
        assert events[0].payload["assessment_kind"] == "lesson"
        assert events[0].payload["overall_score"] == 15
        assert events[2].payload["record_stored"] is False
        assert ledger.get_pending_events() == []


# ============================================================================
# PERSISTENCE CONVERSION
# ============================================================================


@pytest.mark.unit
@pytest.mark.domain
class TestPersistenceConversion:
    def test_from_db_rebuilds_aggregates_from_records(self):
        # Arrange
        source = make_ledger()
        source.record_lesson("t1", "le1", 10, 5, 20)
        source.record_module_test("t1", 15, 10, 30)
        source.apply_rank(3, 40)
        updates = source.to_db_updates()
        # Stale aggregate on the row must not leak into the domain model.
        updates["overall_score"] = 999
        row = SimpleNamespace(learner_id="learner-1", course_id="course-1", **updates)

        # Act
        restored = ScoreLedger.from_db(row)

        # Assert
        assert restored.overall_score == 40
        assert restored.lessons_completed == 1
        assert restored.module_tests_completed == 1
        assert (restored.rank, restored.percentile) == (3, 40)
        assert restored.last_updated == source.last_updated

    def test_naive_timestamps_are_read_as_utc(self):
        updates = make_ledger().to_db_updates()
        updates["last_updated"] = datetime(2025, 3, 1, 12, 0)
        row = SimpleNamespace(learner_id="learner-1", course_id="course-1", **updates)

        restored = ScoreLedger.from_db(row)

        assert restored.last_updated == T0
