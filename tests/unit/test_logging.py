"""
Unit tests for the logging context and JSON formatting.
"""

import json
import logging

import pytest

from courseboard.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord(
        "courseboard.modules.leaderboard", logging.INFO, __file__, 10, message, None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    ContextFilter().filter(record)
    return record


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.mark.unit
class TestLogContext:
    async def test_fields_visible_inside_scope_only(self):
        async with LogContext(learner_id="learner-1", course_id="course-py", operation="submit"):
            record = make_record()
            assert record.learner_id == "learner-1"
            assert record.course_id == "course-py"
            assert record.operation == "submit"

        assert get_log_context() == {}

    def test_nested_scope_keeps_correlation_id(self):
        with LogContext(learner_id="learner-1", correlation_id="abc123"):
            with LogContext(course_id="course-py", operation="rank_sweep") as inner:
                record = make_record()

        assert inner.correlation_id == "abc123"
        assert record.correlation_id == "abc123"
        assert record.learner_id == "N/A"

    def test_component_defaults_to_logger_root(self):
        record = make_record()

        assert record.component == "courseboard"
        assert record.correlation_id == "N/A"

    def test_set_log_context_merges(self):
        set_log_context(learner_id="learner-1")
        set_log_context(operation="stats", request_id="req-9")

        context = get_log_context()
        assert context["learner_id"] == "learner-1"
        assert context["operation"] == "stats"
        assert context["correlation_id"] == "req-9"


@pytest.mark.unit
class TestJSONFormatter:
    def test_context_and_extra_fields(self):
        # Arrange
        with LogContext(learner_id="learner-1", course_id="course-py", correlation_id="c-1"):
            record = make_record("Score recorded", overall_score=40)

        # Act
        data = json.loads(JSONFormatter().format(record))

        # Assert
        assert data["message"] == "Score recorded"
        assert data["learner_id"] == "learner-1"
        assert data["correlation_id"] == "c-1"
        assert data["extra"] == {"overall_score": 40}

    def test_missing_context_is_omitted(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert "learner_id" not in data
        assert "extra" not in data
