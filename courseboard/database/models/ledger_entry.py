"""
CourseLedgerEntry: one row per (learner, course).
Schema only; aggregation rules live in `courseboard.domain.models.ledger`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from courseboard.core.database.base import Base, IdMixin, TimestampMixin, utc_now

# JSONB on PostgreSQL, generic JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class CourseLedgerEntry(Base, IdMixin, TimestampMixin):
    """
    Persisted score ledger for one learner in one course.

    Aggregate columns are denormalized copies of what the domain model
    derives from the record columns; they exist for ranking queries.
    """

    # ========================================================================
    # TABLE CONFIGURATION
    # ========================================================================

    __tablename__ = "course_ledger_entries"
    __table_args__ = (
        UniqueConstraint("learner_id", "course_id", name="uq_ledger_learner_course"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    learner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version for concurrent updates",
    )

    # ========================================================================
    # RECORDS
    # ========================================================================

    lesson_records: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    module_test_records: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    final_exam_record: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=True, default=None
    )
    skill_test_final_exam_records: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    # ========================================================================
    # AGGREGATES
    # ========================================================================

    total_lesson_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_module_test_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_final_exam_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_skill_test_final_exam_score: Mapped[float] = mapped_column(
        Float, nullable=False, default=0
    )
    overall_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    average_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    # ========================================================================
    # PROGRESS
    # ========================================================================

    lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    module_tests_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_exam_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    skill_test_final_exams_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    # ========================================================================
    # RANKING
    # ========================================================================

    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    percentile: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"CourseLedgerEntry(learner_id={self.learner_id!r}, course_id={self.course_id!r}, "
            f"overall_score={self.overall_score!r}, rank={self.rank!r})"
        )


# Leaderboard reads scan one course in descending score order.
Index(
    "ix_ledger_course_overall",
    CourseLedgerEntry.course_id,
    CourseLedgerEntry.overall_score.desc(),
)
