"""
Course catalog and skill-test directory contracts.

Purpose
-------
Narrow read-only views of the collaborators that own course content. The
leaderboard never invents marks: it sums the catalog's `marks` for the
items a learner got right, and rejects assessments whose maximum is zero.

Non-Responsibilities
--------------------
- Course authoring and storage
- Judging code submissions (the caller reports verdicts)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class QuestionDefinition:
    """One MCQ or coding challenge. `marks` may be unset for lesson questions."""

    question_id: str
    marks: Optional[float] = None


@dataclass(frozen=True)
class AssessmentDefinition:
    mcqs: Tuple[QuestionDefinition, ...] = ()
    coding_challenges: Tuple[QuestionDefinition, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.mcqs and not self.coding_challenges


@dataclass(frozen=True)
class CourseScoringConfig:
    """Per-course fallback marks for lesson questions without their own."""

    lesson_mcq_marks: Optional[float] = None
    lesson_coding_marks: Optional[float] = None


@dataclass(frozen=True)
class CourseInfo:
    course_id: str
    title: str = ""
    scoring: CourseScoringConfig = field(default_factory=CourseScoringConfig)


@dataclass(frozen=True)
class SkillTestInfo:
    skill_test_id: str
    is_final_exam: bool
    course_id: Optional[str] = None


class CourseCatalog(ABC):
    """Read access to course structure and question marks."""

    @abstractmethod
    async def get_course(self, course_id: str) -> Optional[CourseInfo]:
        ...

    @abstractmethod
    async def get_lesson(
        self, course_id: str, topic_id: str, lesson_id: str
    ) -> Optional[AssessmentDefinition]:
        ...

    @abstractmethod
    async def get_module_test(
        self, course_id: str, topic_id: str
    ) -> Optional[AssessmentDefinition]:
        ...

    @abstractmethod
    async def get_final_exam(self, course_id: str) -> Optional[AssessmentDefinition]:
        ...


class SkillTestDirectory(ABC):
    @abstractmethod
    async def get_skill_test(self, skill_test_id: str) -> Optional[SkillTestInfo]:
        ...
