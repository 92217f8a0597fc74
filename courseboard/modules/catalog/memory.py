"""
In-memory catalog implementations.

Used by tests and by deployments that load course structure once at startup
(e.g. from a fixture file). Registration helpers return `self` so a catalog
can be built fluently.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from courseboard.modules.catalog.interfaces import (
    AssessmentDefinition,
    CourseCatalog,
    CourseInfo,
    CourseScoringConfig,
    QuestionDefinition,
    SkillTestDirectory,
    SkillTestInfo,
)


def build_assessment(
    mcq_marks: Iterable[Optional[float]] = (),
    coding_marks: Iterable[Optional[float]] = (),
) -> AssessmentDefinition:
    """Build a definition from plain marks lists (`None` = use course default)."""
    return AssessmentDefinition(
        mcqs=tuple(
            QuestionDefinition(question_id=f"mcq-{i + 1}", marks=m)
            for i, m in enumerate(mcq_marks)
        ),
        coding_challenges=tuple(
            QuestionDefinition(question_id=f"code-{i + 1}", marks=m)
            for i, m in enumerate(coding_marks)
        ),
    )


class InMemoryCourseCatalog(CourseCatalog):
    def __init__(self) -> None:
        self._courses: Dict[str, CourseInfo] = {}
        self._lessons: Dict[Tuple[str, str, str], AssessmentDefinition] = {}
        self._module_tests: Dict[Tuple[str, str], AssessmentDefinition] = {}
        self._final_exams: Dict[str, AssessmentDefinition] = {}

    def add_course(
        self,
        course_id: str,
        title: str = "",
        lesson_mcq_marks: Optional[float] = None,
        lesson_coding_marks: Optional[float] = None,
    ) -> InMemoryCourseCatalog:
        self._courses[course_id] = CourseInfo(
            course_id=course_id,
            title=title,
            scoring=CourseScoringConfig(
                lesson_mcq_marks=lesson_mcq_marks,
                lesson_coding_marks=lesson_coding_marks,
            ),
        )
        return self

    def add_lesson(
        self,
        course_id: str,
        topic_id: str,
        lesson_id: str,
        definition: AssessmentDefinition,
    ) -> InMemoryCourseCatalog:
        self._lessons[(course_id, topic_id, lesson_id)] = definition
        return self

    def add_module_test(
        self, course_id: str, topic_id: str, definition: AssessmentDefinition
    ) -> InMemoryCourseCatalog:
        self._module_tests[(course_id, topic_id)] = definition
        return self

    def add_final_exam(
        self, course_id: str, definition: AssessmentDefinition
    ) -> InMemoryCourseCatalog:
        self._final_exams[course_id] = definition
        return self

    async def get_course(self, course_id: str) -> Optional[CourseInfo]:
        return self._courses.get(course_id)

    async def get_lesson(
        self, course_id: str, topic_id: str, lesson_id: str
    ) -> Optional[AssessmentDefinition]:
        return self._lessons.get((course_id, topic_id, lesson_id))

    async def get_module_test(
        self, course_id: str, topic_id: str
    ) -> Optional[AssessmentDefinition]:
        return self._module_tests.get((course_id, topic_id))

    async def get_final_exam(self, course_id: str) -> Optional[AssessmentDefinition]:
        return self._final_exams.get(course_id)


class InMemorySkillTestDirectory(SkillTestDirectory):
    def __init__(self) -> None:
        self._tests: Dict[str, SkillTestInfo] = {}

    def add_skill_test(
        self,
        skill_test_id: str,
        is_final_exam: bool = True,
        course_id: Optional[str] = None,
    ) -> InMemorySkillTestDirectory:
        self._tests[skill_test_id] = SkillTestInfo(
            skill_test_id=skill_test_id,
            is_final_exam=is_final_exam,
            course_id=course_id,
        )
        return self

    async def get_skill_test(self, skill_test_id: str) -> Optional[SkillTestInfo]:
        return self._tests.get(skill_test_id)
