"""Read-only views of course content consumed by the leaderboard."""

from courseboard.modules.catalog.interfaces import (
    AssessmentDefinition,
    CourseCatalog,
    CourseInfo,
    CourseScoringConfig,
    QuestionDefinition,
    SkillTestDirectory,
    SkillTestInfo,
)
from courseboard.modules.catalog.memory import (
    InMemoryCourseCatalog,
    InMemorySkillTestDirectory,
    build_assessment,
)

__all__ = [
    "AssessmentDefinition",
    "CourseCatalog",
    "CourseInfo",
    "CourseScoringConfig",
    "QuestionDefinition",
    "SkillTestDirectory",
    "SkillTestInfo",
    "InMemoryCourseCatalog",
    "InMemorySkillTestDirectory",
    "build_assessment",
]
