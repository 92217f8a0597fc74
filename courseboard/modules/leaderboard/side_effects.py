"""
Best-effort leaderboard updates triggered by other workflows.

A lesson completion (or any other primary action) must succeed even if the
leaderboard cannot be updated. `record_score_best_effort` runs the
submission and turns any failure into a log line and a `None` result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from courseboard.core.logging.logger import get_logger
from courseboard.modules.shared.exceptions import CourseboardDomainException

if TYPE_CHECKING:
    from courseboard.modules.leaderboard.submission_service import ScoreSubmissionService

logger = get_logger(__name__)


async def record_score_best_effort(
    submission_service: ScoreSubmissionService,
    learner_id: str,
    course_id: str,
    assessment_kind: str,
    assessment_data: Optional[Mapping[str, Any]],
    *,
    source: str = "unknown",
) -> Optional[Dict[str, Any]]:
    """
    Submit a score without letting a failure reach the caller.

    Returns the submission result, or None if it was rejected or failed.
    """
    context = {
        "learner_id": learner_id,
        "course_id": course_id,
        "assessment_kind": str(assessment_kind),
        "source": source,
    }
    try:
        return await submission_service.submit_score(
            learner_id, course_id, assessment_kind, assessment_data
        )

    except CourseboardDomainException as exc:
        logger.warning(
            "Leaderboard update rejected; primary workflow unaffected",
            extra={**context, "error_code": exc.error_code, "error": exc.message},
        )
        return None

    except Exception as exc:
        logger.error(
            "Leaderboard update failed; primary workflow unaffected",
            extra={**context, "error_type": type(exc).__name__, "error": str(exc)},
            exc_info=True,
        )
        return None
