"""
Event listeners that feed the leaderboard from other workflows.

`assessment.completed` payload:
    {learner_id, course_id, assessment_kind, assessment_data, source?}

The listener runs in the LOW tier, so the publishing workflow never waits
for (or fails because of) the leaderboard update.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List

from courseboard.core.event.types import EventPayload, ListenerPriority
from courseboard.core.logging.logger import get_logger
from courseboard.modules.leaderboard.side_effects import record_score_best_effort

if TYPE_CHECKING:
    from courseboard.core.event.bus import EventBus
    from courseboard.modules.leaderboard.submission_service import ScoreSubmissionService

logger = get_logger(__name__)

ASSESSMENT_COMPLETED_EVENT = "assessment.completed"


def register_assessment_listeners(
    event_bus: EventBus, submission_service: ScoreSubmissionService
) -> List[str]:
    """Subscribe the leaderboard to assessment completions. Returns listener ids."""

    async def on_assessment_completed(payload: EventPayload) -> None:
        learner_id = payload.get("learner_id")
        course_id = payload.get("course_id")
        if not learner_id or not course_id:
            logger.warning(
                "assessment.completed without learner_id/course_id; ignored",
                extra={"payload_keys": sorted(payload.keys())},
            )
            return

        await record_score_best_effort(
            submission_service,
            str(learner_id),
            str(course_id),
            payload.get("assessment_kind", ""),
            payload.get("assessment_data"),
            source=str(payload.get("source", ASSESSMENT_COMPLETED_EVENT)),
        )

    listener_id = event_bus.subscribe(
        ASSESSMENT_COMPLETED_EVENT,
        on_assessment_completed,
        priority=ListenerPriority.LOW,
        identifier="leaderboard.assessment_completed",
    )
    return [listener_id]
