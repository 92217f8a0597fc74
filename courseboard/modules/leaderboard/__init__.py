"""
Leaderboard Module

Per-course learner leaderboard: score submission, rank sweeps and ranked
queries over one ledger per (learner, course).
"""

from courseboard.modules.leaderboard.listeners import (
    ASSESSMENT_COMPLETED_EVENT,
    register_assessment_listeners,
)
from courseboard.modules.leaderboard.query_service import LeaderboardQueryService
from courseboard.modules.leaderboard.rank_engine import (
    RANKS_SWEPT_EVENT,
    RankEngine,
    RankedEntry,
    compute_percentile,
    competition_ranks,
    rank_entries,
)
from courseboard.modules.leaderboard.repository import LedgerStore
from courseboard.modules.leaderboard.scoring import AssessmentScorer, ScoredAssessment
from courseboard.modules.leaderboard.side_effects import record_score_best_effort
from courseboard.modules.leaderboard.submission_service import ScoreSubmissionService
from courseboard.modules.leaderboard.sweep_scheduler import RankSweepScheduler

__all__ = [
    "ASSESSMENT_COMPLETED_EVENT",
    "register_assessment_listeners",
    "LeaderboardQueryService",
    "RANKS_SWEPT_EVENT",
    "RankEngine",
    "RankedEntry",
    "compute_percentile",
    "competition_ranks",
    "rank_entries",
    "LedgerStore",
    "AssessmentScorer",
    "ScoredAssessment",
    "record_score_best_effort",
    "ScoreSubmissionService",
    "RankSweepScheduler",
]
