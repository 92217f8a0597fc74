"""
Courseboard: per-course learner leaderboards.

Folds lesson, module-test, final-exam and skill-test results into one ledger
entry per (learner, course), ranks learners per course, and serves ranked
pages, individual ranks and score breakdowns.
"""

__version__ = "1.0.0"
