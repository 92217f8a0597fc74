#!/usr/bin/env python3
"""
resweep_course.py
-----------------

Recompute persisted ranks and percentiles for one or more courses.

USAGE:
  python scripts/resweep_course.py COURSE_ID [COURSE_ID ...]
  python scripts/resweep_course.py COURSE_ID --database-url postgresql+asyncpg://...
  python scripts/resweep_course.py COURSE_ID --show 20      # print the top 20

Uses DATABASE_URL / CONFIG_DIR from the environment unless overridden.
Exit code is 1 if any course failed to sweep.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from courseboard.core.config.manager import ConfigManager
from courseboard.core.database.service import DatabaseService
from courseboard.core.event import event_bus
from courseboard.core.logging.logger import get_logger, shutdown_logging
from courseboard.modules.leaderboard.rank_engine import RankEngine
from courseboard.modules.leaderboard.repository import LedgerStore
from courseboard.modules.shared.exceptions import CourseboardDomainException

logger = get_logger("courseboard.scripts.resweep_course")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Courseboard rank resweep tool")
    parser.add_argument("course_ids", nargs="+", metavar="COURSE_ID")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--config-dir", default=None, help="Override CONFIG_DIR")
    parser.add_argument(
        "--show",
        type=int,
        default=10,
        help="Rows to print per course (0 prints none)",
    )
    return parser


async def run(
    course_ids: List[str],
    database_url: Optional[str] = None,
    config_dir: Optional[str] = None,
    show: int = 10,
) -> int:
    failures = 0

    await DatabaseService.initialize(database_url=database_url)
    try:
        await ConfigManager.initialize(config_dir)
        engine = RankEngine(
            LedgerStore(),
            config_manager=ConfigManager,
            event_bus=event_bus,
        )

        for course_id in course_ids:
            try:
                ranked = await engine.force_resweep(course_id)
            except CourseboardDomainException as exc:
                failures += 1
                print(f"❌ {course_id}: {exc.message}")
                continue

            print("=" * 60)
            print(f"✓ {course_id}: {len(ranked)} learners ranked")
            for row in ranked[: max(show, 0)]:
                print(
                    f"  #{row['rank']:<4} {row['learner_id']:<24} "
                    f"score={row['overall_score']:<8g} percentile={row['percentile']}"
                )
    finally:
        await DatabaseService.shutdown()

    return 1 if failures else 0


def main() -> None:
    args = build_parser().parse_args()
    try:
        code = asyncio.run(
            run(args.course_ids, args.database_url, args.config_dir, args.show)
        )
    finally:
        shutdown_logging()
    sys.exit(code)


if __name__ == "__main__":
    main()
