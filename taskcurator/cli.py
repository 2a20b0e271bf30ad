"""Command line entry point.

Usage:
    taskcurator curation:daily [--user-id ID] [--project-id ID] [--dry-run] [--workers N]
"""

import argparse
import json
import logging
import sys

from taskcurator.curation.scheduler import build_queue, schedule_daily_curation
from taskcurator.database import init_db, session_scope
from taskcurator.log import configure_logging

logger = logging.getLogger("taskcurator.curation")


def run_daily_curation(args, session_factory=None) -> int:
    queue = build_queue(session_factory=session_factory, workers=args.workers)

    try:
        with session_scope(session_factory) as db:
            report = schedule_daily_curation(
                db,
                queue,
                user_id=args.user_id,
                project_id=args.project_id,
                dry_run=args.dry_run,
            )
    except Exception as exc:
        logger.exception("daily_curation_fanout_failed")
        print(json.dumps({"success": False, "error": str(exc)}))
        return 1

    jobs = queue.drain()
    report["jobs"] = [
        {"id": j.id, "name": j.name, "kwargs": j.kwargs, "status": j.status, "error": j.error}
        for j in jobs
    ]
    report["failed"] = len([j for j in jobs if j.status == "failed"])
    report["success"] = True

    print(json.dumps(report, indent=2, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskcurator", description="Task curator maintenance commands")
    commands = parser.add_subparsers(dest="command", required=True)

    daily = commands.add_parser(
        "curation:daily",
        help="Run daily task curation and iteration checks",
    )
    daily.add_argument("--user-id", type=int, help="Run for one user only, skipping eligibility checks")
    daily.add_argument("--project-id", type=int, help="Limit iteration checks to one project")
    daily.add_argument("--dry-run", action="store_true", help="Show what would be dispatched without running it")
    daily.add_argument("--workers", type=int, default=None, help="Worker threads used to drain the queue")
    daily.set_defaults(handler=run_daily_curation)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    init_db()
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
