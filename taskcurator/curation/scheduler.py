"""Daily fan-out: one curation job per eligible user, one iteration check per
auto-iterating project. The scheduler only enumerates and dispatches."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from taskcurator.curation.job_queue import JobQueue
from taskcurator.curation.user_curation import curate_user
from taskcurator.models.project import Project
from taskcurator.models.user import User

logger = logging.getLogger("taskcurator.curation")

USER_CURATION_JOB = "user_curation"
ITERATION_CHECK_JOB = "iteration_check"

IterationChecker = Callable[[Session, Project], None]


# ==========================
#  ELIGIBILITY
# ==========================
def is_eligible(user: User) -> bool:
    return (
        user.email_verified_at is not None
        and not user.pending_approval
        and user.approved_at is not None
    )


def eligible_users(users: Iterable[User]) -> list[User]:
    return [u for u in users if is_eligible(u)]


def auto_iterating_projects(db: Session, project_id: Optional[int] = None) -> list[Project]:
    query = db.query(Project).filter(
        Project.project_type == "iterative",
        Project.status == "active",
        Project.auto_create_iterations.is_(True),
        Project.default_iteration_length_weeks > 0,
    )
    if project_id is not None:
        query = query.filter(Project.id == project_id)
    return query.order_by(Project.id).all()


# ==========================
#  ITERATION CHECK
# ==========================
def log_iteration_check(db: Session, project: Project) -> None:
    logger.info(
        "iteration_check_noop",
        extra={"project_id": project.id, "iteration_length_weeks": project.default_iteration_length_weeks},
    )


_iteration_checker: IterationChecker = log_iteration_check


def set_iteration_checker(checker: IterationChecker) -> None:
    global _iteration_checker
    _iteration_checker = checker


def iteration_check(session: Session, project_id: int) -> dict:
    project = session.get(Project, project_id)
    if project is None or not project.auto_iterates:
        logger.info("iteration_check_skipped", extra={"project_id": project_id})
        return {"project_id": project_id, "checked": False}

    _iteration_checker(session, project)
    return {"project_id": project_id, "checked": True}


def build_queue(session_factory=None, workers: int | None = None) -> JobQueue:
    queue = JobQueue(session_factory=session_factory, workers=workers)
    queue.register(USER_CURATION_JOB, curate_user)
    queue.register(ITERATION_CHECK_JOB, iteration_check)
    return queue


# ==========================
#  FAN-OUT
# ==========================
def schedule_daily_curation(
    db: Session,
    queue: JobQueue,
    user_id: Optional[int] = None,
    project_id: Optional[int] = None,
    dry_run: bool = False,
) -> dict:
    """Dispatch today's jobs and report what was (or would be) dispatched.

    ``user_id`` targets a single user and skips the eligibility filter.
    ``project_id`` narrows the iteration checks to one project.
    """
    report = {
        "dry_run": dry_run,
        "users": [],
        "missing_user_id": None,
        "projects": [],
        "dispatched": 0,
    }

    if user_id is not None:
        user = db.get(User, user_id)
        if user is None:
            report["missing_user_id"] = user_id
            logger.warning("curation_user_not_found", extra={"user_id": user_id})
            users = []
        else:
            users = [user]
    else:
        users = eligible_users(db.query(User).order_by(User.id).all())

    for user in users:
        report["users"].append(user.id)
        if not dry_run:
            queue.dispatch(USER_CURATION_JOB, user_id=user.id)
            report["dispatched"] += 1

    for project in auto_iterating_projects(db, project_id):
        report["projects"].append(project.id)
        if not dry_run:
            queue.dispatch(ITERATION_CHECK_JOB, project_id=project.id)
            report["dispatched"] += 1

    logger.info(
        "daily_curation_scheduled",
        extra={
            "dry_run": dry_run,
            "user_count": len(report["users"]),
            "project_count": len(report["projects"]),
            "dispatched": report["dispatched"],
        },
    )
    return report
