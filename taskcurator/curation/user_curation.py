"""One user's daily curation pass.

The pass reads every active project the user can see, asks the AI provider
(or the fallback rules) what to work on, and replaces today's curation, weight
metric and curated task rows. All writes go through the caller's session and
are committed together by the job queue or ``run_user_curation``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from taskcurator.curation import metrics, prompt_builder
from taskcurator.curation.curatable import CuratableKind
from taskcurator.curation.fallback import fallback_curation
from taskcurator.database import session_scope
from taskcurator.errors import NotFoundError
from taskcurator.models.curation import CuratedTask, DailyCuration
from taskcurator.models.project import Project, ProjectMember
from taskcurator.models.task import Task
from taskcurator.models.user import User
from taskcurator.schemas.curation_schema import CurationResult
from taskcurator.task.ai_service import AIService, AIServiceError, service_for_project

logger = logging.getLogger("taskcurator.curation")

AIFactory = Callable[[Project], AIService]


def visible_projects(db: Session, user_id: int) -> list[Project]:
    member_of = db.query(ProjectMember.project_id).filter(ProjectMember.user_id == user_id)
    return (
        db.query(Project)
        .filter(
            Project.status == "active",
            or_(Project.user_id == user_id, Project.id.in_(member_of)),
        )
        .order_by(Project.id)
        .all()
    )


def open_tasks(db: Session, project: Project) -> list[Task]:
    return (
        db.query(Task)
        .filter(Task.project_id == project.id, Task.status != "completed")
        .order_by(Task.due_date.is_(None), Task.due_date, Task.id)
        .all()
    )


def curatable_tasks(tasks: list[Task]) -> list[Task]:
    """Leaf tasks among ``tasks``; only these are offered for the day."""
    return [t for t in tasks if t.is_leaf]


# ==========================
#  SUGGESTIONS
# ==========================
def ai_curation(
    db: Session,
    user: User,
    project: Project,
    tasks: list[Task],
    today: date,
    history: dict,
    ai_factory: AIFactory = service_for_project,
) -> Optional[CurationResult]:
    """AI suggestions for one project, or ``None`` when the fallback must run."""
    if not project.ai_provider:
        logger.info("curation_ai_not_configured", extra={"project_id": project.id})
        return None

    ai = ai_factory(project)
    prompt = prompt_builder.build_curation_prompt(project, user, tasks, today, history)
    prompt_builder.store_prompt(db, user, project, prompt, task_count=len(tasks))

    try:
        data = ai.generate_json(prompt_builder.CURATION_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=1500)
        result = CurationResult.model_validate(data)
    except (AIServiceError, PydanticValidationError) as exc:
        logger.warning(
            "curation_ai_failed",
            extra={"project_id": project.id, "user_id": user.id, "error_type": type(exc).__name__},
        )
        return None

    if not result.suggestions:
        logger.warning("curation_ai_empty", extra={"project_id": project.id, "user_id": user.id})
        return None

    return result.model_copy(update={"ai_generated": True})


# ==========================
#  PERSISTENCE
# ==========================
def store_curation(db: Session, user: User, project: Project, result: CurationResult, today: date) -> DailyCuration:
    curation = (
        db.query(DailyCuration)
        .filter(
            DailyCuration.user_id == user.id,
            DailyCuration.project_id == project.id,
            DailyCuration.work_date == today,
        )
        .one_or_none()
    )
    if curation is None:
        curation = DailyCuration(user_id=user.id, project_id=project.id, work_date=today)
        db.add(curation)

    curation.suggestions = [s.model_dump() for s in result.suggestions]
    curation.summary = result.summary
    curation.problems = list(result.problems)
    curation.focus_areas = list(result.focus_areas)
    curation.ai_generated = result.ai_generated
    curation.ai_provider = project.ai_provider if result.ai_generated else None
    db.flush()
    return curation


def store_curated_tasks(
    db: Session, user: User, project: Project, task_ids: list[int], today: date
) -> list[CuratedTask]:
    db.query(CuratedTask).filter(
        CuratedTask.assigned_to == user.id,
        CuratedTask.work_date == today,
        CuratedTask.project_id == project.id,
    ).delete(synchronize_session="fetch")

    rows = []
    for rank, task_id in enumerate(task_ids, start=1):
        row = CuratedTask(
            curatable_kind=CuratableKind.TASK.value,
            curatable_id=task_id,
            project_id=project.id,
            assigned_to=user.id,
            work_date=today,
            initial_index=rank,
            current_index=rank,
            moved_count=0,
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return rows


def clear_curation(db: Session, user: User, project: Project, today: date) -> None:
    store_curated_tasks(db, user, project, [], today)
    db.query(DailyCuration).filter(
        DailyCuration.user_id == user.id,
        DailyCuration.project_id == project.id,
        DailyCuration.work_date == today,
    ).delete(synchronize_session="fetch")
    db.flush()


# ==========================
#  UNIT
# ==========================
def curate_user(
    db: Session,
    user_id: int,
    today: date | None = None,
    ai_factory: AIFactory = service_for_project,
) -> dict:
    """Run the pass for ``user_id`` inside ``db`` without committing."""
    today = today or date.today()
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    logger.info("user_curation_started", extra={"user_id": user.id})
    prompt_builder.clear_previous_prompts(db, user.id)

    projects = visible_projects(db, user.id)
    history = prompt_builder.task_history(db, user.id, today)

    report = {"user_id": user.id, "projects": 0, "ai_generated": 0, "curated_tasks": 0}
    weighed = []

    for project in projects:
        leaves = curatable_tasks(open_tasks(db, project))
        weighed.append((project, leaves))

        if not leaves:
            clear_curation(db, user, project, today)
            continue

        result = ai_curation(db, user, project, leaves, today, history, ai_factory)
        if result is None:
            result = fallback_curation(leaves, today, history["average_story_points"])

        store_curation(db, user, project, result, today)

        known = {t.id for t in leaves}
        ranked = [task_id for task_id in result.ranked_task_ids() if task_id in known]
        store_curated_tasks(db, user, project, ranked, today)

        report["projects"] += 1
        report["ai_generated"] += int(result.ai_generated)
        report["curated_tasks"] += len(ranked)

    metrics.record_weight_metrics(db, user.id, weighed, today)

    logger.info("user_curation_completed", extra=report)
    return report


def run_user_curation(user_id: int, session_factory=None, **kwargs) -> dict:
    with session_scope(session_factory) as db:
        return curate_user(db, user_id, **kwargs)
