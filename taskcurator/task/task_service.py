from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from taskcurator.errors import DomainRuleViolation, NotFoundError, ValidationError
from taskcurator.models.project import Project
from taskcurator.models.task import Task
from taskcurator.schemas.task_schema import TaskCreate
from taskcurator.task.sizing import TaskSizingService

logger = logging.getLogger("taskcurator.task")

TASK_FILTERS = ("all", "top-level", "leaf")


def next_position(db: Session, project_id: int, parent_id: Optional[int]) -> int:
    query = db.query(func.max(Task.position)).filter(Task.project_id == project_id)
    if parent_id is None:
        query = query.filter(Task.parent_id.is_(None))
    else:
        query = query.filter(Task.parent_id == parent_id)
    return (query.scalar() or 0) + 1


def get_project_task(db: Session, project: Project, task_id: int) -> Task:
    task = db.get(Task, task_id)
    if task is None or task.project_id != project.id:
        raise NotFoundError("Task", task_id)
    return task


def resolve_parent(db: Session, project: Project, parent_id: int) -> Task:
    """Parent lookup shared by task creation, breakdown and batch creation."""
    parent = db.get(Task, parent_id)
    if parent is None:
        raise ValidationError("parent_task_id", "The selected parent task does not exist.")
    if parent.project_id != project.id:
        raise DomainRuleViolation("Invalid parent task.", field="parent_task_id")
    return parent


def create_task(db: Session, project: Project, data: TaskCreate, sizing: TaskSizingService | None = None) -> Task:
    parent = resolve_parent(db, project, data.parent_id) if data.parent_id else None

    task = Task(
        project_id=project.id,
        parent_id=parent.id if parent else None,
        depth=parent.depth + 1 if parent else 0,
        title=data.title,
        description=data.description,
        status=data.status,
        priority=data.priority,
        due_date=data.due_date,
        position=next_position(db, project.id, parent.id if parent else None),
    )
    db.add(task)
    db.flush()

    if task.is_top_level:
        sizing = sizing or TaskSizingService(db)
        task.size = sizing.size_task(task)

    db.commit()
    db.refresh(task)

    logger.info(
        "task_created",
        extra={"task_id": task.id, "project_id": project.id, "parent_id": task.parent_id, "size": task.size},
    )
    return task


def list_tasks(db: Session, project: Project, task_filter: str = "all") -> list[Task]:
    if task_filter not in TASK_FILTERS:
        raise ValidationError("filter", "Filter must be one of: " + ", ".join(TASK_FILTERS))

    query = db.query(Task).filter(Task.project_id == project.id)
    if task_filter == "top-level":
        query = query.filter(Task.parent_id.is_(None))
    elif task_filter == "leaf":
        query = query.filter(~Task.children.any())
    return query.order_by(Task.depth, Task.parent_id, Task.position).all()


def task_counts(db: Session, project: Project) -> dict:
    base = db.query(Task).filter(Task.project_id == project.id)
    return {
        "all": base.count(),
        "top_level": base.filter(Task.parent_id.is_(None)).count(),
        "leaf": base.filter(~Task.children.any()).count(),
    }


def update_status(db: Session, task: Task, status: str) -> Task:
    previous = task.status
    task.status = status
    db.commit()
    db.refresh(task)

    logger.info("task_status_updated", extra={"task_id": task.id, "from": previous, "to": status})
    return task
