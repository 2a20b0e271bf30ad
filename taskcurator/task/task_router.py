import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from taskcurator.auth.security import get_owned_project, get_owned_task
from taskcurator.database import get_db
from taskcurator.models.project import Project
from taskcurator.models.task import Task
from taskcurator.schemas.task_schema import (
    BreakdownRequest,
    ReorderRequest,
    SizingUpdate,
    StatusUpdate,
    SubtaskBatchRequest,
    TaskCreate,
    TaskListItem,
    TaskRead,
)

# AI service (keeps logic out of router)
from taskcurator.task.ai_service import AIService, service_for_project
from taskcurator.task import breakdown, reorder, sizing, task_service

logger = logging.getLogger("taskcurator.task")


def get_ai_service(project: Project = Depends(get_owned_project)) -> AIService:
    return service_for_project(project)


# ==========================
#  PROJECT TASKS
# ==========================
router = APIRouter(
    prefix="/projects/{project_id}/tasks",
    tags=["tasks"],
)


@router.post("", response_model=TaskRead, status_code=201)
def create_task(
    data: TaskCreate,
    project: Project = Depends(get_owned_project),
    ai: AIService = Depends(get_ai_service),
    db: Session = Depends(get_db),
):
    return task_service.create_task(db, project, data, sizing.TaskSizingService(db, ai))


@router.get("")
def list_tasks(
    task_filter: str = Query("all", alias="filter"),
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    tasks = task_service.list_tasks(db, project, task_filter)
    return {
        "filter": task_filter,
        "tasks": [TaskListItem.model_validate(t).model_dump(mode="json") for t in tasks],
        "counts": task_service.task_counts(db, project),
    }


@router.post("/breakdown")
def breakdown_task(
    data: BreakdownRequest,
    project: Project = Depends(get_owned_project),
    ai: AIService = Depends(get_ai_service),
    db: Session = Depends(get_db),
):
    return breakdown.breakdown_task(db, project, data, ai_service=ai)


@router.post("/subtasks")
def create_subtasks(
    data: SubtaskBatchRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    created = breakdown.create_subtasks(db, project, data.parent_task_id, data.subtasks)
    return {
        "success": True,
        "message": f"{len(created)} subtasks created successfully.",
        "subtasks": [TaskRead.model_validate(t).model_dump(mode="json") for t in created],
    }


@router.post("/{task_id}/reorder")
def reorder_task(
    task_id: int,
    data: ReorderRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    return reorder.reorder_task(db, project.id, task_id, data.new_position, confirmed=data.confirmed)


@router.patch("/{task_id}/status")
def update_status(
    task_id: int,
    data: StatusUpdate,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    task = task_service.get_project_task(db, project, task_id)
    task = task_service.update_status(db, task, data.status)
    return {
        "success": True,
        "message": "Task status updated successfully.",
        "task": TaskRead.model_validate(task).model_dump(mode="json"),
    }


# ==========================
#  SINGLE TASK
# ==========================
tasks_router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
)


@tasks_router.patch("/{task_id}", response_model=TaskRead)
def update_sizing(
    data: SizingUpdate,
    task: Task = Depends(get_owned_task),
    db: Session = Depends(get_db),
):
    return sizing.update_sizing(db, task, data.size, data.current_story_points)
