from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable

from sqlalchemy.orm import Session

from taskcurator.curation.curatable import CuratableKind
from taskcurator.models.curation import CuratedTask, CurationPrompt
from taskcurator.models.project import Project
from taskcurator.models.task import Task
from taskcurator.models.user import User

logger = logging.getLogger("taskcurator.curation")

CURATION_SYSTEM_PROMPT = (
    "You are an expert project manager and productivity advisor. Analyze the user's tasks "
    "and their completion history to provide personalized daily curation suggestions. "
    "Match tasks to the user's capabilities and consider their average story points. "
    "Always respond with valid JSON only."
)

RESPONSE_FORMAT = """Respond with JSON in this format:
{
  "suggestions": [
    {"type": "priority", "task_id": 123, "message": "Focus on this task today"},
    {"type": "risk", "task_id": 456, "message": "This task is at risk of delay"},
    {"type": "optimization", "message": "Consider breaking down large tasks"}
  ],
  "summary": "Brief overall assessment",
  "focus_areas": ["area1", "area2"],
  "problems": ["problem1"],
  "recommended_tasks": [123, 456]
}"""


def task_history(db: Session, user_id: int, today: date, days: int = 30) -> dict:
    """Completion stats for tasks curated to ``user_id`` over the last ``days``."""
    since = today - timedelta(days=days)
    tasks = (
        db.query(Task)
        .join(
            CuratedTask,
            (CuratedTask.curatable_id == Task.id) & (CuratedTask.curatable_kind == CuratableKind.TASK.value),
        )
        .filter(
            CuratedTask.assigned_to == user_id,
            CuratedTask.work_date >= since,
            Task.status == "completed",
        )
        .distinct()
        .all()
    )
    points = [t.current_story_points for t in tasks if (t.current_story_points or 0) > 0]
    return {
        "total_tasks_completed": len(tasks),
        "total_story_points": sum(points),
        "average_story_points": round(sum(points) / len(points), 2) if points else 0,
    }


def describe_task(task: Task) -> str:
    line = f"- ID: {task.id} - {task.title} ({task.status}, priority {task.priority})"
    if task.due_date:
        line += f" - Due: {task.due_date.isoformat()}"
    if task.size:
        line += f" - Size: {task.size}"
    if task.current_story_points:
        line += f" - Points: {task.current_story_points}"
    if task.parent is not None:
        line += f" - Parent: {task.parent.title}"
    return line


def build_curation_prompt(
    project: Project,
    user: User,
    tasks: Iterable[Task],
    today: date,
    history: dict | None = None,
) -> str:
    history = history or {"total_tasks_completed": 0, "total_story_points": 0, "average_story_points": 0}
    lines = [
        "Please analyze the following project and user context to provide daily curation suggestions:",
        "",
        "PROJECT:",
        f"- Title: {project.title}",
        f"- Type: {project.project_type}",
        f"- Description: {project.description or 'No description provided'}",
    ]
    if project.due_date:
        lines.append(f"- Project Due Date: {project.due_date.isoformat()}")

    lines += [
        "",
        "USER:",
        f"- Name: {user.name or user.email}",
        f"- Current Date: {today.isoformat()}",
        "",
        "RECENT PERFORMANCE (LAST MONTH):",
        f"- Tasks Completed: {history['total_tasks_completed']}",
        f"- Story Points Completed: {history['total_story_points']}",
        f"- Average Story Points per Task: {history['average_story_points']}",
        "",
        "AVAILABLE LEAF TASKS:",
    ]
    lines += [describe_task(task) for task in tasks]

    lines += [
        "",
        "Please provide suggestions for:",
        "1. Priority tasks to focus on today",
        "2. Tasks that are overdue or at risk",
        "3. Tasks that need sizing or splitting",
        "4. Overall project progress insights",
        "",
        RESPONSE_FORMAT,
    ]
    return "\n".join(lines)


def store_prompt(db: Session, user: User, project: Project, prompt_text: str, task_count: int) -> CurationPrompt:
    record = CurationPrompt(
        user_id=user.id,
        project_id=project.id,
        prompt_text=prompt_text,
        ai_provider=project.ai_provider,
        ai_model=project.ai_model,
        task_count=task_count,
    )
    db.add(record)
    db.flush()

    logger.info(
        "curation_prompt_stored",
        extra={
            "user_id": user.id,
            "project_id": project.id,
            "prompt_length": len(prompt_text),
            "task_count": task_count,
        },
    )
    return record


def clear_previous_prompts(db: Session, user_id: int) -> int:
    deleted = db.query(CurationPrompt).filter(CurationPrompt.user_id == user_id).delete(synchronize_session=False)
    logger.info("curation_prompts_cleared", extra={"user_id": user_id, "deleted_count": deleted})
    return deleted
