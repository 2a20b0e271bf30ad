"""Rule-based curation used when the AI provider is missing or fails."""

from __future__ import annotations

from datetime import date
from typing import Iterable

from taskcurator.models.task import Task
from taskcurator.schemas.curation_schema import CurationResult, Suggestion

FALLBACK_MARKER = "Generated by fallback rules, AI suggestions were unavailable."
DUE_SOON_DAYS = 2
RECOMMEND_THRESHOLD = 40


def score_task(task: Task, today: date, average_story_points: float = 0) -> tuple[int, list[Suggestion]]:
    score = 0
    suggestions = []

    if task.due_date and task.due_date < today:
        score += 100
        suggestions.append(
            Suggestion(type="risk", task_id=task.id, message="This task is overdue and needs immediate attention.")
        )
    elif task.due_date and (task.due_date - today).days <= DUE_SOON_DAYS:
        score += 80
        suggestions.append(
            Suggestion(type="priority", task_id=task.id, message="This task is due soon and should be prioritized.")
        )

    if task.status == "in_progress":
        score += 60
        suggestions.append(
            Suggestion(type="priority", task_id=task.id, message="Continue working on this in-progress task.")
        )

    points = task.current_story_points or 0
    if points and average_story_points > 0 and abs(points - average_story_points) <= 1:
        score += 40

    if not points:
        if task.parent_id is None:
            message = "Break this task down into subtasks to estimate and track its progress."
        else:
            message = "This task needs story points to better track progress."
        suggestions.append(Suggestion(type="optimization", task_id=task.id, message=message))
    return score, suggestions


def fallback_curation(tasks: Iterable[Task], today: date, average_story_points: float = 0) -> CurationResult:
    tasks = list(tasks)
    suggestions = []
    recommended = []
    overdue = in_progress = 0

    for task in tasks:
        score, task_suggestions = score_task(task, today, average_story_points)
        suggestions += task_suggestions
        if score >= RECOMMEND_THRESHOLD:
            recommended.append(task.id)
        if task.due_date and task.due_date < today:
            overdue += 1
        if task.status == "in_progress":
            in_progress += 1

    if not suggestions:
        suggestions.append(
            Suggestion(
                type="optimization",
                message="Review your project tasks and consider setting priorities or due dates to organize your work.",
            )
        )

    summary = (
        f"{len(tasks)} open tasks, {overdue} overdue, {in_progress} in progress, "
        f"{len(recommended)} recommended for today. {FALLBACK_MARKER}"
    )
    problems = [f"{overdue} overdue tasks"] if overdue else []

    return CurationResult(
        suggestions=suggestions,
        summary=summary,
        focus_areas=["overdue_tasks", "in_progress_tasks", "unsized_tasks"],
        problems=problems,
        recommended_tasks=recommended,
        ai_generated=False,
    )
