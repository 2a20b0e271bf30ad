"""T-shirt sizing for top-level tasks and story points for subtasks.

Sizes and story points are mutually exclusive by hierarchy level: only
top-level tasks carry a size, only subtasks carry story points.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from taskcurator.errors import ValidationError
from taskcurator.models.task import SIZES, Task
from taskcurator.task.ai_service import AIService, AIServiceError, service_for_project

logger = logging.getLogger("taskcurator.task")

FIBONACCI_POINTS = (1, 2, 3, 5, 8, 13, 21, 34, 55, 89)

# first matching bucket wins, so the order matters
SIZE_KEYWORDS = {
    "xs": ("fix", "bug", "typo", "small", "quick", "minor", "update", "change"),
    "s": ("add", "create", "implement", "simple", "basic", "standard"),
    "m": ("feature", "component", "module", "integration", "api", "database"),
    "l": ("system", "architecture", "refactor", "migration", "complex", "major"),
    "xl": ("rewrite", "redesign", "overhaul", "platform", "framework", "enterprise"),
}
DEFAULT_SIZE = "m"

# a subtask under a parent of this size must stay strictly below the value
MAX_STORY_POINTS_FOR_SIZE = {"xs": 2, "s": 3, "m": 5, "l": 8, "xl": 13}

SIZE_SYSTEM_PROMPT = """You are an expert project manager and software development estimator. Assign a T-shirt size (XS, S, M, L, XL) to the task based on complexity, scope and effort.

- XS: 1-2 hours, quick fixes and minor changes
- S: 3-8 hours, straightforward tasks and small features
- M: 1-3 days, moderate complexity, some research needed
- L: 3-7 days, complex tasks, major features or integrations
- XL: 1-2 weeks, architectural changes with many dependencies

Respond in this format only:
SIZE: [size]
REASON: [brief explanation]"""

_SIZE_LINE = re.compile(r"SIZE:\s*(XS|S|M|L|XL)\b", re.IGNORECASE)
_SIZE_TOKEN = re.compile(r"\b(XS|S|M|L|XL)\b", re.IGNORECASE)


# ==========================
#  SIZE CLASSIFIERS
# ==========================
def heuristic_size(title: str, description: Optional[str] = None) -> str:
    words = set(re.findall(r"[a-z]+", f"{title} {description or ''}".lower()))
    for size, keywords in SIZE_KEYWORDS.items():
        if words.intersection(keywords):
            return size
    return DEFAULT_SIZE


def parse_size(content: str) -> Optional[str]:
    match = _SIZE_LINE.search(content) or _SIZE_TOKEN.search(content)
    return match.group(1).lower() if match else None


def build_sizing_prompt(task: Task, similar: Iterable[Task] = ()) -> str:
    lines = ["Please size this task:", "", f"TASK: {task.title}"]
    if task.description:
        lines.append(f"DESCRIPTION: {task.description}")
    lines.append(f"STATUS: {task.status}")
    if task.due_date:
        lines.append(f"DUE DATE: {task.due_date.isoformat()}")

    project = task.project
    if project is not None:
        lines += ["", "PROJECT CONTEXT:", f"Project: {project.title}", f"Type: {project.project_type}"]
        if project.description:
            lines.append(f"Description: {project.description}")

    similar = list(similar)[:5]
    if similar:
        lines += ["", "SIMILAR TASKS IN PROJECT:"]
        lines += [f"- {t.title} (Size: {t.size}, Status: {t.status})" for t in similar]
    return "\n".join(lines)


class TaskSizingService:
    def __init__(self, db: Session, ai_service: AIService | None = None):
        self.db = db
        self.ai_service = ai_service

    def size_task(self, task: Task) -> Optional[str]:
        """Size for a top-level task, ``None`` for anything else."""
        if not task.is_top_level:
            return None

        ai = self.ai_service or service_for_project(task.project)
        try:
            content = ai.chat(
                [
                    {"role": "system", "content": SIZE_SYSTEM_PROMPT},
                    {"role": "user", "content": build_sizing_prompt(task, self._similar_tasks(task))},
                ],
                temperature=0.3,
                max_tokens=200,
            )
            size = parse_size(content)
            if size:
                logger.info("task_sized_by_ai", extra={"task_id": task.id, "size": size})
                return size
            logger.warning("ai_size_unparseable", extra={"task_id": task.id})
        except AIServiceError as exc:
            logger.info(
                "task_sizing_fallback",
                extra={"task_id": task.id, "error_type": type(exc).__name__},
            )

        return heuristic_size(task.title, task.description)

    def size_tasks(self, tasks: Iterable[Task]) -> dict[int, str]:
        results = {}
        for task in tasks:
            if not task.is_top_level:
                continue
            results[task.id] = self.size_task(task)
        return results

    def _similar_tasks(self, task: Task) -> list[Task]:
        return (
            self.db.query(Task)
            .filter(
                Task.project_id == task.project_id,
                Task.parent_id.is_(None),
                Task.size.isnot(None),
                Task.id != task.id,
            )
            .limit(5)
            .all()
        )


# ==========================
#  FIELD RULES
# ==========================
def validate_size(task: Task, size: Optional[str]) -> None:
    if size is None:
        return
    if not task.is_top_level:
        raise ValidationError("size", "Only top-level tasks can have a T-shirt size")
    if size not in SIZES:
        raise ValidationError("size", "Invalid size. Must be one of: xs, s, m, l, xl")


def validate_story_points(task: Task, points: Optional[int]) -> None:
    if points is None:
        return
    if task.is_top_level:
        raise ValidationError("current_story_points", "Only subtasks can have story points")
    if points not in FIBONACCI_POINTS:
        raise ValidationError(
            "current_story_points",
            "Story points must be a Fibonacci number: " + ", ".join(str(p) for p in FIBONACCI_POINTS),
        )


def set_story_points(task: Task, points: int) -> None:
    if task.initial_story_points is None:
        task.initial_story_points = points
    if task.current_story_points is not None and task.current_story_points != points:
        task.story_points_change_count = (task.story_points_change_count or 0) + 1
    task.current_story_points = points


def update_sizing(db: Session, task: Task, size: Optional[str], points: Optional[int]) -> Task:
    validate_size(task, size)
    validate_story_points(task, points)

    if size is not None:
        task.size = size
    if points is not None:
        set_story_points(task, points)

    db.commit()
    db.refresh(task)
    return task


def check_hierarchy_invariants(task: Task) -> list[str]:
    """Names of the sizing invariants ``task`` currently breaks."""
    broken = []
    if task.size is not None and task.parent_id is not None:
        broken.append("size_requires_top_level")
    if task.current_story_points is not None and task.parent_id is None:
        broken.append("story_points_require_parent")
    return broken
