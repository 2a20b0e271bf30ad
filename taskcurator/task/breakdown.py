"""AI-assisted breakdown of a task into subtasks, plus batch subtask creation."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from taskcurator.errors import DomainRuleViolation, ValidationError
from taskcurator.models.project import Project
from taskcurator.models.task import Task, priority_level
from taskcurator.schemas.task_schema import (
    BreakdownRequest,
    BreakdownResult,
    GeneratedSubtask,
    SubtaskIn,
)
from taskcurator.task.ai_service import AIService, AIServiceError, service_for_project
from taskcurator.task.sizing import FIBONACCI_POINTS, MAX_STORY_POINTS_FOR_SIZE
from taskcurator.task.task_service import next_position, resolve_parent

logger = logging.getLogger("taskcurator.task")

SMALLEST_TASK_MESSAGE = (
    "Tasks with 1 story point cannot be broken down further. "
    "They are already at the smallest meaningful size."
)
FALLBACK_NOTE = "AI service unavailable, generated by fallback breakdown."

BREAKDOWN_SYSTEM_PROMPT = """You are an expert project manager and task breakdown specialist. Break the given task down into smaller, actionable subtasks, taking the project context and existing tasks into account.

Respond with valid JSON only, no explanations and no markdown. Use this structure:
{
  "subtasks": [
    {
      "title": "Subtask title",
      "description": "Detailed subtask description",
      "status": "pending",
      "priority": "low|medium|high",
      "due_date": "YYYY-MM-DD" (optional),
      "initial_story_points": number (optional),
      "current_story_points": number (optional)
    }
  ],
  "summary": "Brief summary of the breakdown approach",
  "notes": ["Additional notes or considerations"],
  "problems": ["Potential issues or challenges"],
  "suggestions": ["Recommendations for implementation"]
}

Story points are Fibonacci numbers (1, 2, 3, 5, 8, 13, 21)."""


# ==========================
#  RULES
# ==========================
def validate_breakdown_parent(db: Session, project: Project, parent_task_id: Optional[int]) -> Optional[Task]:
    if parent_task_id is None:
        return None
    parent = resolve_parent(db, project, parent_task_id)
    if parent.current_story_points == 1:
        raise DomainRuleViolation(SMALLEST_TASK_MESSAGE, field="parent_task_id")
    return parent


def story_point_ceiling(parent: Optional[Task]) -> Optional[int]:
    """Exclusive upper bound on subtask story points under ``parent``."""
    if parent is None:
        return None
    if parent.size:
        return MAX_STORY_POINTS_FOR_SIZE.get(parent.size)
    return parent.current_story_points


def allowed_story_points(ceiling: Optional[int]) -> list[int]:
    if ceiling is None:
        return list(FIBONACCI_POINTS)
    return [p for p in FIBONACCI_POINTS if p < ceiling]


def cap_story_points(subtask: GeneratedSubtask, ceiling: Optional[int]) -> GeneratedSubtask:
    """Snap generated points down to the largest allowed Fibonacci value."""
    allowed = allowed_story_points(ceiling)
    updates = {}
    for field in ("initial_story_points", "current_story_points"):
        value = getattr(subtask, field)
        if value is None or value in allowed:
            continue
        below = [p for p in allowed if p <= value]
        updates[field] = below[-1] if below else (allowed[0] if allowed else None)
    return subtask.model_copy(update=updates) if updates else subtask


def priority_adjustments(parent: Optional[Task], subtasks: list[GeneratedSubtask]) -> Optional[list[dict]]:
    """Raise subtasks ranked below their parent up to the parent's priority.

    Returns ``None`` when there is no parent, otherwise the list of changes
    made (possibly empty). ``subtasks`` is updated in place.
    """
    if parent is None:
        return None

    floor = priority_level(parent.priority)
    adjustments = []
    for index, subtask in enumerate(subtasks):
        if priority_level(subtask.priority) >= floor:
            continue
        adjustments.append(
            {
                "index": index,
                "title": subtask.title,
                "from_priority": subtask.priority,
                "to_priority": parent.priority,
            }
        )
        subtask.priority = parent.priority
    return adjustments


# ==========================
#  PROMPT
# ==========================
def build_breakdown_prompt(
    project: Project,
    request: BreakdownRequest,
    parent: Optional[Task] = None,
    existing: list[Task] | None = None,
) -> str:
    existing = existing or []
    lines = [
        "Please break down the following task into smaller, actionable subtasks:",
        "",
        "TASK TO BREAK DOWN:",
        f"Title: {request.title}",
        f"Description: {request.description or 'No description provided'}",
        "",
        "PROJECT CONTEXT:",
        f"Project: {project.title}",
        f"Description: {project.description or 'No description provided'}",
        f"Type: {project.project_type}",
        f"Total Tasks: {len(existing)}",
        f"Completed Tasks: {sum(1 for t in existing if t.is_completed)}",
    ]
    if project.due_date:
        lines.append(f"Project Due Date: {project.due_date.isoformat()}")

    if parent is not None:
        lines += ["", "PARENT TASK:", f"Title: {parent.title}", f"Priority: {parent.priority}"]
        if parent.size:
            lines.append(f"Size: {parent.size}")
        elif parent.current_story_points:
            lines.append(f"Story Points: {parent.current_story_points}")

        ceiling = story_point_ceiling(parent)
        if ceiling:
            allowed = ", ".join(str(p) for p in allowed_story_points(ceiling))
            lines += [
                "",
                "STORY POINT CONSTRAINT:",
                f"No subtask may have {ceiling} or more story points.",
                f"Valid story points for subtasks: {allowed}",
            ]

    if existing:
        lines += ["", "SAMPLE EXISTING TASKS:"]
        for task in existing[:5]:
            lines.append(f"- {task.title} (Status: {task.status}, Priority: {task.priority})")

    if request.user_feedback:
        lines += ["", "USER FEEDBACK ON THE PREVIOUS BREAKDOWN:", request.user_feedback]

    lines += ["", f"Today's date: {date.today().isoformat()}"]
    return "\n".join(lines)


# ==========================
#  FALLBACK
# ==========================
def fallback_breakdown(request: BreakdownRequest, parent: Optional[Task] = None) -> BreakdownResult:
    title = request.title
    priority = parent.priority if parent is not None else "medium"
    return BreakdownResult(
        subtasks=[
            GeneratedSubtask(
                title="Research and planning",
                description=f"Research requirements and plan the approach for: {title}",
                priority=priority,
            ),
            GeneratedSubtask(
                title="Implementation",
                description=f"Implement the main functionality for: {title}",
                priority=priority,
            ),
            GeneratedSubtask(
                title="Verification",
                description=f"Test and review the result of: {title}",
                priority=priority,
            ),
        ],
        summary=f"Fallback breakdown for: {title}",
        notes=[FALLBACK_NOTE],
        problems=["AI breakdown could not be generated"],
        suggestions=["Try again later or check the AI provider configuration"],
    )


# ==========================
#  OPERATIONS
# ==========================
def breakdown_task(
    db: Session,
    project: Project,
    request: BreakdownRequest,
    ai_service: AIService | None = None,
) -> dict:
    parent = validate_breakdown_parent(db, project, request.parent_task_id)
    existing = db.query(Task).filter(Task.project_id == project.id).order_by(Task.id).all()

    ai = ai_service or service_for_project(project)
    try:
        data = ai.generate_json(
            BREAKDOWN_SYSTEM_PROMPT,
            build_breakdown_prompt(project, request, parent, existing),
            temperature=0.7,
            max_tokens=2000,
        )
        result = BreakdownResult.model_validate(data)
        logger.info(
            "task_breakdown_generated",
            extra={"project_id": project.id, "subtask_count": len(result.subtasks)},
        )
    except (AIServiceError, PydanticValidationError) as exc:
        logger.info(
            "task_breakdown_fallback",
            extra={"project_id": project.id, "error_type": type(exc).__name__},
        )
        result = fallback_breakdown(request, parent)

    ceiling = story_point_ceiling(parent)
    subtasks = [cap_story_points(s, ceiling) for s in result.subtasks]
    adjustments = priority_adjustments(parent, subtasks)

    return {
        "success": True,
        "subtasks": [s.model_dump(mode="json") for s in subtasks],
        "notes": result.notes,
        "summary": result.summary,
        "problems": result.problems,
        "suggestions": result.suggestions,
        "priority_adjustments": adjustments,
    }


def create_subtasks(db: Session, project: Project, parent_task_id: int, subtasks: list[SubtaskIn]) -> list[Task]:
    """Append ``subtasks`` under one parent, in input order, in one commit."""
    parent = db.get(Task, parent_task_id)
    if parent is None or parent.project_id != project.id:
        raise ValidationError("parent_task_id", "The selected parent task is invalid.")

    position = next_position(db, project.id, parent.id)
    created = []
    try:
        for offset, item in enumerate(subtasks):
            current = item.current_story_points
            initial = item.initial_story_points if item.initial_story_points is not None else current
            task = Task(
                project_id=project.id,
                parent_id=parent.id,
                depth=parent.depth + 1,
                title=item.title,
                description=item.description,
                status=item.status,
                priority=item.priority or parent.priority,
                due_date=item.due_date,
                position=position + offset,
                size=None,
                initial_story_points=initial,
                current_story_points=current,
            )
            db.add(task)
            created.append(task)
        db.commit()
    except Exception:
        db.rollback()
        raise

    for task in created:
        db.refresh(task)

    logger.info(
        "subtasks_created",
        extra={"project_id": project.id, "parent_id": parent.id, "count": len(created)},
    )
    return created
