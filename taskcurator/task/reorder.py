"""Manual re-sequencing of tasks inside one sibling scope.

A sibling scope is every task sharing a project and a parent. Positions in a
scope are 1..N with no gaps; a move renumbers the whole scope.

Moving a task next to siblings of another priority may pull its priority along
with it. The decision is split in two steps so a preview never writes:

* ``propose_move`` is pure. It locates the neighbors at the target slot and
  computes the candidate priority.
* ``apply_move`` takes the scope lock, recomputes the proposal against fresh
  rows and only then mutates, refusing when the priority would change without
  ``confirmed=True``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from taskcurator.errors import NotFoundError, ValidationError
from taskcurator.models.task import Task, priority_from_level, priority_level
from taskcurator.schemas.task_schema import TaskRead

logger = logging.getLogger("taskcurator.task")


# ==========================
#  SCOPE LOCKS
# ==========================
SCOPE_LOCK_STRIPES = 64
_scope_locks = [threading.Lock() for _ in range(SCOPE_LOCK_STRIPES)]


def scope_lock(scope: tuple[int, Optional[int]]) -> threading.Lock:
    """Lock guarding a sibling scope. Unrelated scopes may share a stripe."""
    return _scope_locks[hash(scope) % SCOPE_LOCK_STRIPES]


# ==========================
#  PURE RULES
# ==========================
class MoveProposal(BaseModel):
    task_id: int
    old_position: int
    new_position: int
    current_priority: str
    candidate_priority: str
    left_priority: Optional[str] = None
    right_priority: Optional[str] = None

    @property
    def priority_changes(self) -> bool:
        return self.candidate_priority != self.current_priority

    @property
    def neighbor_priorities(self) -> list[str]:
        return [p for p in (self.left_priority, self.right_priority) if p is not None]


def resolve_candidate_priority(
    current: str, left: Optional[str], right: Optional[str]
) -> str:
    """Priority a task should take when dropped between ``left`` and ``right``."""
    if left is None or right is None:
        return current

    left_level, right_level = priority_level(left), priority_level(right)
    if left_level == right_level:
        return left
    # mixed neighborhood always escalates
    return priority_from_level(max(left_level, right_level))


def find_neighbors(
    siblings: list[Task], task: Task, new_position: int
) -> tuple[Optional[Task], Optional[Task]]:
    """Neighbors of the slot ``new_position`` once ``task`` is lifted out.

    Positions are read as they are before the move: the left neighbor is the
    last other sibling placed before the slot, the right neighbor the first
    one placed at or after it.
    """
    others = [s for s in siblings if s.id != task.id]
    left = None
    right = None
    for sibling in others:
        if sibling.position < new_position:
            left = sibling
        elif right is None:
            right = sibling
    return left, right


def load_siblings(db: Session, task: Task, for_update: bool = False) -> list[Task]:
    query = db.query(Task).filter(Task.project_id == task.project_id)
    if task.parent_id is None:
        query = query.filter(Task.parent_id.is_(None))
    else:
        query = query.filter(Task.parent_id == task.parent_id)
    query = query.order_by(Task.position, Task.id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.all()


def check_target_position(siblings: list[Task], new_position: int) -> None:
    if new_position < 1 or new_position > len(siblings):
        raise ValidationError(
            "new_position",
            f"The new position must be between 1 and {len(siblings)}.",
        )


def propose_move(db: Session, task: Task, new_position: int, siblings: list[Task] | None = None) -> MoveProposal:
    if siblings is None:
        siblings = load_siblings(db, task)
    check_target_position(siblings, new_position)

    left, right = find_neighbors(siblings, task, new_position)
    left_priority = left.priority if left is not None else None
    right_priority = right.priority if right is not None else None

    candidate = task.priority
    if new_position != task.position:
        candidate = resolve_candidate_priority(task.priority, left_priority, right_priority)

    return MoveProposal(
        task_id=task.id,
        old_position=task.position,
        new_position=new_position,
        current_priority=task.priority,
        candidate_priority=candidate,
        left_priority=left_priority,
        right_priority=right_priority,
    )


def renumber(siblings: list[Task], task: Task, new_position: int) -> None:
    others = [s for s in siblings if s.id != task.id]
    others.insert(new_position - 1, task)
    for index, sibling in enumerate(others, start=1):
        sibling.position = index


def confirmation_payload(proposal: MoveProposal) -> dict:
    current = proposal.current_priority
    candidate = proposal.candidate_priority
    direction = "higher" if priority_level(candidate) > priority_level(current) else "lower"
    return {
        "type": f"moving_to_{direction}_priority",
        "task_priority": current,
        "neighbor_priorities": proposal.neighbor_priorities,
        "suggested_priority": candidate,
        "message": (
            f"Moving this {current} priority task next to {candidate} priority tasks "
            f"will change its priority to {candidate}. Do you want to continue?"
        ),
    }


def serialize_siblings(siblings: list[Task]) -> list[dict]:
    ordered = sorted(siblings, key=lambda s: s.position)
    return [TaskRead.model_validate(s).model_dump(mode="json") for s in ordered]


# ==========================
#  MUTATION
# ==========================
def apply_move(db: Session, task: Task, new_position: int, confirmed: bool = False) -> dict:
    with scope_lock(task.sibling_scope()):
        siblings = load_siblings(db, task, for_update=True)
        proposal = propose_move(db, task, new_position, siblings=siblings)

        if proposal.priority_changes and not confirmed:
            logger.info(
                "reorder_confirmation_required",
                extra={
                    "task_id": task.id,
                    "from_priority": proposal.current_priority,
                    "to_priority": proposal.candidate_priority,
                },
            )
            return {
                "success": False,
                "requires_confirmation": True,
                "confirmation_data": confirmation_payload(proposal),
            }

        old_position = task.position
        distance = abs(new_position - old_position)

        try:
            renumber(siblings, task, new_position)
            if distance:
                task.move_count = (task.move_count or 0) + 1
                task.last_moved_at = datetime.utcnow()

            old_priority = new_priority = None
            if proposal.priority_changes:
                old_priority = task.priority
                new_priority = proposal.candidate_priority
                task.priority = new_priority

            db.commit()
        except Exception:
            db.rollback()
            raise

        for sibling in siblings:
            db.refresh(sibling)

    message = "Task reordered successfully."
    if old_priority is not None:
        message += f" Priority changed from {old_priority} to {new_priority}."

    logger.info(
        "task_reordered",
        extra={
            "task_id": task.id,
            "old_position": old_position,
            "new_position": new_position,
            "priority_changed": old_priority is not None,
        },
    )

    return {
        "success": True,
        "message": message,
        "priority_changed": old_priority is not None,
        "old_priority": old_priority,
        "new_priority": new_priority,
        "reorder_data": {
            "old_position": old_position,
            "new_position": new_position,
            "move_count": distance,
        },
        "siblings": serialize_siblings(siblings),
    }


def reorder_task(db: Session, project_id: int, task_id: int, new_position: int, confirmed: bool = False) -> dict:
    task = db.get(Task, task_id)
    if task is None or task.project_id != project_id:
        raise NotFoundError("Task", task_id)
    return apply_move(db, task, new_position, confirmed=confirmed)
