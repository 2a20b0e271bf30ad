# taskcurator/models/task.py

from __future__ import annotations

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey, Index
from sqlalchemy.orm import relationship
from taskcurator.database import Base


STATUSES = ("pending", "in_progress", "completed")
PRIORITIES = ("low", "medium", "high")
SIZES = ("xs", "s", "m", "l", "xl")

PRIORITY_LEVELS = {"low": 1, "medium": 2, "high": 3}


def priority_level(priority: str | None) -> int:
    # unknown priorities sort as medium
    return PRIORITY_LEVELS.get(priority or "", 2)


def priority_from_level(level: int) -> str:
    for name, value in PRIORITY_LEVELS.items():
        if value == level:
            return name
    raise ValueError(f"Unknown priority level: {level}")


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_sibling_scope", "project_id", "parent_id", "position"),
    )

    id = Column(Integer, primary_key=True, index=True)

    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    depth = Column(Integer, default=0, nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(String, nullable=True)
    status = Column(String, default="pending", nullable=False)       # pending | in_progress | completed
    priority = Column(String, default="medium", nullable=False)      # low | medium | high

    # 1-indexed, contiguous inside (project_id, parent_id)
    position = Column(Integer, default=1, nullable=False)
    move_count = Column(Integer, default=0, nullable=False)
    last_moved_at = Column(DateTime, nullable=True)

    # top-level tasks only
    size = Column(String(2), nullable=True)

    # subtasks only
    initial_story_points = Column(Integer, nullable=True)
    current_story_points = Column(Integer, nullable=True)
    story_points_change_count = Column(Integer, default=0, nullable=False)

    due_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent = relationship("Task", remote_side=[id], back_populates="children")
    children = relationship(
        "Task",
        back_populates="parent",
        order_by="Task.position",
        cascade="all, delete-orphan",
    )
    project = relationship("Project", back_populates="tasks")

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def priority_level(self) -> int:
        return priority_level(self.priority)

    def sibling_scope(self) -> tuple[int, int | None]:
        return (self.project_id, self.parent_id)

    def __repr__(self) -> str:
        return f"<Task id={self.id} project={self.project_id} parent={self.parent_id} pos={self.position}>"
