# taskcurator/schemas/task_schema.py
from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Status = Literal["pending", "in_progress", "completed"]
Priority = Literal["low", "medium", "high"]

FEEDBACK_MAX_LENGTH = 2000


# --------- Base schema (common fields) ----------
class TaskBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    status: Status = "pending"
    priority: Priority = "medium"
    due_date: Optional[date] = None


# --------- For CREATE ----------
class TaskCreate(TaskBase):
    parent_id: Optional[int] = None


# --------- For READ (responses) ----------
class TaskRead(TaskBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    parent_id: Optional[int] = None
    depth: int
    position: int
    size: Optional[str] = None
    initial_story_points: Optional[int] = None
    current_story_points: Optional[int] = None
    story_points_change_count: int = 0
    move_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TaskListItem(TaskRead):
    is_top_level: bool
    is_leaf: bool


# --------- Reorder ----------
class ReorderRequest(BaseModel):
    new_position: int = Field(ge=1)
    confirmed: bool = False


# --------- Status toggle ----------
class StatusUpdate(BaseModel):
    status: Status


# --------- Size / story points (PATCH /tasks/{task}) ----------
class SizingUpdate(BaseModel):
    size: Optional[str] = None
    current_story_points: Optional[int] = None

    @field_validator("size")
    def normalize_size(cls, value):
        return value.lower() if isinstance(value, str) else value


# --------- Breakdown ----------
class BreakdownRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    parent_task_id: Optional[int] = None
    user_feedback: Optional[str] = Field(default=None, max_length=FEEDBACK_MAX_LENGTH)


class SubtaskIn(BaseModel):
    title: str
    description: Optional[str] = None
    status: Status = "pending"
    priority: Optional[Priority] = None
    due_date: Optional[date] = None
    initial_story_points: Optional[int] = Field(default=None, ge=0, strict=True)
    current_story_points: Optional[int] = Field(default=None, ge=0, strict=True)

    @field_validator("title")
    def title_not_blank(cls, value):
        if not value or not value.strip():
            raise ValueError("Each subtask needs a title.")
        return value.strip()


class SubtaskBatchRequest(BaseModel):
    parent_task_id: int
    subtasks: list[SubtaskIn] = Field(min_length=1)


# --------- AI breakdown result ----------
class GeneratedSubtask(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    status: Status = "pending"
    priority: Priority = "medium"
    due_date: Optional[date] = None
    initial_story_points: Optional[int] = None
    current_story_points: Optional[int] = None


class BreakdownResult(BaseModel):
    subtasks: list[GeneratedSubtask] = Field(min_length=1)
    summary: str = ""
    notes: list[str] = Field(default_factory=list)
    problems: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
