# taskcurator/models/curation.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from taskcurator.database import Base


class DailyCuration(Base):
    __tablename__ = "daily_curations"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", "work_date", name="uq_daily_curation"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)

    # [{"type": ..., "task_id": ..., "message": ...}]
    suggestions = Column(JSON, nullable=False, default=list)
    summary = Column(Text, nullable=True)
    problems = Column(JSON, nullable=False, default=list)
    focus_areas = Column(JSON, nullable=False, default=list)

    ai_provider = Column(String, nullable=True)
    ai_generated = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def suggestions_by_type(self, suggestion_type: str) -> list[dict]:
        return [s for s in self.suggestions or [] if s.get("type") == suggestion_type]

    def task_suggestions(self) -> list[dict]:
        return [s for s in self.suggestions or [] if s.get("task_id") is not None]

    def general_suggestions(self) -> list[dict]:
        return [s for s in self.suggestions or [] if s.get("task_id") is None]


class DailyWeightMetric(Base):
    __tablename__ = "daily_weight_metrics"
    __table_args__ = (
        UniqueConstraint("user_id", "metric_date", name="uq_daily_weight_metric"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    metric_date = Column(Date, nullable=False, index=True)

    total_story_points = Column(Integer, default=0, nullable=False)
    total_tasks_count = Column(Integer, default=0, nullable=False)
    signed_tasks_count = Column(Integer, default=0, nullable=False)
    unsigned_tasks_count = Column(Integer, default=0, nullable=False)
    average_points_per_task = Column(Float, default=0.0, nullable=False)
    daily_velocity = Column(Float, default=0.0, nullable=False)

    project_breakdown = Column(JSON, nullable=False, default=list)
    size_breakdown = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CuratedTask(Base):
    """A curatable entity assigned to a user for one work date, with its rank."""

    __tablename__ = "curated_tasks"
    __table_args__ = (
        UniqueConstraint(
            "curatable_kind", "curatable_id", "assigned_to", "work_date", name="uq_curated_task"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    curatable_kind = Column(String(32), nullable=False)   # see curation.curatable.CuratableKind
    curatable_id = Column(Integer, nullable=False, index=True)
    # owning project, denormalized so a pass can replace its own rows
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)

    assigned_to = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date = Column(Date, nullable=False, index=True)

    initial_index = Column(Integer, nullable=False)
    current_index = Column(Integer, nullable=False)
    moved_count = Column(Integer, default=0, nullable=False)

    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def update_index(self, new_index: int) -> None:
        if new_index == self.current_index:
            return
        self.current_index = new_index
        self.moved_count = (self.moved_count or 0) + 1

    def reset_index(self) -> None:
        # moved_count is history and survives resets
        self.current_index = self.initial_index


class CurationPrompt(Base):
    __tablename__ = "curation_prompts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    prompt_text = Column(Text, nullable=False)
    ai_provider = Column(String, nullable=True)
    ai_model = Column(String, nullable=True)
    task_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
