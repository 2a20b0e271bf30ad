# taskcurator/models/project.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from taskcurator.database import Base


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)

    # owner
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)

    status = Column(String, default="active", nullable=False)          # active | archived
    project_type = Column(String, default="finite", nullable=False)    # finite | iterative

    auto_create_iterations = Column(Boolean, default=False, nullable=False)
    default_iteration_length_weeks = Column(Integer, nullable=True)

    # AI configuration (provider name understood by AIService)
    ai_provider = Column(String, nullable=True)
    ai_model = Column(String, nullable=True)

    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")

    @property
    def is_iterative(self) -> bool:
        return self.project_type == "iterative"

    @property
    def auto_iterates(self) -> bool:
        return (
            self.is_iterative
            and self.status == "active"
            and bool(self.auto_create_iterations)
            and (self.default_iteration_length_weeks or 0) > 0
        )


class ProjectMember(Base):
    """Visibility of a project for a user who does not own it."""

    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    project = relationship("Project", back_populates="members")
