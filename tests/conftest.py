"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database. The app's ``get_db``
dependency is overridden so API calls and direct service calls see the same
data, and the AI provider is unconfigured unless a test injects a fake.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_PROVIDER"] = "none"

from collections.abc import Generator
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from taskcurator.auth.security import create_access_token
from taskcurator.database import get_db, init_db
from taskcurator.main import app
from taskcurator.models.project import Project, ProjectMember
from taskcurator.models.task import Task
from taskcurator.models.user import User
from taskcurator.task.ai_service import AIService
from taskcurator.task.task_router import get_ai_service
from taskcurator.task.task_service import next_position


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# ─────────────────────────────────────────────────────────────────────────────
# AI Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def fake_ai():
    """AIService stand-in; tests set ``generate_json`` / ``chat`` behaviour."""
    ai = MagicMock(spec=AIService)
    ai.is_configured = True
    return ai


@pytest.fixture
def unconfigured_ai():
    return AIService(provider="none")


# ─────────────────────────────────────────────────────────────────────────────
# API Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def client(session_factory, unconfigured_ai) -> Generator[TestClient, None, None]:
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ai_service] = lambda: unconfigured_ai
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_ai(client):
    """Route API calls through a given fake AI service."""

    def _use(ai):
        app.dependency_overrides[get_ai_service] = lambda: ai

    return _use


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


# ─────────────────────────────────────────────────────────────────────────────
# Data Factories
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(eligible: bool = True, **fields) -> User:
        counter["n"] += 1
        now = datetime.utcnow()
        values = {
            "email": f"user{counter['n']}@example.com",
            "name": f"User {counter['n']}",
            "email_verified_at": now if eligible else None,
            "pending_approval": False,
            "approved_at": now if eligible else None,
        }
        values.update(fields)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_project(db):
    def _make(owner: User, title: str = "Website relaunch", **fields) -> Project:
        project = Project(user_id=owner.id, title=title, **fields)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project

    return _make


@pytest.fixture
def add_member(db):
    def _add(project: Project, user: User) -> ProjectMember:
        member = ProjectMember(project_id=project.id, user_id=user.id)
        db.add(member)
        db.commit()
        return member

    return _add


@pytest.fixture
def make_task(db):
    def _make(project: Project, title: str = "Task", parent: Task | None = None, **fields) -> Task:
        task = Task(
            project_id=project.id,
            parent_id=parent.id if parent else None,
            depth=parent.depth + 1 if parent else 0,
            title=title,
            position=next_position(db, project.id, parent.id if parent else None),
            **fields,
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make


@pytest.fixture
def owner(make_user):
    return make_user()


@pytest.fixture
def project(make_project, owner):
    return make_project(owner)


@pytest.fixture
def headers(owner):
    return auth_headers(owner)


@pytest.fixture
def headers_for():
    return auth_headers
