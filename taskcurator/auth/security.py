# taskcurator/auth/security.py

import os
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from taskcurator.database import get_db
from taskcurator.errors import AuthenticationError, AuthorizationError, NotFoundError
from taskcurator.models.project import Project
from taskcurator.models.task import Task
from taskcurator.models.user import User

# ================= ENV =================
load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

if not SECRET_KEY:
    raise RuntimeError("SECRET_KEY missing in .env!")

# tokens are issued by the identity service; this path is only advertised
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


# ================= TOKENS =================
def create_access_token(sub: str, minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES):
    exp = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode({"sub": sub, "exp": exp}, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> int:
    try:
        data = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return int(data["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid or expired token")


# ================= DEPENDENCIES =================
def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not token:
        raise AuthenticationError("Not authenticated")

    user = db.get(User, decode_access_token(token))
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid or expired token")
    return user


def ensure_project_owner(project: Project, user: User) -> None:
    if project.user_id != user.id:
        raise AuthorizationError("You do not have access to this project.")


def get_owned_project(
    project_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    ensure_project_owner(project, user)
    return project


def get_owned_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Task:
    task = db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    ensure_project_owner(task.project, user)
    return task
