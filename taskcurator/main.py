# taskcurator/main.py

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskcurator.errors import (
    AuthenticationError,
    AuthorizationError,
    DomainRuleViolation,
    NotFoundError,
    ValidationError,
)
from taskcurator.log import configure_logging

# ---------------- ENV ----------------
load_dotenv()
configure_logging()


# ---------------- DATABASE INIT ----------------
from taskcurator.database import init_db  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logging.getLogger("taskcurator").info("database_ready")
    yield


app = FastAPI(title="Task Curator", lifespan=lifespan)

# ---------------- CORS ----------------
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

frontend_origin = os.getenv("FRONTEND_ORIGIN")
if frontend_origin:
    origins.append(frontend_origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------- ERRORS ----------------
@app.exception_handler(ValidationError)
def handle_validation_error(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": [{"loc": ["body", exc.field], "msg": exc.message, "type": "value_error"}]},
    )


@app.exception_handler(DomainRuleViolation)
def handle_domain_rule(request: Request, exc: DomainRuleViolation):
    return JSONResponse(status_code=400, content={"success": False, "error": exc.message})


@app.exception_handler(AuthenticationError)
def handle_authentication(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(AuthorizationError)
def handle_authorization(request: Request, exc: AuthorizationError):
    return JSONResponse(status_code=403, content={"detail": "This action is unauthorized."})


@app.exception_handler(NotFoundError)
def handle_not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# ---------------- ROUTERS ----------------
from taskcurator.task.task_router import router as project_tasks_router, tasks_router  # noqa: E402

app.include_router(project_tasks_router)
app.include_router(tasks_router)


# ---------------- ROOT ----------------
@app.get("/")
def read_root():
    return {"message": "Task curator running"}
