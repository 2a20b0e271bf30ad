"""In-process job queue for curation work.

Jobs are recorded by ``dispatch`` and executed by ``drain`` on a thread pool.
Every job runs in its own session: it commits when the handler returns and
rolls back when it raises. Failures are recorded on the job and left for the
next scheduled run.
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from taskcurator.database import session_scope

logger = logging.getLogger("taskcurator.curation")

CURATION_WORKERS = int(os.getenv("CURATION_WORKERS", "4"))

Handler = Callable[..., Any]


@dataclass
class Job:
    name: str
    kwargs: dict
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: str = "queued"          # queued | running | succeeded | failed
    result: Any = None
    error: Optional[str] = None
    queued_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None


class JobQueue:
    def __init__(self, session_factory=None, workers: int | None = None):
        self.session_factory = session_factory
        self.workers = max(1, workers or CURATION_WORKERS)
        self.handlers: dict[str, Handler] = {}
        self.jobs: list[Job] = []
        self._lock = threading.Lock()

    def register(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    def dispatch(self, name: str, **kwargs) -> Job:
        if name not in self.handlers:
            raise KeyError(f"No handler registered for job '{name}'")
        job = Job(name=name, kwargs=kwargs)
        with self._lock:
            self.jobs.append(job)
        logger.info("job_dispatched", extra={"job_id": job.id, "job_name": name})
        return job

    @property
    def pending(self) -> list[Job]:
        return [j for j in self.jobs if j.status == "queued"]

    @property
    def failed(self) -> list[Job]:
        return [j for j in self.jobs if j.status == "failed"]

    def drain(self) -> list[Job]:
        """Run every queued job once and return them."""
        with self._lock:
            batch = self.pending
            for job in batch:
                job.status = "running"

        if not batch:
            return []

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            list(executor.map(self._run, batch))
        return batch

    def _run(self, job: Job) -> None:
        handler = self.handlers[job.name]
        try:
            with session_scope(self.session_factory) as session:
                job.result = handler(session, **job.kwargs)
            job.status = "succeeded"
            logger.info("job_succeeded", extra={"job_id": job.id, "job_name": job.name})
        except Exception as exc:
            job.status = "failed"
            job.error = f"{type(exc).__name__}: {exc}"
            logger.exception("job_failed", extra={"job_id": job.id, "job_name": job.name})
        finally:
            job.finished_at = datetime.utcnow()
