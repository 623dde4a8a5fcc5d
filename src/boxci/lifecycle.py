"""Job lifecycle: the narrow interface the HTTP layer talks to.

Creating a job persists it as pending and hands the run to the event loop as
an independent task; the caller gets the pending job back immediately and
follows progress by reading the store.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Set

from .cloud.store import Store
from .model import Job, LogEntry, Project
from .runner import JobRunner

logger = logging.getLogger(__name__)


class JobService:
    def __init__(self, store: Store, runner: JobRunner):
        self.store = store
        self.runner = runner
        # strong references only; tasks are never awaited by their creator
        self._runs: Set[asyncio.Task] = set()

    # --- Projects ---

    async def create_project(self, name: str, repo: str) -> Project:
        name, repo = name.strip(), repo.strip()
        if not name:
            raise ValueError("project name must not be empty")
        if not repo:
            raise ValueError("project repository must not be empty")
        return await self.store.create_project(name, repo)

    async def get_project(self, project_id: int) -> Project:
        return await self.store.get_project(project_id)

    async def list_projects(self) -> List[Project]:
        return await self.store.list_projects()

    # --- Jobs ---

    async def create_job(self, project_id: int, branch: str) -> Job:
        """Persist a pending job and dispatch its run without waiting for it."""
        branch = branch.strip()
        if not branch:
            raise ValueError("branch must not be empty")

        job = await self.store.create_job(project_id, branch)
        logger.info(f"Created job {job.id} for project {job.project.name} ({branch})")
        self._dispatch(job)
        return job

    async def get_job(self, job_id: int) -> Job:
        return await self.store.get_job(job_id)

    async def list_jobs_for_project(self, project_id: int) -> List[Job]:
        return await self.store.list_jobs_for_project(project_id)

    async def list_logs_for_job(self, job_id: int) -> List[LogEntry]:
        return await self.store.list_logs(job_id)

    # --- Dispatch ---

    @property
    def in_flight(self) -> int:
        return len(self._runs)

    def _dispatch(self, job: Job) -> None:
        task = asyncio.create_task(self.runner.run(job), name=f"boxci-job-{job.id}")
        self._runs.add(task)
        task.add_done_callback(self._run_done)

    def _run_done(self, task: asyncio.Task) -> None:
        self._runs.discard(task)
        if task.cancelled():
            logger.warning(f"{task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{task.get_name()} failed outside the pipeline", exc_info=exc)

    async def wait_for_runs(self) -> None:
        """Block until every dispatched run has finished. Never cancels anything."""
        while self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)
