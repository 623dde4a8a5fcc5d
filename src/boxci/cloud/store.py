"""Persistent store for projects, jobs and job logs.

One Store is created per process and handed to every component that needs
it. Every method runs in its own session and commits its own transaction, so
concurrent runs only ever contend inside the database.
"""
from __future__ import annotations

import logging
from typing import List

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from ..errors import JobNotFound, ProjectNotFound, StatusTransitionError
from ..model import TRANSITIONS, Job, JobStatus, LogEntry, Project
from . import models
from .db import make_engine, make_sessionmaker

logger = logging.getLogger(__name__)


def _project(row: models.Project) -> Project:
    return Project(id=row.id, name=row.name, repo=row.repo, created_at=row.created_at)


def _job(row: models.Job) -> Job:
    return Job(
        id=row.id,
        project=_project(row.project),
        branch=row.branch,
        status=JobStatus(row.status),
        created_at=row.created_at,
    )


class Store:
    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = make_engine(database_url)
        self.sessions = make_sessionmaker(self.engine)

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(models.Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    # -------------------- Projects --------------------

    async def create_project(self, name: str, repo: str) -> Project:
        async with self.sessions() as s:
            async with s.begin():
                row = models.Project(name=name, repo=repo)
                s.add(row)
                await s.flush()
                project_id = row.id
        logger.info(f"Created project {project_id} ({name})")
        return await self.get_project(project_id)

    async def get_project(self, project_id: int) -> Project:
        async with self.sessions() as s:
            row = await s.get(models.Project, project_id)
            if row is None:
                raise ProjectNotFound(project_id)
            return _project(row)

    async def list_projects(self) -> List[Project]:
        async with self.sessions() as s:
            rows = (await s.scalars(sa.select(models.Project).order_by(models.Project.id))).all()
            return [_project(r) for r in rows]

    # -------------------- Jobs --------------------

    async def create_job(self, project_id: int, branch: str) -> Job:
        async with self.sessions() as s:
            async with s.begin():
                if await s.get(models.Project, project_id) is None:
                    raise ProjectNotFound(project_id)
                row = models.Job(project_id=project_id, branch=branch, status=int(JobStatus.PENDING))
                s.add(row)
                await s.flush()
                job_id = row.id
        return await self.get_job(job_id)

    async def get_job(self, job_id: int) -> Job:
        async with self.sessions() as s:
            row = await s.get(models.Job, job_id)
            if row is None:
                raise JobNotFound(job_id)
            return _job(row)

    async def list_jobs_for_project(self, project_id: int) -> List[Job]:
        async with self.sessions() as s:
            if await s.get(models.Project, project_id) is None:
                raise ProjectNotFound(project_id)
            q = (
                sa.select(models.Job)
                .where(models.Job.project_id == project_id)
                .order_by(models.Job.created_at.desc(), models.Job.id.desc())
            )
            rows = (await s.scalars(q)).all()
            return [_job(r) for r in rows]

    async def update_job_status(self, job_id: int, status: JobStatus) -> None:
        """
        Move a job to `status`.

        The UPDATE only matches rows in an allowed predecessor state, so a job
        can never leave a terminal state or go back to pending.
        """
        allowed = [int(p) for p in TRANSITIONS.get(status, ())]
        async with self.sessions() as s:
            async with s.begin():
                result = await s.execute(
                    sa.update(models.Job)
                    .where(models.Job.id == job_id, models.Job.status.in_(allowed))
                    .values(status=int(status))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    return
                current = await s.scalar(sa.select(models.Job.status).where(models.Job.id == job_id))

        if current is None:
            raise JobNotFound(job_id)
        raise StatusTransitionError(
            f"job {job_id}: cannot move from {JobStatus(current).label} to {status.label}"
        )

    # -------------------- Logs --------------------

    async def append_log(self, job_id: int, text: str) -> None:
        try:
            async with self.sessions() as s:
                async with s.begin():
                    s.add(models.Log(job_id=job_id, text=text))
        except IntegrityError as e:
            raise JobNotFound(job_id) from e

    async def list_logs(self, job_id: int) -> List[LogEntry]:
        async with self.sessions() as s:
            q = sa.select(models.Log).where(models.Log.job_id == job_id).order_by(models.Log.id)
            rows = (await s.scalars(q)).all()
            if not rows and await s.get(models.Job, job_id) is None:
                raise JobNotFound(job_id)
            return [LogEntry(id=r.id, job_id=r.job_id, text=r.text, created_at=r.created_at) for r in rows]
