from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from ..errors import JobNotFound, ProjectNotFound
from ..git_facts.git import GitSource, SourceRetriever
from ..lifecycle import JobService
from ..model import Job, LogEntry, Project
from ..runner import JobRunner
from ..runtime.docker import ContainerRuntime, DockerRuntime
from .settings import Settings
from .store import Store

logger = logging.getLogger(__name__)

router = APIRouter()

# -------------------- Schemas --------------------

class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1)
    repo: str = Field(min_length=1)

class ProjectResponse(BaseModel):
    id: int
    name: str
    repo: str
    created_at: Optional[datetime] = None

    @classmethod
    def of(cls, p: Project) -> ProjectResponse:
        return cls(id=p.id, name=p.name, repo=p.repo, created_at=p.created_at)

class CreateJobRequest(BaseModel):
    project_id: int
    branch: str = Field(min_length=1)

class JobResponse(BaseModel):
    id: int
    project_id: int
    project_name: str
    branch: str
    status: str          # pending|running|succeeded|failed
    status_code: int
    created_at: Optional[datetime] = None

    @classmethod
    def of(cls, j: Job) -> JobResponse:
        return cls(
            id=j.id,
            project_id=j.project_id,
            project_name=j.project.name,
            branch=j.branch,
            status=j.status.label,
            status_code=int(j.status),
            created_at=j.created_at,
        )

class LogEntryResponse(BaseModel):
    id: int
    text: str
    created_at: Optional[datetime] = None

    @classmethod
    def of(cls, e: LogEntry) -> LogEntryResponse:
        return cls(id=e.id, text=e.text, created_at=e.created_at)

# -------------------- Dependencies --------------------

def get_service(request: Request) -> JobService:
    return request.app.state.service

# -------------------- Endpoints --------------------

@router.post("/projects", response_model=ProjectResponse)
async def create_project(req: CreateProjectRequest, service: JobService = Depends(get_service)):
    try:
        project = await service.create_project(req.name, req.repo)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProjectResponse.of(project)

@router.get("/projects", response_model=list[ProjectResponse])
async def list_projects(service: JobService = Depends(get_service)):
    return [ProjectResponse.of(p) for p in await service.list_projects()]

@router.get("/projects/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: int, service: JobService = Depends(get_service)):
    try:
        return ProjectResponse.of(await service.get_project(project_id))
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")

@router.get("/projects/{project_id}/jobs", response_model=list[JobResponse])
async def list_project_jobs(project_id: int, service: JobService = Depends(get_service)):
    try:
        jobs = await service.list_jobs_for_project(project_id)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    return [JobResponse.of(j) for j in jobs]

@router.post("/jobs", response_model=JobResponse)
async def create_job(req: CreateJobRequest, service: JobService = Depends(get_service)):
    # the run continues in the background; pipeline errors only show up in the job log
    try:
        job = await service.create_job(req.project_id, req.branch)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JobResponse.of(job)

@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: int, service: JobService = Depends(get_service)):
    try:
        return JobResponse.of(await service.get_job(job_id))
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")

@router.get("/jobs/{job_id}/logs", response_model=list[LogEntryResponse])
async def get_job_logs(job_id: int, service: JobService = Depends(get_service)):
    try:
        logs = await service.list_logs_for_job(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    return [LogEntryResponse.of(e) for e in logs]

# -------------------- App --------------------

def create_app(
    settings: Optional[Settings] = None,
    *,
    runtime: Optional[ContainerRuntime] = None,
    source: Optional[SourceRetriever] = None,
) -> FastAPI:
    """Build the API; `runtime` and `source` default to the docker and git CLIs."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = Store(settings.database_url)
        await store.create_all()
        runner = JobRunner(
            store,
            runtime or DockerRuntime(settings.docker_bin),
            source or GitSource(settings.git_bin),
            settings.work_root,
        )
        app.state.service = JobService(store, runner)
        logger.info(f"boxci ready (database={settings.database_url}, work_root={settings.work_root})")
        yield
        pending = app.state.service.in_flight
        if pending:
            logger.warning(f"Shutting down with {pending} run(s) still in flight")
        await store.dispose()

    app = FastAPI(title="boxci", lifespan=lifespan)
    app.include_router(router)
    return app

