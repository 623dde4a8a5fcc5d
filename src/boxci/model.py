# model.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Optional, Tuple


class JobStatus(IntEnum):
    """
    Persisted job status codes.

    -1 and 0 keep their historical meaning (failed / succeeded); pending and
    running get their own codes so a job that has not run yet never reads as failed.
    """
    FAILED = -1
    SUCCEEDED = 0
    PENDING = 1
    RUNNING = 2

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FAILED, JobStatus.SUCCEEDED)

    @property
    def label(self) -> str:
        return self.name.lower()


# Allowed predecessors for every status a run may write.
TRANSITIONS = {
    JobStatus.RUNNING: (JobStatus.PENDING,),
    JobStatus.SUCCEEDED: (JobStatus.PENDING, JobStatus.RUNNING),
    JobStatus.FAILED: (JobStatus.PENDING, JobStatus.RUNNING),
}


@dataclass(frozen=True)
class Step:
    """A single containerised command inside a pipeline."""
    name: str
    image: str
    runs: str


@dataclass(frozen=True)
class PipelineConfig:
    """Ordered steps parsed from one manifest, owned by one run."""
    steps: Tuple[Step, ...] = ()


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    repo: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Job:
    """
    One execution of a project's pipeline for a branch.

    The owning project is embedded so a run never has to go back to the
    store to find the repository it should fetch.
    """
    id: int
    project: Project
    branch: str
    status: JobStatus
    created_at: Optional[datetime] = None

    @property
    def project_id(self) -> int:
        return self.project.id


@dataclass(frozen=True)
class LogEntry:
    id: int
    job_id: int
    text: str
    created_at: Optional[datetime] = None
