# runner.py
from __future__ import annotations

import asyncio
import logging
import re
import shutil
from pathlib import Path
from typing import Optional

from .cloud.store import Store
from .errors import ManifestError, SourceFetchError, StepFailed
from .executor import StepExecutor
from .git_facts.git import SourceRetriever
from .manifest import load_pipeline_config
from .model import Job, JobStatus
from .runtime.docker import ContainerRuntime

logger = logging.getLogger(__name__)

# push ---> job created (pending) ---> run: clone -> manifest -> step 1..N ---> succeeded | failed


def _slug(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-.") or "project"


class JobRunner:
    """
    Executes one job's pipeline from clone to terminal status.

    Every log line and status change is written to the store as it happens.
    The terminal status is always the last write of a run, so a reader that
    sees it also sees the complete log.
    """

    def __init__(
        self,
        store: Store,
        runtime: ContainerRuntime,
        source: SourceRetriever,
        work_root: str | Path,
        executor: Optional[StepExecutor] = None,
    ):
        self.store = store
        self.runtime = runtime
        self.source = source
        self.work_root = Path(work_root)
        self.executor = executor or StepExecutor(runtime)

    def workspace_for(self, job: Job) -> Path:
        """Run-scoped checkout directory; unique per job id."""
        return self.work_root / f"{_slug(job.project.name)}-job-{job.id}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, job: Job) -> JobStatus:
        """
        Run `job` to a terminal status and return it.

        Pipeline failures are expected outcomes and end up in the job log.
        Anything else escaping the pipeline is logged with its traceback and
        the job is still marked failed.
        """
        try:
            return await self._run_pipeline(job)
        except Exception as e:
            logger.exception(f"[job {job.id}] run crashed")
            try:
                await self._push_log(job, f"Job crashed: {type(e).__name__}: {e}")
                await self._finish(job, JobStatus.FAILED)
            except Exception:
                logger.exception(f"[job {job.id}] could not record crash")
            return JobStatus.FAILED

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(self, job: Job) -> JobStatus:
        await self.store.update_job_status(job.id, JobStatus.RUNNING)
        await self._push_log(job, f"Starting job for project: {job.project.name}")

        workspace = self.workspace_for(job)
        try:
            await self._prepare_workspace(workspace)
            output = await self.source.fetch_branch(job.project.repo, job.branch, workspace)
        except SourceFetchError as e:
            await self._push_log(job, f"Failed to clone repository: {e}")
            return await self._finish(job, JobStatus.FAILED)

        for line in output.splitlines():
            if line.strip():
                await self._push_log(job, line)

        try:
            config = load_pipeline_config(workspace)
        except ManifestError as e:
            await self._push_log(job, f"Failed to load configuration: {e}")
            return await self._finish(job, JobStatus.FAILED)

        async def sink(line: str) -> None:
            await self._push_log(job, line)

        for i, step in enumerate(config.steps, start=1):
            await self._push_log(job, f"Starting step {i}: {step.name}")
            try:
                await self.executor.execute(step, workspace, sink)
            except StepFailed as e:
                # fail fast: later steps never start
                await self._push_log(job, f"Step {i} failed: {e}")
                return await self._finish(job, JobStatus.FAILED)
            await self._push_log(job, f"Step {i} completed successfully")

        await self._push_log(job, "Job completed successfully")
        return await self._finish(job, JobStatus.SUCCEEDED)

    async def _prepare_workspace(self, workspace: Path) -> None:
        try:
            self.work_root.mkdir(parents=True, exist_ok=True)
            if workspace.exists():
                # left over from a store that was reset; job ids restarted
                await asyncio.to_thread(shutil.rmtree, workspace)
        except OSError as e:
            raise SourceFetchError(f"could not prepare working directory {workspace}: {e}") from e

    # ------------------------------------------------------------------
    # Store writes
    # ------------------------------------------------------------------

    async def _push_log(self, job: Job, text: str) -> None:
        await self.store.append_log(job.id, text)
        logger.info(f"[job {job.id}] {text}")

    async def _finish(self, job: Job, status: JobStatus) -> JobStatus:
        await self.store.update_job_status(job.id, status)
        logger.info(f"[job {job.id}] finished: {status.label}")
        return status
