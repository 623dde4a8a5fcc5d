# executor.py
from __future__ import annotations

import logging
from contextlib import aclosing
from pathlib import Path
from typing import Awaitable, Callable

from .errors import GatewayError, NonZeroExit, StepFailed
from .model import Step
from .runtime.docker import ContainerRuntime

logger = logging.getLogger(__name__)

# Receives every line the moment it is produced; awaiting it is what makes
# the line durable before the next one is read.
LogSink = Callable[[str], Awaitable[None]]


class StepExecutor:
    """Drives one step through image -> container -> output -> exit -> cleanup."""

    def __init__(self, runtime: ContainerRuntime):
        self.runtime = runtime

    async def execute(self, step: Step, workspace: Path, sink: LogSink) -> None:
        """
        Run `step` with `workspace` mounted as the container working directory.

        Args:
            step: Step to run
            workspace: Fetched source tree for this run
            sink: Async callable receiving each output / warning line

        Raises:
            StepFailed: with reason image | start | stream | wait | nonzero
        """
        try:
            await self.runtime.ensure_image(step.image)
        except GatewayError as e:
            raise StepFailed(step.name, "image", f"failed to ensure image: {e}") from e

        try:
            handle = await self.runtime.run_container(step.image, step.runs, workspace)
        except GatewayError as e:
            raise StepFailed(step.name, "start", f"failed to create and start container: {e}") from e

        logger.debug(f"step {step.name!r} running in container {handle[:12]}")
        try:
            await self._forward_output(step, handle, sink)
            exit_code = await self._wait(step, handle)
        finally:
            await self._remove(handle, sink)

        if exit_code != 0:
            err = NonZeroExit(exit_code)
            raise StepFailed(step.name, "nonzero", str(err), exit_code=exit_code) from err

    async def _forward_output(self, step: Step, handle: str, sink: LogSink) -> None:
        try:
            async with aclosing(self.runtime.stream_output(handle)) as lines:
                async for line in lines:
                    await sink(line)
        except GatewayError as e:
            raise StepFailed(step.name, "stream", f"failed to stream logs: {e}") from e

    async def _wait(self, step: Step, handle: str) -> int:
        try:
            return await self.runtime.wait_for_exit(handle)
        except GatewayError as e:
            raise StepFailed(step.name, "wait", f"failed to wait for container: {e}") from e

    async def _remove(self, handle: str, sink: LogSink) -> None:
        try:
            await self.runtime.remove_container(handle)
        except GatewayError as e:
            logger.warning(f"container {handle[:12]}: {e}")
            await sink(f"Warning: {e}")
