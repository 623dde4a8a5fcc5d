# runtime/docker.py
from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import AsyncIterator, NamedTuple, Protocol

from ..errors import (
    ContainerRemoveWarning,
    ContainerStartFailed,
    ImageUnavailable,
    RuntimeUnavailable,
    StreamFailed,
    WaitFailed,
)

logger = logging.getLogger(__name__)

CONTAINER_WORKDIR = "/app"
SHELL = ("/bin/sh", "-c")

# Longest single output line accepted from a container before the stream is
# declared broken; keeps memory bounded on steps that never print a newline.
STREAM_LINE_LIMIT = 1024 * 1024

DOCKER_HINT = "Install Docker and ensure the daemon is running."


# ---------------------------------------------------------------------
# Gateway interface
# ---------------------------------------------------------------------

class ContainerRuntime(Protocol):
    """
    Capability set the pipeline needs from a container engine.

    Implementations hold no per-run state so a single instance can be shared
    by every concurrently executing job.
    """

    async def ensure_image(self, image: str) -> None:
        ...

    async def run_container(self, image: str, command: str, workspace: Path) -> str:
        ...

    def stream_output(self, handle: str) -> AsyncIterator[str]:
        ...

    async def wait_for_exit(self, handle: str) -> int:
        ...

    async def remove_container(self, handle: str) -> None:
        ...


# ---------------------------------------------------------------------
# Docker CLI implementation
# ---------------------------------------------------------------------

class _Result(NamedTuple):
    code: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(p for p in (self.stdout, self.stderr) if p)


class DockerRuntime:
    """Container runtime backed by the `docker` command line client."""

    def __init__(self, docker_bin: str = "docker"):
        self.docker_bin = docker_bin

    async def _docker(self, *args: str) -> _Result:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.docker_bin,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RuntimeUnavailable(f"{self.docker_bin} could not be executed ({e}). {DOCKER_HINT}") from e

        out, err = await proc.communicate()
        return _Result(
            proc.returncode,
            out.decode("utf-8", errors="replace").strip(),
            err.decode("utf-8", errors="replace").strip(),
        )

    async def ensure_image(self, image: str) -> None:
        """Pull `image` unless it is already present locally."""
        found = await self._docker("image", "inspect", "--format", "{{.Id}}", image)
        if found.code == 0:
            logger.debug(f"image {image} already present")
            return

        logger.info(f"pulling image {image}")
        try:
            proc = await asyncio.create_subprocess_exec(
                self.docker_bin,
                "pull",
                image,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise RuntimeUnavailable(f"{self.docker_bin} could not be executed ({e}). {DOCKER_HINT}") from e

        # drain the progress stream; only the tail is worth reporting
        tail: deque[str] = deque(maxlen=10)
        while True:
            raw = await proc.stdout.readline()
            if not raw:
                break
            tail.append(raw.decode("utf-8", errors="replace").rstrip())
        code = await proc.wait()

        if code != 0:
            raise ImageUnavailable(f"failed to pull image {image}: " + " | ".join(tail))

    async def run_container(self, image: str, command: str, workspace: Path) -> str:
        """Create and start a container running `command`; returns the container id."""
        created = await self._docker(
            "create",
            "--tty",
            "--workdir", CONTAINER_WORKDIR,
            "--volume", f"{Path(workspace).resolve()}:{CONTAINER_WORKDIR}",
            image,
            *SHELL,
            command,
        )
        if created.code != 0 or not created.stdout:
            raise ContainerStartFailed(f"failed to create container: {created.output}")
        handle = created.stdout.splitlines()[-1].strip()

        started = await self._docker("start", handle)
        if started.code != 0:
            try:
                await self.remove_container(handle)
            except ContainerRemoveWarning as e:
                logger.warning(str(e))
            raise ContainerStartFailed(f"failed to start container {handle[:12]}: {started.output}")

        return handle

    async def stream_output(self, handle: str) -> AsyncIterator[str]:
        """
        Yield the container's combined stdout/stderr line by line until it exits.

        The container runs with a TTY, so the engine already delivers both
        streams interleaved in emission order on one channel.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                self.docker_bin,
                "logs",
                "--follow",
                handle,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=STREAM_LINE_LIMIT,
            )
        except OSError as e:
            raise StreamFailed(f"could not follow container logs: {e}") from e

        try:
            while True:
                try:
                    raw = await proc.stdout.readline()
                except ValueError as e:
                    raise StreamFailed(f"output line longer than {STREAM_LINE_LIMIT} bytes") from e
                if not raw:
                    break
                yield raw.decode("utf-8", errors="replace").rstrip("\r\n")

            code = await proc.wait()
            if code != 0:
                raise StreamFailed(f"docker logs exited with status {code}")
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

    async def wait_for_exit(self, handle: str) -> int:
        waited = await self._docker("wait", handle)
        if waited.code != 0:
            raise WaitFailed(f"failed to wait for container {handle[:12]}: {waited.output}")
        try:
            return int(waited.stdout.splitlines()[-1])
        except (IndexError, ValueError) as e:
            raise WaitFailed(f"unexpected wait result for container {handle[:12]}: {waited.output!r}") from e

    async def remove_container(self, handle: str) -> None:
        # --force also covers a container left running by a broken log stream
        removed = await self._docker("rm", "--force", handle)
        if removed.code != 0:
            raise ContainerRemoveWarning(f"failed to remove container {handle[:12]}: {removed.output}")
