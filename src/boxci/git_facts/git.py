# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to spawn "git ..." directly.

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Protocol, Tuple

from ..errors import SourceFetchError

logger = logging.getLogger(__name__)


class SourceRetriever(Protocol):
    """Anything that can place a repository checkout at a destination path."""

    async def fetch_branch(self, repo: str, branch: str, dest: Path) -> str:
        ...


async def _git(args: List[str], git_bin: str = "git", cwd: str | None = None) -> Tuple[int, str]:
    """
    Execute a git command and return (exit code, combined stdout/stderr).

    This is the single low-level entry point for all Git operations in this file.
    Unlike a check_output call it never raises on a non-zero exit: callers decide
    what a failure means, because clone output is useful in both cases.

    Args:
        args: List of git arguments (e.g. ["clone", "-b", "main", url, dest])
        git_bin: Git executable to invoke
        cwd: Optional working directory in which to run the git command.

    Returns:
        Tuple of the exit code and decoded output with trailing whitespace removed.
    """
    proc = await asyncio.create_subprocess_exec(
        git_bin,
        *args,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    out, _ = await proc.communicate()
    return proc.returncode, out.decode("utf-8", errors="replace").rstrip()


class GitSource:
    """Fetches a single branch of a repository with `git clone`."""

    def __init__(self, git_bin: str = "git"):
        self.git_bin = git_bin

    async def fetch_branch(self, repo: str, branch: str, dest: Path) -> str:
        """
        Clone `branch` of `repo` into `dest`.

        `dest` must not exist yet (git refuses to clone into a non-empty
        directory), which is what makes run-scoped directories safe.

        Returns:
            The combined output of git clone.

        Raises:
            SourceFetchError: if git is missing or the clone fails.
        """
        # "--" stops a repository locator that starts with "-" being read as an option
        args = ["clone", "--branch", branch, "--single-branch", "--", repo, str(dest)]
        logger.debug(f"git {' '.join(args)}")

        try:
            code, out = await _git(args, git_bin=self.git_bin)
        except FileNotFoundError as e:
            raise SourceFetchError("git command not found. Please install Git.") from e
        except OSError as e:
            raise SourceFetchError(f"Git operation failed: {e}") from e

        if code != 0:
            raise SourceFetchError(f"git clone error: exit status {code}, output: {out}")
        return out
