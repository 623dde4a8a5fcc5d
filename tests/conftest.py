from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from boxci.cloud.store import Store
from boxci.errors import SourceFetchError
from boxci.manifest import MANIFEST_NAME

TWO_STEPS = """\
steps:
  - name: build
    image: alpine
    runs: echo build
  - name: test
    image: busybox
    runs: echo test
"""


class FakeRuntime:
    """
    Scripted container engine.

    scripts maps a step command to (output lines, exit code); unknown commands
    print nothing and exit 0. failures maps an operation name to the exception
    it should raise. Every call is appended to `events` in order.
    """

    def __init__(self):
        self.scripts: dict[str, tuple[list[str], int]] = {}
        self.failures: dict[str, Exception] = {}
        self.events: list[tuple] = []
        self._commands: dict[str, str] = {}

    def _maybe_fail(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    @property
    def containers(self) -> list[str]:
        return [e[1] for e in self.events if e[0] == "run"]

    @property
    def removed(self) -> list[str]:
        return [e[1] for e in self.events if e[0] == "remove"]

    async def ensure_image(self, image: str) -> None:
        self.events.append(("ensure_image", image))
        self._maybe_fail("ensure_image")

    async def run_container(self, image: str, command: str, workspace: Path) -> str:
        self._maybe_fail("run_container")
        handle = f"c{len(self._commands) + 1}"
        self._commands[handle] = command
        self.events.append(("run", handle, image, command, Path(workspace)))
        return handle

    async def stream_output(self, handle: str):
        self.events.append(("stream", handle))
        lines, _ = self.scripts.get(self._commands[handle], ([], 0))
        for line in lines:
            yield line
        self._maybe_fail("stream_output")

    async def wait_for_exit(self, handle: str) -> int:
        self.events.append(("wait", handle))
        self._maybe_fail("wait_for_exit")
        return self.scripts.get(self._commands[handle], ([], 0))[1]

    async def remove_container(self, handle: str) -> None:
        self.events.append(("remove", handle))
        self._maybe_fail("remove_container")


class FakeSource:
    """Writes a manifest into the destination instead of cloning."""

    def __init__(self):
        self.manifest: str | None = TWO_STEPS
        self.by_repo: dict[str, str] = {}
        self.error: str | None = None
        self.output = "Cloning into 'checkout'..."
        self.calls: list[tuple[str, str, Path]] = []

    async def fetch_branch(self, repo: str, branch: str, dest: Path) -> str:
        self.calls.append((repo, branch, Path(dest)))
        if self.error is not None:
            raise SourceFetchError(self.error)
        dest.mkdir(parents=True)
        manifest = self.by_repo.get(repo, self.manifest)
        if manifest is not None:
            (dest / MANIFEST_NAME).write_text(manifest, encoding="utf-8")
        return self.output


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def runtime_cls() -> type[FakeRuntime]:
    return FakeRuntime


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'boxci.db'}"


@pytest.fixture
def open_store(db_url):
    """Async context manager factory yielding a fresh, migrated Store."""

    @asynccontextmanager
    async def _open():
        store = Store(db_url)
        await store.create_all()
        try:
            yield store
        finally:
            await store.dispose()

    return _open
