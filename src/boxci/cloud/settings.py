from __future__ import annotations
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///boxci.db"
DEFAULT_WORK_ROOT = "/tmp/boxci"

@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    work_root: Path = Path(DEFAULT_WORK_ROOT)
    docker_bin: str = "docker"
    git_bin: str = "git"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            database_url=env.get("BOXCI_DATABASE_URL", DEFAULT_DATABASE_URL),
            work_root=Path(env.get("BOXCI_WORK_ROOT", DEFAULT_WORK_ROOT)),
            docker_bin=env.get("BOXCI_DOCKER_BIN", "docker"),
            git_bin=env.get("BOXCI_GIT_BIN", "git"),
            log_level=env.get("BOXCI_LOG_LEVEL", "INFO").upper(),
        )

    def override(self, **changes) -> Settings:
        """Copy with the non-None `changes` applied (CLI flags win over env)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
