from __future__ import annotations

from pathlib import Path

from click.testing import CliRunner

from boxci import cli as cli_module
from boxci.cli import cli
from boxci.client.api_client import APIError
from boxci.cloud.settings import DEFAULT_DATABASE_URL, Settings


class FakeClient:
    """Stands in for APIClient; each get_job call returns the next scripted status."""

    statuses = ["running", "succeeded"]
    fail_with: APIError | None = None

    def __init__(self, base_url):
        self.base_url = base_url
        self._polls = iter(self.statuses)

    def _job(self, status):
        return {"id": 7, "project_name": "app", "branch": "main", "status": status}

    def create_job(self, project_id, branch):
        if self.fail_with is not None:
            raise self.fail_with
        return self._job("pending")

    def get_job(self, job_id):
        if self.fail_with is not None:
            raise self.fail_with
        return self._job(next(self._polls))

    def get_logs(self, job_id):
        return [{"id": 1, "text": "Job completed successfully"}]


def test_validate_directory(tmp_path: Path):
    (tmp_path / "boxci.yml").write_text(
        "steps:\n  - name: build\n    image: golang:1.22\n    runs: go build ./...\n",
        encoding="utf-8",
    )

    result = CliRunner().invoke(cli, ["validate", str(tmp_path)])

    assert result.exit_code == 0
    assert "1. build" in result.output
    assert "golang:1.22" in result.output


def test_validate_file_with_errors(tmp_path: Path):
    manifest = tmp_path / "ci.yml"
    manifest.write_text("steps:\n  - name: build\n    image: alpine\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["validate", str(manifest)])

    assert result.exit_code == 1
    assert "Invalid manifest" in result.output
    assert "runs" in result.output


def test_validate_directory_without_manifest(tmp_path: Path):
    result = CliRunner().invoke(cli, ["validate", str(tmp_path)])

    assert result.exit_code == 1
    assert "config file not found" in result.output


def test_submit_and_wait(monkeypatch):
    monkeypatch.setattr(cli_module, "APIClient", FakeClient)

    result = CliRunner().invoke(
        cli,
        ["submit", "--api", "http://ci", "--project", "1", "--branch", "main", "--wait", "--poll-interval", "0"],
    )

    assert result.exit_code == 0
    assert "Created job 7 (app @ main)" in result.output
    assert "STATUS: succeeded" in result.output
    assert "Job completed successfully" in result.output


def test_submit_exits_nonzero_when_the_job_fails(monkeypatch):
    class Failing(FakeClient):
        statuses = ["failed"]

    monkeypatch.setattr(cli_module, "APIClient", Failing)

    result = CliRunner().invoke(
        cli,
        ["submit", "--api", "http://ci", "--project", "1", "--branch", "main", "--wait", "--poll-interval", "0"],
    )

    assert result.exit_code == 1
    assert "STATUS: failed" in result.output


def test_status_of_unknown_job(monkeypatch):
    class Missing(FakeClient):
        fail_with = APIError("API request failed: 404 Not Found.", status=404)

    monkeypatch.setattr(cli_module, "APIClient", Missing)

    result = CliRunner().invoke(cli, ["status", "--api", "http://ci", "42"])

    assert result.exit_code == 1
    assert "Job not found" in result.output


def test_settings_from_env():
    settings = Settings.from_env({
        "BOXCI_DATABASE_URL": "postgresql+asyncpg://ci@db/ci",
        "BOXCI_WORK_ROOT": "/srv/boxci",
        "BOXCI_LOG_LEVEL": "debug",
    })

    assert settings.database_url == "postgresql+asyncpg://ci@db/ci"
    assert settings.work_root == Path("/srv/boxci")
    assert settings.docker_bin == "docker"
    assert settings.log_level == "DEBUG"


def test_settings_override_ignores_unset_flags():
    settings = Settings.from_env({}).override(database_url=None, work_root=Path("/w"))

    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.work_root == Path("/w")
