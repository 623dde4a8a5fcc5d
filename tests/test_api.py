import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from boxci.cloud.main import create_app
from boxci.cloud.settings import Settings


@pytest.fixture
def client(db_url, runtime, source, tmp_path: Path):
    settings = Settings(database_url=db_url, work_root=tmp_path / "work")
    app = create_app(settings, runtime=runtime, source=source)
    with TestClient(app) as c:
        yield c


def _wait_terminal(client: TestClient, job_id: int) -> dict:
    for _ in range(500):
        job = client.get(f"/jobs/{job_id}").json()
        if job["status"] in ("succeeded", "failed"):
            return job
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} never finished")


def test_project_crud(client: TestClient):
    r = client.post("/projects", json={"name": "app", "repo": "https://example.com/app.git"})
    assert r.status_code == 200
    project = r.json()
    assert project["name"] == "app"

    assert client.get(f"/projects/{project['id']}").json() == project
    assert [p["id"] for p in client.get("/projects").json()] == [project["id"]]
    assert client.get(f"/projects/{project['id']}/jobs").json() == []


def test_job_runs_in_background_and_exposes_logs(client: TestClient, runtime):
    runtime.scripts["echo build"] = (["hello from build"], 0)
    project = client.post("/projects", json={"name": "app", "repo": "repo"}).json()

    r = client.post("/jobs", json={"project_id": project["id"], "branch": "main"})
    assert r.status_code == 200
    created = r.json()
    assert created["status"] == "pending"
    assert created["status_code"] == 1
    assert created["project_name"] == "app"

    job = _wait_terminal(client, created["id"])
    assert job["status"] == "succeeded"
    assert job["status_code"] == 0

    logs = [e["text"] for e in client.get(f"/jobs/{job['id']}/logs").json()]
    assert logs[0] == "Starting job for project: app"
    assert "hello from build" in logs
    assert logs[-1] == "Job completed successfully"

    listed = client.get(f"/projects/{project['id']}/jobs").json()
    assert [j["id"] for j in listed] == [job["id"]]


def test_failed_pipeline_is_not_an_http_error(client: TestClient, source):
    source.error = "fatal: repository not found"
    project = client.post("/projects", json={"name": "app", "repo": "repo"}).json()

    r = client.post("/jobs", json={"project_id": project["id"], "branch": "main"})
    assert r.status_code == 200

    job = _wait_terminal(client, r.json()["id"])
    assert job["status"] == "failed"
    assert job["status_code"] == -1
    logs = [e["text"] for e in client.get(f"/jobs/{job['id']}/logs").json()]
    assert logs[-1] == "Failed to clone repository: fatal: repository not found"


def test_not_found(client: TestClient):
    assert client.get("/projects/42").status_code == 404
    assert client.get("/projects/42/jobs").status_code == 404
    assert client.get("/jobs/42").status_code == 404
    assert client.get("/jobs/42/logs").status_code == 404
    assert client.post("/jobs", json={"project_id": 42, "branch": "main"}).status_code == 404


def test_invalid_input(client: TestClient):
    project = client.post("/projects", json={"name": "app", "repo": "repo"}).json()

    assert client.post("/projects", json={"name": "", "repo": "repo"}).status_code == 422
    assert client.post("/jobs", json={"project_id": project["id"]}).status_code == 422
    assert client.post("/jobs", json={"project_id": project["id"], "branch": "  "}).status_code == 400
