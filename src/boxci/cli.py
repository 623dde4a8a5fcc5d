# cli.py
from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

import click

from boxci.client.api_client import APIClient, APIError
from boxci.cloud.settings import Settings
from boxci.errors import ManifestError
from boxci.manifest import MANIFEST_NAME, load_pipeline_config, parse_manifest
from boxci.ui.console import Console, get_console, set_console

TERMINAL_STATUSES = ("succeeded", "failed")


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """boxci: run container pipelines for git branches."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind")
@click.option("--port", default=4000, type=int, show_default=True, help="HTTP port")
@click.option("--database", default=None, help="SQLAlchemy async URL (overrides BOXCI_DATABASE_URL)")
@click.option(
    "--work-root",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for run checkouts (overrides BOXCI_WORK_ROOT)",
)
@click.pass_context
def serve(ctx, host, port, database, work_root):
    """Serve the HTTP API and run jobs as they are created."""
    import uvicorn

    from boxci.cloud.main import create_app

    console = get_console()
    settings = Settings.from_env().override(database_url=database, work_root=work_root)
    level = "DEBUG" if ctx.obj.get("debug", False) else settings.log_level

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    console.print_server_started(
        host=host,
        port=port,
        database=settings.database_url,
        work_root=str(settings.work_root),
    )
    try:
        uvicorn.run(create_app(settings), host=host, port=port, log_level=level.lower())
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.argument("path", default=".", type=click.Path(exists=True, path_type=Path))
def validate(path):
    """Parse a manifest (a file, or a directory holding boxci.yml) and print its steps."""
    console = get_console()
    try:
        if path.is_dir():
            config = load_pipeline_config(path)
            source = str(path / MANIFEST_NAME)
        else:
            config = parse_manifest(path.read_text(encoding="utf-8"))
            source = str(path)
    except ManifestError as e:
        console.print_error(
            "Invalid manifest",
            str(e),
            suggestion=f"A manifest looks like:\n  steps:\n    - name: build\n      image: alpine\n      runs: echo hi",
        )
        sys.exit(1)
    except (OSError, UnicodeDecodeError) as e:
        console.print_error("Could not read manifest", str(e))
        sys.exit(1)

    console.print_pipeline(source, config)


@cli.command()
@click.option("--api", required=True, help="API base URL (e.g., http://localhost:4000)")
@click.option("--project", "project_id", required=True, type=int, help="Project id")
@click.option("--branch", required=True, help="Branch to build")
@click.option("--wait/--no-wait", default=False, help="Poll until the job finishes and print its log")
@click.option("--poll-interval", default=2.0, type=float, show_default=True, help="Seconds between polls")
def submit(api, project_id, branch, wait, poll_interval):
    """Create a job on a running boxci server."""
    console = get_console()
    client = APIClient(api)

    try:
        job = client.create_job(project_id, branch)
        console.print_info(f"Created job {job['id']} ({job['project_name']} @ {job['branch']})")
        if not wait:
            return

        while job["status"] not in TERMINAL_STATUSES:
            time.sleep(poll_interval)
            job = client.get_job(job["id"])

        console.print_job(job)
        console.print_logs(client.get_logs(job["id"]))
    except APIError as e:
        console.print_error(
            "API request failed",
            str(e),
            suggestion=f"Check that a boxci server is running at {api}.",
        )
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("\nStopped waiting; the job keeps running on the server")
        sys.exit(130)

    if job["status"] == "failed":
        sys.exit(1)


@cli.command()
@click.option("--api", required=True, help="API base URL (e.g., http://localhost:4000)")
@click.argument("job_id", type=int)
def status(api, job_id):
    """Show a job's status and log."""
    console = get_console()
    client = APIClient(api)
    try:
        job = client.get_job(job_id)
        logs = client.get_logs(job_id)
    except APIError as e:
        if e.status == 404:
            console.print_error("Job not found", f"No job with id {job_id}")
        else:
            console.print_error("API request failed", str(e))
        sys.exit(1)

    console.print_job(job)
    console.print_logs(logs)


if __name__ == "__main__":
    cli()
