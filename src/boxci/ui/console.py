"""Console output formatting utilities for boxci."""

from __future__ import annotations

import sys
from typing import Any, Dict, List, Optional

from boxci.model import PipelineConfig


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_server_started(self, host: str, port: int, database: str, work_root: str) -> None:
        """Print server start information."""
        print("\nSERVER STARTED")
        print(f"Listening: http://{host}:{port}")
        print(f"Database: {database}")
        print(f"Work root: {work_root}")
        print()

    def print_pipeline(self, source: str, config: PipelineConfig) -> None:
        """Print the steps of a parsed manifest."""
        self.print_header(f"PIPELINE: {source}")
        if not config.steps:
            print("  (no steps)")
        for i, step in enumerate(config.steps, start=1):
            print(f"  {i}. {step.name}")
            print(f"     image: {step.image}")
            print(f"     runs:  {step.runs}")

    def print_job(self, job: Dict[str, Any]) -> None:
        """Print a job record as returned by the API."""
        print(f"\nJOB {job['id']}: {job['project_name']} @ {job['branch']}")
        print(f"STATUS: {job['status']}")
        if job.get("created_at"):
            print(f"Created: {job['created_at']}")

    def print_logs(self, logs: List[Dict[str, Any]]) -> None:
        """Print job log lines in store order."""
        self.print_header("LOGS")
        for entry in logs:
            print(entry["text"])

    def print_error(
        self,
        title: str,
        message: str,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
