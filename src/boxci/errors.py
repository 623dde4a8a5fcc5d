# errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class BoxCIError(Exception):
    """Base class for every error boxci raises on purpose."""


# ----------------------------------------------------------------------
# Source retrieval
# ----------------------------------------------------------------------

class SourceFetchError(BoxCIError):
    """The repository could not be fetched at the requested branch."""


# ----------------------------------------------------------------------
# Manifest
# ----------------------------------------------------------------------

class ManifestError(BoxCIError):
    pass


class ManifestMissing(ManifestError):
    pass


class ManifestMalformed(ManifestError):
    pass


# ----------------------------------------------------------------------
# Container runtime
# ----------------------------------------------------------------------

class GatewayError(BoxCIError):
    """A container engine call failed."""


class RuntimeUnavailable(GatewayError):
    """The engine CLI could not be executed at all."""


class ImageUnavailable(GatewayError):
    pass


class ContainerStartFailed(GatewayError):
    pass


class StreamFailed(GatewayError):
    pass


class WaitFailed(GatewayError):
    pass


class ContainerRemoveWarning(GatewayError):
    """Non-fatal: raised after the step outcome is already known."""


# ----------------------------------------------------------------------
# Step outcome
# ----------------------------------------------------------------------

@dataclass
class NonZeroExit(BoxCIError):
    exit_code: int

    def __str__(self) -> str:
        return f"step failed with status code: {self.exit_code}"


STEP_FAILURE_REASONS = ("image", "start", "stream", "wait", "nonzero")


@dataclass
class StepFailed(BoxCIError):
    """
    Structured step failure.

    reason is the phase that failed: image | start | stream | wait | nonzero.
    exit_code is only set for reason == "nonzero".
    """
    step: str
    reason: str
    message: str
    exit_code: Optional[int] = None

    def __post_init__(self) -> None:
        if self.reason not in STEP_FAILURE_REASONS:
            raise ValueError(f"unknown step failure reason: {self.reason!r}")

    def __str__(self) -> str:
        return self.message


# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------

class NotFound(BoxCIError):
    pass


class ProjectNotFound(NotFound):
    def __init__(self, project_id: int):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class JobNotFound(NotFound):
    def __init__(self, job_id: int):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class StatusTransitionError(BoxCIError):
    """A status write would move a job backwards or out of a terminal state."""
