from .model import Job, JobStatus, LogEntry, PipelineConfig, Project, Step
from .manifest import load_pipeline_config, parse_manifest
from .executor import StepExecutor
from .runner import JobRunner
from .lifecycle import JobService

__all__ = [
    "Job",
    "JobStatus",
    "LogEntry",
    "PipelineConfig",
    "Project",
    "Step",
    "load_pipeline_config",
    "parse_manifest",
    "StepExecutor",
    "JobRunner",
    "JobService",
]
