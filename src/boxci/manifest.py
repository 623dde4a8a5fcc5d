# manifest.py
"""
Pipeline manifest loading.

A fetched source tree carries a ``boxci.yml`` at its root:

    steps:
      - name: build
        image: alpine
        runs: echo hi

Only ``steps`` is recognised; unknown keys are ignored. Every step field is
required and must be a non-blank string.
"""
from __future__ import annotations

from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError, field_validator

from .errors import ManifestMalformed, ManifestMissing
from .model import PipelineConfig, Step

MANIFEST_NAME = "boxci.yml"


class _StepSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: StrictStr
    image: StrictStr
    runs: StrictStr

    @field_validator("name", "image", "runs")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


class _ManifestSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    steps: List[_StepSpec]


def _describe(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e["loc"])
        parts.append(f"{loc}: {e['msg']}" if loc else e["msg"])
    return "; ".join(parts)


def parse_manifest(text: str) -> PipelineConfig:
    """Parse manifest text into a PipelineConfig, raising ManifestMalformed on any shape problem."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestMalformed(f"failed to parse config file: {e}") from e

    if not isinstance(data, dict):
        raise ManifestMalformed("config file must be a mapping with a 'steps' key")
    if "steps" not in data:
        raise ManifestMalformed("config file has no 'steps' key")
    if not isinstance(data["steps"], list):
        raise ManifestMalformed(f"'steps' must be a list, got {type(data['steps']).__name__}")

    try:
        spec = _ManifestSpec.model_validate(data)
    except ValidationError as e:
        raise ManifestMalformed(f"invalid config file: {_describe(e)}") from e

    return PipelineConfig(steps=tuple(Step(name=s.name, image=s.image, runs=s.runs) for s in spec.steps))


def load_pipeline_config(source_root: str | Path) -> PipelineConfig:
    """
    Locate and parse the manifest in a fetched source tree.

    Raises:
        ManifestMissing: no manifest file at the tree root
        ManifestMalformed: the file exists but does not decode into steps
    """
    path = Path(source_root) / MANIFEST_NAME
    if not path.is_file():
        raise ManifestMissing(f"config file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ManifestMalformed(f"config file is not valid UTF-8: {e}") from e
    except OSError as e:
        raise ManifestMissing(f"failed to read config file: {e}") from e

    return parse_manifest(text)
