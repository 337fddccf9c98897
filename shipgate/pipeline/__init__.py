"""Pipeline runner modules.

This package sequences external tool stages, applies the blocking/advisory
continuation policy and publishes run artifacts at finalization.
"""

from shipgate.pipeline.artifacts import Artifact, ArtifactStore, PublishedArtifact
from shipgate.pipeline.context import RunContext
from shipgate.pipeline.outcome import BuildOutcome
from shipgate.pipeline.runner import PipelineRunner, run_pipeline
from shipgate.pipeline.stage import (
    PipelineAborted,
    Stage,
    StageError,
    StageKind,
    StageResult,
    ToolUnavailableError,
)

__all__ = [
    "Artifact",
    "ArtifactStore",
    "PublishedArtifact",
    "RunContext",
    "BuildOutcome",
    "PipelineRunner",
    "run_pipeline",
    "PipelineAborted",
    "Stage",
    "StageError",
    "StageKind",
    "StageResult",
    "ToolUnavailableError",
]
