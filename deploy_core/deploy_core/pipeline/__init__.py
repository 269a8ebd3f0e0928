"""Content update pipeline."""

from deploy_core.pipeline.models import (
    NEXT_DIRECTORY,
    SNAPSHOT_REVISION,
    PipelineResult,
    PipelineRun,
    StageResult,
    UpdateRequest,
)
from deploy_core.pipeline.pipeline import UpdatePipeline
from deploy_core.pipeline.stages import (
    CreateSnapshotStage,
    FetchStage,
    PipelineStage,
    UpdateConfigStage,
)

__all__ = [
    "NEXT_DIRECTORY",
    "SNAPSHOT_REVISION",
    "CreateSnapshotStage",
    "FetchStage",
    "PipelineResult",
    "PipelineRun",
    "PipelineStage",
    "StageResult",
    "UpdateConfigStage",
    "UpdatePipeline",
    "UpdateRequest",
]
