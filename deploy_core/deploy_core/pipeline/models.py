"""Request, per-stage result and run-scoped state of an update pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, Field

# Well-known keys of the run-scoped property map.
NEXT_DIRECTORY = "next_directory"
SNAPSHOT_REVISION = "snapshot_revision"
CHECKED_OUT_BRANCH = "checked_out_branch"


class UpdateRequest(BaseModel):
    """What an UPDATE or SYNC command asks the node to publish."""

    repo_url: str = ""
    branch: str | None = None
    revision: str | None = None
    open_id: str = ""
    comment: str = ""
    non_revertible: bool = False
    automated: bool = Field(
        default=False,
        description="System-triggered run; recorded with the AUTO operator.",
    )
    token: str | None = None


@dataclass(frozen=True)
class StageResult:
    """Outcome of one stage: ``ok`` or the error that stopped it."""

    stage: str
    ok: bool
    error: BaseException | None = None


@dataclass
class PipelineRun:
    """Mutable state shared by the stages of a single run."""

    request: UpdateRequest
    properties: dict[str, str] = field(default_factory=dict)
    history_index: int | None = None


@dataclass
class PipelineResult:
    """Collected stage results of a finished run."""

    stages: list[StageResult]
    properties: dict[str, str] = field(default_factory=dict)
    history_index: int | None = None

    @property
    def succeeded(self) -> bool:
        return all(result.ok for result in self.stages)

    @property
    def failed_stage(self) -> StageResult | None:
        """The stage whose failure stopped the run, if any."""
        return next((r for r in self.stages if not r.ok), None)

    @property
    def snapshot_path(self) -> Path | None:
        value = self.properties.get(NEXT_DIRECTORY)
        return Path(value) if value else None
