"""Chained execution of update pipeline stages.

Every stage is started as its own :class:`asyncio.Task` that first awaits
the task of the stage before it.  When that predecessor did not succeed the
stage does no work at all and reports :class:`PreviousStageFailed`, so a
failure never half-applies downstream stages.

The pipeline does not serialise runs against each other; callers must not
start a second run on the same content tree while one is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from deploy_core.config import Settings
from deploy_core.content.persisted_config import PersistedConfig
from deploy_core.content.versioning import ContentVersionManager
from deploy_core.errors import PipelineStageFailure, PreviousStageFailed
from deploy_core.git.repository import ContentRepository
from deploy_core.history.log import HistoryLog
from deploy_core.pipeline.models import PipelineResult, PipelineRun, StageResult, UpdateRequest
from deploy_core.pipeline.stages import (
    CreateSnapshotStage,
    FetchStage,
    PipelineStage,
    UpdateConfigStage,
)

logger = logging.getLogger(__name__)


class UpdatePipeline:
    """Runs a fixed sequence of stages for one update request."""

    def __init__(self, stages: Sequence[PipelineStage]) -> None:
        if not stages:
            raise ValueError("A pipeline needs at least one stage")
        self._stages = list(stages)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    @classmethod
    def standard(
        cls,
        *,
        repo: ContentRepository,
        versions: ContentVersionManager,
        config: PersistedConfig,
        history: HistoryLog,
        settings: Settings,
    ) -> UpdatePipeline:
        """Build the fetch → create-snapshot → update-config pipeline."""
        return cls(
            [
                FetchStage(repo, settings.environment),
                CreateSnapshotStage(repo, versions, config, settings.initial_snapshot_path),
                UpdateConfigStage(repo, config, history),
            ]
        )

    async def run(self, request: UpdateRequest) -> PipelineResult:
        """Execute all stages for *request* and collect their results."""
        run = PipelineRun(request=request)
        tasks: list[asyncio.Task[StageResult]] = []
        previous: asyncio.Task[StageResult] | None = None
        for stage in self._stages:
            previous = asyncio.create_task(
                self._run_stage(stage, run, previous),
                name=f"pipeline:{stage.name}",
            )
            tasks.append(previous)

        results = list(await asyncio.gather(*tasks))
        result = PipelineResult(stages=results, properties=dict(run.properties), history_index=run.history_index)
        if result.succeeded:
            logger.info("Update pipeline finished: %s", result.snapshot_path)
        else:
            failed = result.failed_stage
            logger.warning("Update pipeline failed at stage %s", failed.stage if failed else "?")
        return result

    async def _run_stage(
        self,
        stage: PipelineStage,
        run: PipelineRun,
        previous: asyncio.Task[StageResult] | None,
    ) -> StageResult:
        if previous is not None:
            prior = await previous
            if not prior.ok:
                logger.debug("Skipping stage %s: %s failed", stage.name, prior.stage)
                return StageResult(stage.name, ok=False, error=PreviousStageFailed(stage.name, prior.stage))

        logger.info("Pipeline stage %s started", stage.name)
        try:
            await stage.run(run)
        except PipelineStageFailure as exc:
            logger.error("Pipeline stage %s failed: %s", stage.name, exc)
            return StageResult(stage.name, ok=False, error=exc)
        except Exception as exc:
            logger.exception("Pipeline stage %s raised unexpectedly", stage.name)
            return StageResult(stage.name, ok=False, error=PipelineStageFailure(stage.name, str(exc), exc))
        return StageResult(stage.name, ok=True)
