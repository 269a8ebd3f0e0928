"""Stages of the content update pipeline.

Each stage either completes or raises :class:`PipelineStageFailure`.
Blocking git and filesystem work runs in the default thread pool via
:func:`asyncio.to_thread` so the event loop keeps serving the channel.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from sqlalchemy.exc import SQLAlchemyError

from deploy_core.content.persisted_config import PersistedConfig
from deploy_core.content.versioning import ContentVersionManager
from deploy_core.errors import ConfigPersistError, PipelineStageFailure, RepositoryError
from deploy_core.git.repository import ContentRepository, switch_branch_with_fallback
from deploy_core.history.log import HistoryLog
from deploy_core.models.history import AUTO_OPERATOR, HistoryEntry, HistoryEventType
from deploy_core.pipeline.models import (
    CHECKED_OUT_BRANCH,
    NEXT_DIRECTORY,
    SNAPSHOT_REVISION,
    PipelineRun,
)

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """One unit of the update workflow."""

    name: ClassVar[str]

    @abstractmethod
    async def run(self, run: PipelineRun) -> None:
        """Do the stage's work, recording outputs in ``run.properties``."""


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class FetchStage(PipelineStage):
    """Bring the checkout onto the requested branch at its latest commit.

    A request without a branch fetches and fast-forwards whatever branch is
    currently checked out.
    """

    name = "fetch"

    def __init__(self, repo: ContentRepository, environment: str) -> None:
        self._repo = repo
        self._environment = environment

    def _fetch(self, branch: str) -> str:
        self._repo.fetch(prune=True)
        checked_out = switch_branch_with_fallback(self._repo, branch, self._environment)
        self._repo.pull()
        return checked_out

    def _refresh(self) -> str:
        self._repo.fetch(prune=True)
        self._repo.pull()
        return self._repo.current_branch()

    async def run(self, run: PipelineRun) -> None:
        branch = run.request.branch
        try:
            if branch:
                checked_out = await asyncio.to_thread(self._fetch, branch)
            else:
                logger.debug("No branch requested; refreshing the current checkout")
                checked_out = await asyncio.to_thread(self._refresh)
        except (RepositoryError, ValueError) as exc:
            target = branch or "the current branch"
            raise PipelineStageFailure(self.name, f"Could not fetch {target}: {exc}", exc) from exc
        run.properties[CHECKED_OUT_BRANCH] = checked_out


# ---------------------------------------------------------------------------
# create-snapshot
# ---------------------------------------------------------------------------


class CreateSnapshotStage(PipelineStage):
    """Stage the checkout into the next numbered snapshot directory."""

    name = "create-snapshot"

    def __init__(
        self,
        repo: ContentRepository,
        versions: ContentVersionManager,
        config: PersistedConfig,
        initial_snapshot: Path,
    ) -> None:
        self._repo = repo
        self._versions = versions
        self._config = config
        self._initial_snapshot = initial_snapshot

    def _create(self, revision: str | None) -> tuple[Path | None, str]:
        state = self._config.load()
        existing = Path(state.last_updated_dir) if state.last_updated_dir else self._initial_snapshot
        logger.info("Creating a new directory for the rendered content after %s", existing)
        if revision:
            revision = self._repo.resolve_revision(revision)
        dest = self._versions.create_snapshot(self._repo, existing, revision)
        return dest, revision or self._repo.current_revision()

    async def run(self, run: PipelineRun) -> None:
        try:
            dest, revision = await asyncio.to_thread(self._create, run.request.revision)
        except (RepositoryError, ValueError) as exc:
            raise PipelineStageFailure(self.name, f"Failed to create new rendered directory: {exc}", exc) from exc
        if dest is None:
            raise PipelineStageFailure(self.name, "Failed to create new rendered directory")

        run.properties[NEXT_DIRECTORY] = str(dest)
        run.properties[SNAPSHOT_REVISION] = revision


# ---------------------------------------------------------------------------
# update-config
# ---------------------------------------------------------------------------


class UpdateConfigStage(PipelineStage):
    """Point the persisted state at the new snapshot and record the event.

    Writing the state file and appending the history entry fail
    independently: each failure is logged and neither fails the stage.
    """

    name = "update-config"

    def __init__(
        self,
        repo: ContentRepository,
        config: PersistedConfig,
        history: HistoryLog,
    ) -> None:
        self._repo = repo
        self._config = config
        self._history = history

    def _publish(self, directory: str, branch: str, revision: str) -> None:
        state = self._config.load()
        self._config.save(state.rotated(directory, branch, revision))

    async def run(self, run: PipelineRun) -> None:
        directory = run.properties.get(NEXT_DIRECTORY)
        revision = run.properties.get(SNAPSHOT_REVISION)
        if not directory or not revision:
            raise PipelineStageFailure(self.name, "No new snapshot directory recorded by the previous stage")

        branch = run.properties.get(CHECKED_OUT_BRANCH)
        if not branch:
            try:
                branch = await asyncio.to_thread(self._repo.current_branch)
            except RepositoryError as exc:
                raise PipelineStageFailure(self.name, f"Cannot resolve current branch: {exc}", exc) from exc

        logger.info("Updating persisted state to %s (%s@%s)", directory, branch, revision[:12])
        try:
            await asyncio.to_thread(self._publish, directory, branch, revision)
        except ConfigPersistError as exc:
            logger.warning("Failed to write out state file: %s", exc)

        request = run.request
        entry = HistoryEntry(
            type=HistoryEventType.COMMIT,
            open_id=AUTO_OPERATOR if request.automated else request.open_id,
            repo_url=request.repo_url,
            branch=branch,
            revision=revision,
            revertible=not request.non_revertible,
            finished=True,
            comment=request.comment,
            token=request.token,
            directory=directory,
        )
        try:
            run.history_index = await self._history.append(entry)
        except SQLAlchemyError as exc:
            logger.warning("Failed to update history log: %s", exc)
