"""Composition root of a content node.

Everything a node needs is built explicitly in :class:`ContentNode`'s
constructor from :class:`~deploy_core.config.Settings` and a cluster
channel.  :meth:`ContentNode.start` and :meth:`ContentNode.stop` run a fixed
start-up and shut-down sequence.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from deploy_core.commands.actions import (
    CurrentStateCommandAction,
    MaintenanceCommandAction,
    StateUpdateCommandAction,
    SyncCommandAction,
    UpdateCommandAction,
    UpdateDoneCommandAction,
    UpdateFailedCommandAction,
)
from deploy_core.commands.cluster_state import ClusterState
from deploy_core.commands.dispatch import CommandDispatcher
from deploy_core.config import Settings
from deploy_core.content.persisted_config import PersistedConfig
from deploy_core.content.versioning import ContentVersionManager
from deploy_core.git.repository import ContentRepository, GitTransportConfig
from deploy_core.history.log import HistoryLog
from deploy_core.maintenance import MaintenanceToggle
from deploy_core.messaging.channel import ClusterChannel
from deploy_core.models.protocol import ProtocolKind
from deploy_core.pipeline.pipeline import UpdatePipeline
from deploy_core.state.database import create_tables, dispose_engine, get_engine

logger = logging.getLogger(__name__)


class ContentNode:
    """Wires the repository, history, pipeline and dispatcher of one node."""

    def __init__(
        self,
        settings: Settings,
        channel: ClusterChannel,
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.settings = settings
        self.channel = channel
        self._owns_engine = engine is None
        self.engine = engine if engine is not None else get_engine(settings.database_url)

        self.transport = GitTransportConfig(
            ssh_key_path=settings.ssh_key_path,
            known_hosts_path=settings.known_hosts_path,
            strict_host_key_checking=settings.strict_host_key_checking,
            timeout_seconds=settings.git_timeout_seconds,
        )
        self.repository = ContentRepository(settings.checkout_path, self.transport)
        self.versions = ContentVersionManager()
        self.config = PersistedConfig(settings.state_path)
        self.history = HistoryLog(self.engine)
        self.maintenance = MaintenanceToggle(self.history)
        self.cluster = ClusterState()
        self.update_lock = asyncio.Lock()

        self.pipeline = UpdatePipeline.standard(
            repo=self.repository,
            versions=self.versions,
            config=self.config,
            history=self.history,
            settings=settings,
        )
        self.dispatcher = CommandDispatcher(
            {
                ProtocolKind.MAINTENANCE: MaintenanceCommandAction(self.maintenance),
                ProtocolKind.UPDATE: UpdateCommandAction(self.pipeline, self.config, channel, self.update_lock),
                ProtocolKind.SYNC: SyncCommandAction(self.pipeline, self.config, channel, self.update_lock),
                ProtocolKind.UPDATE_DONE: UpdateDoneCommandAction(self.cluster),
                ProtocolKind.UPDATE_FAILED: UpdateFailedCommandAction(self.cluster),
                ProtocolKind.CURRENT_STATE: CurrentStateCommandAction(
                    self.config, self.maintenance, channel, self.update_lock
                ),
                ProtocolKind.STATE_UPDATE: StateUpdateCommandAction(self.cluster, self.config, channel.local_address),
            }
        )
        self._listener: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def start(self) -> None:
        """Create the history tables, clone the checkout and start listening."""
        if self.running:
            return
        await create_tables(self.engine)

        if self.settings.repo_url:
            await asyncio.to_thread(
                ContentRepository.clone,
                self.settings.repo_url,
                self.settings.checkout_path,
                branch=self.settings.default_branch,
                transport=self.transport,
            )

        self._listener = asyncio.create_task(self.dispatcher.run(self.channel), name="command-dispatcher")
        logger.info("Node %s started (environment=%s)", self.channel.local_address, self.settings.environment)

    async def stop(self) -> None:
        """Leave the channel, wait for in-flight commands and release the engine."""
        await self.channel.close()
        if self._listener is not None:
            await self._listener
            self._listener = None
        if self._owns_engine:
            await dispose_engine(self.engine)
        logger.info("Node %s stopped", self.channel.local_address)
