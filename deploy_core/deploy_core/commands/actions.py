"""Actions for every protocol command.

Parameters understood on the wire:

=================  ==========================================================
``MAINTENANCE``    ``state`` (``on``/``off``), ``comment``, ``openId``
``UPDATE``         ``repo``, ``branch``, ``sha``, ``comment``, ``openId``,
                   ``nonRevertible``, ``uuid``
``SYNC``           same as ``UPDATE``; always recorded with the AUTO operator
``UPDATE_DONE``    ``uuid``, ``branch``, ``sha``
``UPDATE_FAILED``  ``uuid``, ``branch``, ``sha``, ``reason``
``CURRENT_STATE``  none
``STATE_UPDATE``   ``branch``, ``sha``, ``maintenance``, ``status``
=================  ==========================================================
"""

from __future__ import annotations

import asyncio
import logging

from deploy_core.commands.base import CommandAction, parse_bool
from deploy_core.commands.cluster_state import ClusterState
from deploy_core.content.persisted_config import PersistedConfig
from deploy_core.errors import ConfigPersistError
from deploy_core.maintenance import MaintenanceToggle
from deploy_core.messaging.channel import ClusterChannel
from deploy_core.models.protocol import CommandContext, ProtocolKind, ProtocolMessage
from deploy_core.pipeline.models import CHECKED_OUT_BRANCH, SNAPSHOT_REVISION, UpdateRequest
from deploy_core.pipeline.pipeline import UpdatePipeline

logger = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_UPDATING = "updating"


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceCommandAction(CommandAction):
    """Turns the maintenance page on or off.

    Without a ``state`` parameter the current state is logged again with an
    empty comment.  An unrecognised ``state`` leaves the toggle alone and
    logs the current state with the supplied comment.
    """

    def __init__(self, toggle: MaintenanceToggle) -> None:
        self._toggle = toggle

    async def execute(self, ctx: CommandContext) -> bool:
        state = ctx.message.param("state")
        open_id = ctx.message.param("openId") or ""
        if state is None:
            await self._toggle.record_current(comment="", open_id=open_id)
            return True

        comment = ctx.message.param("comment") or ""
        normalised = state.strip().lower()
        if normalised == "on":
            await self._toggle.start(comment=comment, open_id=open_id)
        elif normalised == "off":
            await self._toggle.stop(comment=comment, open_id=open_id)
        else:
            logger.warning("Ignoring invalid maintenance state %r; recording current state", state)
            await self._toggle.record_current(comment=comment, open_id=open_id)
        return True


# ---------------------------------------------------------------------------
# Update / sync
# ---------------------------------------------------------------------------


class UpdateCommandAction(CommandAction):
    """Runs the update pipeline and reports the outcome to the cluster.

    Runs are serialised by *update_lock*, which is shared with the SYNC
    action and consulted by ``CURRENT_STATE`` to report the node status.
    """

    automated = False

    def __init__(
        self,
        pipeline: UpdatePipeline,
        config: PersistedConfig,
        channel: ClusterChannel,
        update_lock: asyncio.Lock,
    ) -> None:
        self._pipeline = pipeline
        self._config = config
        self._channel = channel
        self._lock = update_lock

    def build_request(self, ctx: CommandContext) -> UpdateRequest:
        msg = ctx.message
        return UpdateRequest(
            repo_url=msg.param("repo") or "",
            branch=msg.param("branch") or None,
            revision=msg.param("sha") or None,
            open_id=msg.param("openId") or "",
            comment=msg.param("comment") or "",
            non_revertible=parse_bool(msg.param("nonRevertible")),
            automated=self.automated,
            token=msg.param("uuid") or None,
        )

    def _mark_updating(self, request: UpdateRequest) -> None:
        try:
            state = self._config.load()
            self._config.save(state.marked_updating(request.branch, request.revision))
        except ConfigPersistError as exc:
            logger.warning("Could not record pending update: %s", exc)

    async def execute(self, ctx: CommandContext) -> bool:
        request = self.build_request(ctx)
        logger.info(
            "%s requested by %s: branch=%s sha=%s",
            ctx.kind.value,
            ctx.source or "?",
            request.branch or "(current)",
            request.revision or "(head)",
        )

        async with self._lock:
            await asyncio.to_thread(self._mark_updating, request)
            result = await self._pipeline.run(request)

        reply = {
            "uuid": request.token or "",
            "branch": result.properties.get(CHECKED_OUT_BRANCH, request.branch or ""),
            "sha": result.properties.get(SNAPSHOT_REVISION, request.revision or ""),
        }
        if result.succeeded:
            await self._channel.send(ProtocolMessage(kind=ProtocolKind.UPDATE_DONE, parameters=reply))
            return True

        failed = result.failed_stage
        reply["reason"] = str(failed.error) if failed and failed.error else "update failed"
        await self._channel.send(ProtocolMessage(kind=ProtocolKind.UPDATE_FAILED, parameters=reply))
        return False

    async def handle_failure(self, ctx: CommandContext, exc: BaseException) -> None:
        await super().handle_failure(ctx, exc)
        await self._channel.send(
            ProtocolMessage(
                kind=ProtocolKind.UPDATE_FAILED,
                parameters={
                    "uuid": ctx.message.param("uuid") or "",
                    "branch": ctx.message.param("branch") or "",
                    "sha": ctx.message.param("sha") or "",
                    "reason": str(exc),
                },
            )
        )


class SyncCommandAction(UpdateCommandAction):
    """System-triggered update; recorded with the AUTO operator."""

    automated = True


# ---------------------------------------------------------------------------
# Peer reports
# ---------------------------------------------------------------------------


class UpdateDoneCommandAction(CommandAction):
    outcome = "done"

    def __init__(self, cluster: ClusterState) -> None:
        self._cluster = cluster

    async def execute(self, ctx: CommandContext) -> bool:
        msg = ctx.message
        peer = self._cluster.record_outcome(
            ctx.source,
            outcome=self.outcome,
            token=msg.param("uuid") or "",
            branch=msg.param("branch") or "",
            revision=msg.param("sha") or "",
        )
        if self.outcome == "done":
            logger.info("Update %s done on %s (%s@%s)", peer.last_token or "-", ctx.source, peer.branch, peer.revision)
        else:
            logger.warning(
                "Update %s failed on %s: %s",
                peer.last_token or "-",
                ctx.source,
                msg.param("reason") or "no reason given",
            )
        return True


class UpdateFailedCommandAction(UpdateDoneCommandAction):
    outcome = "failed"


class CurrentStateCommandAction(CommandAction):
    """Replies with this node's published branch, revision and status."""

    def __init__(
        self,
        config: PersistedConfig,
        toggle: MaintenanceToggle,
        channel: ClusterChannel,
        update_lock: asyncio.Lock,
    ) -> None:
        self._config = config
        self._toggle = toggle
        self._channel = channel
        self._lock = update_lock

    async def execute(self, ctx: CommandContext) -> bool:
        state = await asyncio.to_thread(self._config.load)
        await self._channel.send(
            ProtocolMessage(
                kind=ProtocolKind.STATE_UPDATE,
                parameters={
                    "branch": state.branch or "",
                    "sha": state.revision or "",
                    "maintenance": "true" if self._toggle.is_on() else "false",
                    "status": STATUS_UPDATING if self._lock.locked() else STATUS_IDLE,
                },
            )
        )
        return True


class StateUpdateCommandAction(CommandAction):
    """Records a peer's reported state and logs drift from this node."""

    def __init__(self, cluster: ClusterState, config: PersistedConfig, local_address: str) -> None:
        self._cluster = cluster
        self._config = config
        self._local_address = local_address

    async def execute(self, ctx: CommandContext) -> bool:
        msg = ctx.message
        peer = self._cluster.record_state(
            ctx.source,
            branch=msg.param("branch") or "",
            revision=msg.param("sha") or "",
            maintenance=parse_bool(msg.param("maintenance")),
            status=msg.param("status") or "",
        )
        if ctx.source == self._local_address:
            return True

        local = await asyncio.to_thread(self._config.load)
        if local.branch and peer.branch and peer.branch != local.branch:
            logger.warning("Node %s is on branch %s, this node on %s", peer.node, peer.branch, local.branch)
        elif local.revision and peer.revision and peer.revision != local.revision:
            logger.warning("Node %s is at %s, this node at %s", peer.node, peer.revision, local.revision)
        return True
