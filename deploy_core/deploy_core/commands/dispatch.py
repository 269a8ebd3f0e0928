"""Routes decoded channel messages to their command actions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from deploy_core.commands.base import CommandAction
from deploy_core.errors import UnknownCommandError
from deploy_core.messaging.channel import ClusterChannel
from deploy_core.messaging.codec import decode_message
from deploy_core.models.protocol import CommandContext, ProtocolKind

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Registry of one :class:`CommandAction` per :class:`ProtocolKind`.

    Parameters
    ----------
    actions:
        Must cover every protocol kind; a missing entry is a configuration
        error caught at construction time.

    Raises
    ------
    ValueError
        If *actions* does not cover every kind.
    """

    def __init__(self, actions: Mapping[ProtocolKind, CommandAction]) -> None:
        missing = [kind.value for kind in ProtocolKind if kind not in actions]
        if missing:
            raise ValueError(f"No action registered for: {', '.join(missing)}")
        self._actions = dict(actions)
        self._inflight: set[asyncio.Task[bool]] = set()

    def action_for(self, kind: ProtocolKind) -> CommandAction:
        return self._actions[kind]

    async def dispatch(self, payload: bytes | str, source: str = "") -> bool:
        """Decode *payload* and execute the matching action.

        Returns the action's result, or ``False`` when it raised (in which
        case its failure hook has been called).

        Raises
        ------
        UnknownCommandError
            If the payload names an unknown command kind.
        ValueError
            If the payload cannot be decoded.
        """
        message = decode_message(payload, source)
        return await self.execute(CommandContext(source=message.source or source, message=message))

    async def execute(self, ctx: CommandContext) -> bool:
        action = self._actions[ctx.kind]
        try:
            return await action.execute(ctx)
        except Exception as exc:
            try:
                await action.handle_failure(ctx, exc)
            except Exception:
                logger.exception("Failure hook of %s raised", type(action).__name__)
            return False

    async def run(self, channel: ClusterChannel) -> None:
        """Consume *channel* until it closes.

        Messages are decoded in arrival order and each action runs in its own
        task, so a long update does not hold up state queries.  A failing
        message never stops the loop.
        """
        logger.info("Command dispatcher listening on %s", channel.local_address)
        try:
            async for delivery in channel.receive():
                try:
                    message = decode_message(delivery.payload, delivery.source)
                except UnknownCommandError as exc:
                    logger.warning("Rejected message from %s: %s", delivery.source, exc)
                    continue
                except ValueError as exc:
                    logger.warning("Malformed message from %s: %s", delivery.source, exc)
                    continue

                ctx = CommandContext(source=message.source or delivery.source, message=message)
                task = asyncio.create_task(self.execute(ctx), name=f"command:{message.kind.value}")
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
        finally:
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("Command dispatcher on %s stopped", channel.local_address)
