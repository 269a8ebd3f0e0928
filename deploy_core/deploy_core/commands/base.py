"""Base class for command actions."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from deploy_core.models.protocol import CommandContext

logger = logging.getLogger(__name__)


class CommandAction(ABC):
    """Handles one :class:`~deploy_core.models.protocol.ProtocolKind`."""

    @abstractmethod
    async def execute(self, ctx: CommandContext) -> bool:
        """Carry out the command.  Returns ``True`` on success."""

    async def handle_failure(self, ctx: CommandContext, exc: BaseException) -> None:
        """Called by the dispatcher when :meth:`execute` raised."""
        logger.error(
            "%s from %s failed: %s",
            ctx.kind.value,
            ctx.source or "?",
            exc,
        )


def parse_bool(value: str | None) -> bool:
    """Interpret a protocol flag parameter."""
    return (value or "").strip().lower() in ("true", "yes", "1", "on")
