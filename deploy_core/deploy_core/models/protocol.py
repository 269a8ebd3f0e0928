"""Protocol messages exchanged between cluster nodes.

A message is a command kind plus a flat mapping of string parameters and the
identifier of the node that sent it.  Messages are frozen once constructed;
use :meth:`ProtocolMessage.with_parameters` to derive a modified copy.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProtocolKind(str, Enum):
    """Closed set of commands understood by every node."""

    CURRENT_STATE = "CURRENT_STATE"
    STATE_UPDATE = "STATE_UPDATE"
    SYNC = "SYNC"
    UPDATE = "UPDATE"
    UPDATE_DONE = "UPDATE_DONE"
    UPDATE_FAILED = "UPDATE_FAILED"
    MAINTENANCE = "MAINTENANCE"


class ProtocolMessage(BaseModel):
    """A single command broadcast over the cluster channel."""

    model_config = ConfigDict(frozen=True)

    kind: ProtocolKind
    parameters: dict[str, str] = Field(default_factory=dict)
    source: str = Field(
        default="",
        description="Identifier of the node that sent the message.",
    )

    def param(self, key: str, default: str | None = None) -> str | None:
        """Return parameter *key*, or *default* when absent."""
        return self.parameters.get(key, default)

    def with_parameters(self, **params: str) -> ProtocolMessage:
        """Return a copy with *params* merged over the existing parameters."""
        merged = dict(self.parameters)
        merged.update(params)
        return self.model_copy(update={"parameters": merged})


class CommandContext(BaseModel):
    """Pairs a received message with its originating node.

    Built by the dispatcher for exactly one action execution and never
    persisted.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    message: ProtocolMessage

    @property
    def kind(self) -> ProtocolKind:
        return self.message.kind

    @property
    def parameters(self) -> dict[str, str]:
        return self.message.parameters
