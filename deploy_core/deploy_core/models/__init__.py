"""Domain models for the content-deploy core."""

from deploy_core.models.history import AUTO_OPERATOR, HistoryEntry, HistoryEventType
from deploy_core.models.protocol import CommandContext, ProtocolKind, ProtocolMessage

__all__ = [
    "AUTO_OPERATOR",
    "CommandContext",
    "HistoryEntry",
    "HistoryEventType",
    "ProtocolKind",
    "ProtocolMessage",
]
