"""FastAPI dependency injection for the running node and settings."""

from __future__ import annotations

import logging
from typing import Annotated

from deploy_core.config import Settings
from deploy_core.history.log import HistoryLog
from deploy_core.messaging.channel import ClusterChannel
from deploy_core.node import ContentNode
from fastapi import Depends

from deploy_api.config import APISettings, load_api_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

_node: ContentNode | None = None


def init_node(node: ContentNode) -> ContentNode:
    """Register the node served by this application."""
    global _node  # noqa: PLW0603
    _node = node
    return node


def clear_node() -> None:
    global _node  # noqa: PLW0603
    _node = None


def get_node() -> ContentNode:
    """Return the registered node.

    Raises
    ------
    RuntimeError
        If the application lifespan has not registered a node yet.
    """
    if _node is None:
        raise RuntimeError("Content node not initialised. Is the application lifespan running?")
    return _node


NodeDep = Annotated[ContentNode, Depends(get_node)]


def get_history_log(node: NodeDep) -> HistoryLog:
    return node.history


def get_channel(node: NodeDep) -> ClusterChannel:
    return node.channel


def get_node_settings(node: NodeDep) -> Settings:
    return node.settings


HistoryDep = Annotated[HistoryLog, Depends(get_history_log)]
ChannelDep = Annotated[ClusterChannel, Depends(get_channel)]
NodeSettingsDep = Annotated[Settings, Depends(get_node_settings)]
