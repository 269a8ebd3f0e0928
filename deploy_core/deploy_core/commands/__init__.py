"""Command dispatch and actions."""

from deploy_core.commands.actions import (
    CurrentStateCommandAction,
    MaintenanceCommandAction,
    StateUpdateCommandAction,
    SyncCommandAction,
    UpdateCommandAction,
    UpdateDoneCommandAction,
    UpdateFailedCommandAction,
)
from deploy_core.commands.base import CommandAction
from deploy_core.commands.cluster_state import ClusterState, PeerState
from deploy_core.commands.dispatch import CommandDispatcher

__all__ = [
    "ClusterState",
    "CommandAction",
    "CommandDispatcher",
    "CurrentStateCommandAction",
    "MaintenanceCommandAction",
    "PeerState",
    "StateUpdateCommandAction",
    "SyncCommandAction",
    "UpdateCommandAction",
    "UpdateDoneCommandAction",
    "UpdateFailedCommandAction",
]
