"""Deployment history: local log and remote client."""

from deploy_core.history.client import HistoryClient, history_url
from deploy_core.history.log import HistoryLog

__all__ = [
    "HistoryClient",
    "HistoryLog",
    "history_url",
]
