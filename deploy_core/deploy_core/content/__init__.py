"""Snapshot directories and the persisted deployment state."""

from deploy_core.content.persisted_config import PersistedConfig, PersistedState
from deploy_core.content.versioning import ContentVersionManager, split_snapshot_name

__all__ = [
    "ContentVersionManager",
    "PersistedConfig",
    "PersistedState",
    "split_snapshot_name",
]
