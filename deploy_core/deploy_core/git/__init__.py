"""Git-backed content repository."""

from __future__ import annotations

from deploy_core.git.repository import (
    ContentRepository,
    GitTransportConfig,
    fallback_branch_name,
    switch_branch_with_fallback,
    validate_repo,
)

__all__ = [
    "ContentRepository",
    "GitTransportConfig",
    "fallback_branch_name",
    "switch_branch_with_fallback",
    "validate_repo",
]
